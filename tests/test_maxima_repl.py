import os
import re
import shutil
import unittest

from unittest import mock

from maxima_notebook.maxima_repl import (
    MaximaRepl,
    MaximaReplState,
    MaximaServerNotAcceptingCommand,
    NoMaximaPrompt,
)
from maxima_notebook.maxima_session import MaximaProcessError, kill_process_tree


class FakeMaxima:
    """
    Plays maxima on the other end of a pipe: every statement written to stdin
    is answered with an output line (unless it ends with $) and the next prompt
    """

    def __init__(self, answers, banner=True, exit_on_input=False):
        self.answers = answers
        self.received = []
        self.label = 1
        self.read_fd, self.write_fd = os.pipe()

        self.stdin = mock.MagicMock()
        self.stdin.write.side_effect = self.write
        self.stdout = mock.MagicMock()
        self.stdout.fileno.return_value = self.read_fd
        self.stdout.close.side_effect = lambda: os.close(self.read_fd)
        self.pid = 4242
        self.exit_on_input = exit_on_input
        self.exited = False

        if banner:
            os.write(self.write_fd, b"(%i1) ")

    def write(self, data: bytes) -> None:
        command = data.decode().strip()
        self.received.append(command)

        if self.exit_on_input:
            self.kill(self.pid)
            return

        response = ""
        for statement in re.findall(r"(?:\"[^\"]*\"|[^;$\"])+[;$]", command):
            statement = statement.strip()
            if not statement.endswith("$"):
                answer = self.answers.get(statement, statement[:-1])
                response += f"(%o{self.label}) {answer}\n"
            self.label += 1
            response += f"(%i{self.label}) "
        os.write(self.write_fd, response.encode())

    def kill(self, pid) -> None:
        if not self.exited:
            self.exited = True
            os.close(self.write_fd)

    def wait(self):
        return 0


class MaximaReplTestCase(unittest.TestCase):
    def start(self, fake: FakeMaxima, **kwargs) -> MaximaRepl:
        patches = [
            mock.patch("maxima_notebook.maxima_repl.shutil.which", return_value="/usr/bin/maxima"),
            mock.patch("maxima_notebook.maxima_repl.subprocess.Popen", return_value=fake),
            mock.patch("maxima_notebook.maxima_repl.kill_process_tree", side_effect=fake.kill),
        ]
        for patcher in patches:
            patcher.start()
            self.addCleanup(patcher.stop)
        return MaximaRepl(executable="maxima", **kwargs)


class TestMaximaRepl(MaximaReplTestCase):
    def testSetupOnStart(self):
        fake = FakeMaxima({})
        repl = self.start(fake)
        self.addCleanup(repl.close)

        self.assertEqual(
            ["display2d:false$", "linel:32767$", 'ignore(load("qinf"))$'], fake.received
        )
        self.assertEqual(MaximaReplState.WAITING_FOR_COMMAND, repl.state)

    def testRawCommand(self):
        fake = FakeMaxima({"diff(x^2, x);": "2*x"})
        repl = self.start(fake, load_packages=())
        self.addCleanup(repl.close)

        self.assertEqual("2*x", repl.raw_command("diff(x^2, x)"))
        self.assertEqual("", repl.raw_command("a: 1$"))
        self.assertEqual("diff(x^2, x);", fake.received[-2])

    def testSeveralStatementsInOneLine(self):
        fake = FakeMaxima({"a:1;": "1", "b:2;": "2", "c:3;": "3", "2+2;": "4"})
        repl = self.start(fake, load_packages=())
        self.addCleanup(repl.close)

        self.assertEqual("1\n2", repl.raw_command("a:1; b:2;"))
        self.assertEqual("3", repl.raw_command("c:3;"))
        self.assertEqual("", repl.raw_command("x:\"a;b\"$ y:2$"))
        self.assertEqual("4", repl.raw_command("2+2;"))

    def testExitDuringSetup(self):
        fake = FakeMaxima({}, exit_on_input=True)
        with self.assertRaises(MaximaProcessError):
            self.start(fake)

        self.assertTrue(fake.exited)
        fake.stdout.close.assert_called_once_with()

    def testReset(self):
        fake = FakeMaxima({})
        repl = self.start(fake, load_packages=())
        self.addCleanup(repl.close)

        repl.reset()
        self.assertEqual(
            ["kill(all)$", "display2d:false$", "linel:32767$"], fake.received[-3:]
        )

    def testBusy(self):
        fake = FakeMaxima({})
        repl = self.start(fake, load_packages=())
        self.addCleanup(repl.close)

        repl.state = MaximaReplState.WAITING_FOR_MAXIMA
        with self.assertRaises(MaximaServerNotAcceptingCommand):
            repl.raw_command("1+1;")
        repl.state = MaximaReplState.WAITING_FOR_COMMAND

    def testClose(self):
        fake = FakeMaxima({})
        repl = self.start(fake, load_packages=())

        repl.close()
        repl.close()
        self.assertEqual(MaximaReplState.OFFLINE, repl.state)
        with self.assertRaises(MaximaProcessError):
            repl.raw_command("1+1;")

    def testNoPrompt(self):
        fake = FakeMaxima({}, banner=False)
        with self.assertRaises(NoMaximaPrompt):
            self.start(fake, timeout=0.2)

    def testFormatResponse(self):
        self.assertEqual("[1,2]", MaximaRepl.format_response("\n(%o3) [1,2]\n"))
        self.assertEqual(
            "expt: undefined: 0 to a negative exponent.",
            MaximaRepl.format_response("\nexpt: undefined: 0 to a negative exponent.\n"),
        )


class TestKillProcessTree(unittest.TestCase):
    @mock.patch("maxima_notebook.maxima_session.psutil.Process")
    def testKillsChildrenFirst(self, process_class):
        calls = []
        child = mock.MagicMock()
        child.kill.side_effect = lambda: calls.append("child")
        process = process_class.return_value
        process.children.return_value = [child]
        process.kill.side_effect = lambda: calls.append("parent")

        kill_process_tree(4242)

        process.children.assert_called_once_with(recursive=True)
        self.assertEqual(["child", "parent"], calls)


@unittest.skipUnless(shutil.which("maxima"), "maxima is not installed")
class TestMaximaReplIntegration(unittest.TestCase):
    def setUp(self) -> None:
        self.mi = MaximaRepl()

    def tearDown(self) -> None:
        self.mi.close()

    def testRawCommand(self):
        result = self.mi.raw_command("a: 1;")
        result = self.mi.raw_command("a;")
        self.assertEqual("1", result)

    def testReset(self):
        result = self.mi.raw_command("a: 1;")
        self.mi.reset()
        result = self.mi.raw_command("a;")
        self.assertEqual("a", result)


if __name__ == "__main__":
    unittest.main()
