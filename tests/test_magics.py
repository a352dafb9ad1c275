import unittest

from unittest import mock

from IPython.core.interactiveshell import InteractiveShell

from maxima_notebook.magics import MaximaMagics, load_ipython_extension, split_cell


class TestMaximaMagics(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.MagicMock()
        self.magics = MaximaMagics(shell=None, session=self.session)

    def testSplitCell(self):
        self.assertEqual(["a:1;", "a+1;"], split_cell("\n  a:1;\n\n a+1;  \n"))

    def testLineMagic(self):
        self.session.evaluate.return_value = "2*x"
        self.assertEqual("2*x", self.magics.maxima("diff(x^2, x)"))
        self.session.evaluate.assert_called_once_with("diff(x^2, x)")

    @mock.patch("maxima_notebook.magics.maxima_cell_session")
    def testCellMagic(self, cell_session):
        self.magics.maxima_cell("--credits --file out.txt", "f(x):=x^2;\n\nf(3);\n")

        cell_session.assert_called_once_with(
            ["f(x):=x^2;", "f(3);"],
            credits=True,
            output_file="out.txt",
            plot_dir="plots",
            session=self.session,
        )

    @mock.patch("maxima_notebook.magics.maxima_cell_session")
    def testEmptyCell(self, cell_session):
        self.magics.maxima_cell("", "\n   \n")
        cell_session.assert_not_called()


class TestExtension(unittest.TestCase):
    def testLoadExtension(self):
        ip = InteractiveShell.instance()
        load_ipython_extension(ip)

        self.assertIn("maxima", ip.magics_manager.magics["line"])
        self.assertIn("maxima", ip.magics_manager.magics["cell"])


if __name__ == "__main__":
    unittest.main()
