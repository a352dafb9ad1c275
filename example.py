from maxima_notebook import MaximaRepl, MaximaSession, maxima_cell_session

if __name__ == "__main__":
    session = MaximaSession(debug=True)
    print(f"result={session.evaluate('diff(x^2, x)')}")
    print(f"result={session.evaluate_float('float(22/7)')}")

    maxima_cell_session(
        ["f(x):=x^2;", "f(3);", "integrate(f(x), x);"],
        session=session,
    )

    with MaximaRepl() as mi:
        result = mi.raw_command("a: 1/2;")
        print(f"result={result}")
        mi.reset()
        result = mi.raw_command("a;")
        print(f"result={result}")
