import nox


@nox.session(python=["3.12", "3.13"])
def tests(session):
    session.run("uv", "-q", "pip", "install", ".[test]", external=True)
    session.run("python", "--version")
    session.run("pytest", "-n", "auto")
