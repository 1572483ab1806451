from dotenv import load_dotenv
from invoke import task

load_dotenv()


@task
def update_deps(c):
    """Syncs package dependencies"""
    c.run("pip install -e '.[test,dev]'")


@task
def format(c):
    """Formats py code"""
    c.run("black bundlelib tests tasks.py")


@task
def black_check(c):
    """Checks black format"""
    c.run("black --check bundlelib tests tasks.py")


@task
def flake8(c):
    """Runs flake8 against project"""
    c.run("flake8 --ignore=E501,W503 bundlelib tests")


@task(pre=[flake8, black_check])
def test(c):
    """Run unittest suite"""
    c.run("pytest -W error:UserWarning tests/unit")


@task
def deploy(c, bundle="bundle.yaml", model=None):
    """Build and deploy a bundle from this checkout"""
    args = f" -- -m {model}" if model else ""
    c.run(f"python -m bundlelib.cli deploy -b {bundle}{args}", pty=True)
