"""Shared fixtures for bundlelib tests."""

import os
from pathlib import Path

import pytest
import yaml

# keep the debug log sink out of the working tree
os.environ["JUJU_BUNDLE_LOG"] = ""

from bundlelib.run import CmdResult  # noqa: E402

TEST_PATH = Path(__file__).parent.parent.parent
STATIC_TEST_PATH = TEST_PATH / "data"
SUPER_CHARM = STATIC_TEST_PATH / "charms" / "super-charm"
BASIC_BUNDLE = STATIC_TEST_PATH / "bundles" / "bundle-basic.yaml"
JUJU_DATA = STATIC_TEST_PATH / "juju"


def write_charm(path: Path, name: str = None, reactive=False, **extra) -> Path:
    """Create a minimal charm source tree."""
    path.mkdir(parents=True, exist_ok=True)
    metadata = {
        "name": name or path.name,
        "summary": f"{name or path.name} summary",
        "description": "A test charm",
        **extra,
    }
    (path / "metadata.yaml").write_text(yaml.safe_dump(metadata, sort_keys=False))
    if reactive:
        (path / "layer.yaml").write_text("includes: ['layer:basic']\n")
    return path


def write_bundle(path: Path, document: dict) -> Path:
    path.write_text(yaml.safe_dump(document, sort_keys=False))
    return path


@pytest.fixture()
def charm_factory(tmp_path):
    def _factory(relative, **kwargs):
        return write_charm(tmp_path / relative, **kwargs)

    return _factory


@pytest.fixture()
def bundle_factory(tmp_path):
    def _factory(document, name="bundle.yaml"):
        return write_bundle(tmp_path / name, document)

    return _factory


@pytest.fixture()
def build_env(tmp_path, monkeypatch):
    """Point every build location at the test's temporary directory."""
    monkeypatch.setenv("CHARM_BUILD_DIR", str(tmp_path / "build"))
    monkeypatch.setenv("CHARM_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("CHARM_SOURCE_DIR", str(tmp_path / "sources"))
    monkeypatch.setenv("JUJU_DATA", str(JUJU_DATA))
    return tmp_path


class FakeBuildTools:
    """Stands in for bundlelib.build.capture, packing charms instantly."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []

    def __call__(self, command, echo=None, env=None, cwd=None, on_start=None):
        self.calls.append(list(command))
        tool = command[0]
        source = Path(command[3] if tool == "charmcraft" else command[2])
        if source.name in self.fail:
            return CmdResult(1, f"Packing {source.name}\nerror: broken charm")
        if tool == "charmcraft":
            charm = Path(cwd) / f"{source.name}_ubuntu-22.04-amd64.charm"
            charm.write_text("packed")
            return CmdResult(0, f"Packing the charm.\nCreated '{charm.name}'.")
        name = yaml.safe_load((source / "metadata.yaml").read_text())["name"]
        built = Path(os.environ["CHARM_BUILD_DIR"]) / name
        built.mkdir(parents=True, exist_ok=True)
        return CmdResult(0, "build: Composing into build directory")


@pytest.fixture()
def fake_tools(monkeypatch):
    tools = FakeBuildTools()
    monkeypatch.setattr("bundlelib.build.capture", tools)
    return tools
