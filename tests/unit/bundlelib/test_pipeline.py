"""Tests to verify bundlelib.pipeline."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from bundlelib.build import BuildExecutor
from bundlelib.bundle import BuildOptions
from bundlelib.deploy import Juju
from bundlelib.errors import BuildError, ConflictError, DeployFailure
from bundlelib.pipeline import Pipeline, PipelineOptions


@pytest.fixture()
def juju(monkeypatch):
    """Juju client whose commands are recorded instead of run."""
    calls = []

    def _passthrough(command):
        if command[1] == "deploy":
            calls.append(command[:2] + [yaml.safe_load(Path(command[2]).read_text())])
        else:
            calls.append(command)
        return juju.status

    juju = Juju()
    juju.status = 0
    juju.calls = calls
    monkeypatch.setattr("bundlelib.deploy.passthrough", _passthrough)
    return juju


@pytest.fixture()
def super_bundle(build_env, charm_factory, bundle_factory):
    charm_factory("super-app")
    charm_factory("charms/helper")
    return bundle_factory(
        {
            "description": "pipeline test",
            "applications": {
                "super-app": {"charm": "./super-app", "scale": 1},
                "helper": {"scale": 2},
                "postgresql": {"charm": "ch:postgresql", "channel": "14/stable"},
            },
            "relations": [["super-app:db", "postgresql:db"]],
        }
    )


def _pipeline(path, juju, tmp_path, **options):
    executor = BuildExecutor(jobs=2, output_dir=tmp_path / "out")
    return Pipeline(path, PipelineOptions(**options), executor=executor, juju=juju)


def test_deploy(super_bundle, juju, fake_tools, tmp_path):
    status = _pipeline(super_bundle, juju, tmp_path).deploy(["-m", "test"])

    assert status == 0
    assert len(fake_tools.calls) == 2
    (command,) = juju.calls
    assert command[:2] == ["juju", "deploy"]
    deployed = command[2]
    apps = deployed["applications"]
    assert apps["super-app"]["charm"].endswith("super-app_ubuntu-22.04-amd64.charm")
    assert apps["helper"] == {
        "scale": 2,
        "charm": apps["helper"]["charm"],
    }
    assert apps["helper"]["charm"].endswith("helper_ubuntu-22.04-amd64.charm")
    assert apps["postgresql"] == {"charm": "ch:postgresql", "channel": "14/stable"}
    assert deployed["relations"] == [["super-app:db", "postgresql:db"]]


def test_build_failure_blocks_deploy(super_bundle, juju, fake_tools, tmp_path):
    fake_tools.fail = {"helper"}
    pipeline = _pipeline(super_bundle, juju, tmp_path)
    with pytest.raises(BuildError) as ie:
        pipeline.deploy()
    assert [f.unit.name for f in ie.value.failures] == ["helper"]
    # the other unit still ran to completion
    assert len(fake_tools.calls) == 2
    assert juju.calls == []


def test_conflict_blocks_builds(
    build_env, charm_factory, bundle_factory, juju, fake_tools, tmp_path
):
    charm_factory("shared")
    path = bundle_factory(
        {
            "applications": {
                "a": {"charm": "./shared"},
                "b": {"charm": "./shared", "build-options": {"args": ["-v"]}},
            }
        }
    )
    with pytest.raises(ConflictError):
        _pipeline(path, juju, tmp_path).deploy()
    assert fake_tools.calls == []
    assert juju.calls == []


def test_deploy_failure(super_bundle, juju, fake_tools, tmp_path):
    juju.status = 2
    with pytest.raises(DeployFailure) as ie:
        _pipeline(super_bundle, juju, tmp_path).deploy()
    assert ie.value.returncode == 2
    assert ie.value.command == "juju deploy"


def test_recreate_and_wait(super_bundle, juju, fake_tools, tmp_path):
    _pipeline(super_bundle, juju, tmp_path).deploy(recreate=True, wait=60)
    assert [call[:2] for call in juju.calls] == [
        ["juju", "remove-application"],
        ["juju", "remove-application"],
        ["juju", "remove-application"],
        ["juju", "wait"],
        ["juju", "deploy"],
    ]
    assert juju.calls[3] == ["juju", "wait", "-wv", "-t", "60"]


def test_wait_failure(super_bundle, juju, fake_tools, tmp_path):
    juju.status = 1
    with pytest.raises(DeployFailure) as ie:
        _pipeline(super_bundle, juju, tmp_path).deploy(wait=60)
    assert ie.value.command == "juju wait"
    assert [call[1] for call in juju.calls] == ["wait"]


def test_selected_apps(super_bundle, juju, fake_tools, tmp_path):
    pipeline = _pipeline(
        super_bundle, juju, tmp_path, apps=["super-app", "postgresql"]
    )
    rewritten = pipeline.prepare()
    assert list(rewritten.applications) == ["super-app", "postgresql"]
    assert len(fake_tools.calls) == 1
    assert len(pipeline.plan) == 1


def test_defaults_reach_the_build_tool(super_bundle, juju, fake_tools, tmp_path):
    _pipeline(
        super_bundle, juju, tmp_path, defaults=BuildOptions(destructive_mode=True)
    ).prepare()
    assert all("--destructive-mode" in call for call in fake_tools.calls)


def test_remove(super_bundle, juju):
    pipeline = Pipeline(super_bundle, juju=juju, executor=MagicMock())
    assert pipeline.remove() == 0
    assert [call[2] for call in juju.calls] == ["super-app", "helper", "postgresql"]

    juju.status = 1
    assert pipeline.remove() == 1
