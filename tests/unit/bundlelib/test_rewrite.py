"""Tests to verify bundlelib.rewrite."""

from pathlib import Path

import pytest
import yaml

from bundlelib.build import BuildExecutor, BuildFailure, BuildResults
from bundlelib.bundle import BundleDocument
from bundlelib.classify import classify_bundle
from bundlelib.errors import BuildError
from bundlelib.plan import plan_builds
from bundlelib.rewrite import rewrite_bundle, substitute
from conftest import BASIC_BUNDLE


def test_substitute_only_changes_charm():
    bundle = BundleDocument.load(BASIC_BUNDLE)
    rewritten = substitute(bundle, {"super-app": Path("/tmp/super-app.charm")})

    expected = yaml.safe_load(BASIC_BUNDLE.read_text())
    expected["applications"]["super-app"]["charm"] = "/tmp/super-app.charm"
    assert rewritten.raw == expected
    assert list(rewritten.raw_applications["super-app"]) == list(
        expected["applications"]["super-app"]
    )
    # the loaded document is left alone
    assert bundle.applications["super-app"].charm == "./super-app"


def test_substitute_source_only_application():
    bundle = BundleDocument.loads(
        "applications:\n  foo:\n    source: ./foo\n    scale: 2\n"
    )
    rewritten = substitute(bundle, {"foo": Path("/tmp/foo.charm")})
    assert rewritten.raw_applications["foo"] == {
        "source": "./foo",
        "scale": 2,
        "charm": "/tmp/foo.charm",
    }


def test_substitute_services_alias():
    bundle = BundleDocument.loads("services:\n  foo:\n    charm: ./foo\n")
    rewritten = substitute(bundle, {"foo": Path("/tmp/foo.charm")})
    assert rewritten.raw == {"services": {"foo": {"charm": "/tmp/foo.charm"}}}


def _shared_bundle(charm_factory, bundle_factory):
    charm_factory("shared-charm")
    return BundleDocument.load(
        bundle_factory(
            {
                "applications": {
                    "app-a": {"charm": "./shared-charm", "scale": 1},
                    "app-b": {"charm": "./shared-charm", "scale": 3},
                    "db": {"charm": "ch:postgresql", "channel": "14/stable"},
                },
                "relations": [["app-a:db", "db:db"]],
            }
        )
    )


def test_shared_charm_single_artifact(
    build_env, charm_factory, bundle_factory, fake_tools, tmp_path
):
    bundle = _shared_bundle(charm_factory, bundle_factory)
    plan = plan_builds(bundle, classify_bundle(bundle))
    results = BuildExecutor(jobs=2, output_dir=tmp_path / "out").run(plan)
    rewritten = rewrite_bundle(bundle, results)

    assert len(fake_tools.calls) == 1
    apps = rewritten.raw_applications
    assert apps["app-a"]["charm"] == apps["app-b"]["charm"]
    assert apps["app-a"]["charm"].endswith("shared-charm_ubuntu-22.04-amd64.charm")
    assert apps["app-b"]["scale"] == 3
    assert apps["db"] == {"charm": "ch:postgresql", "channel": "14/stable"}
    assert rewritten.relations == bundle.relations


def test_failed_build_is_not_rewritten(charm_factory, bundle_factory, tmp_path):
    bundle = _shared_bundle(charm_factory, bundle_factory)
    plan = plan_builds(bundle, classify_bundle(bundle))
    results = BuildResults(plan)
    results.record(plan.units[0], BuildFailure(plan.units[0], "error: nope", 2))
    results.seal()

    with pytest.raises(BuildError) as ie:
        rewrite_bundle(bundle, results)
    assert len(ie.value.failures) == 1
    assert "Encountered 1 Charm Build Failure:" in str(ie.value)
    assert "error: nope" in str(ie.value)


def test_incomplete_results_are_not_rewritten(charm_factory, bundle_factory):
    bundle = _shared_bundle(charm_factory, bundle_factory)
    plan = plan_builds(bundle, classify_bundle(bundle))
    with pytest.raises(BuildError):
        rewrite_bundle(bundle, BuildResults(plan))


def test_fill_resources(build_env, charm_factory, bundle_factory, fake_tools, tmp_path):
    charm_factory(
        "app",
        resources={
            "app-image": {"type": "oci-image", "upstream-source": "app:1.0"},
            "sidecar-image": {"type": "oci-image", "upstream-source": "sidecar:2"},
        },
    )
    bundle = BundleDocument.load(
        bundle_factory(
            {
                "applications": {
                    "app": {
                        "charm": "./app",
                        "resources": {"sidecar-image": "sidecar:3"},
                    }
                }
            }
        )
    )
    plan = plan_builds(bundle, classify_bundle(bundle))
    results = BuildExecutor(jobs=1, output_dir=tmp_path / "out").run(plan)

    plain = rewrite_bundle(bundle, results)
    assert plain.raw_applications["app"]["resources"] == {"sidecar-image": "sidecar:3"}

    filled = rewrite_bundle(bundle, results, fill_resources=True)
    assert filled.raw_applications["app"]["resources"] == {
        "sidecar-image": "sidecar:3",
        "app-image": "app:1.0",
    }
