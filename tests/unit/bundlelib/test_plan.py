"""Tests to verify bundlelib.plan."""

import pytest

from bundlelib.bundle import BuildOptions, BundleDocument
from bundlelib.classify import classify_bundle
from bundlelib.errors import ConflictError
from bundlelib.plan import BuildUnit, plan_builds


def _plan(path, **kwargs):
    bundle = BundleDocument.load(path)
    return plan_builds(bundle, classify_bundle(bundle), **kwargs)


def test_remote_applications_are_not_planned(charm_factory, bundle_factory):
    charm_factory("super-app")
    plan = _plan(
        bundle_factory(
            {
                "applications": {
                    "postgresql": {"charm": "ch:postgresql"},
                    "super-app": {"charm": "./super-app"},
                }
            }
        )
    )
    assert len(plan) == 1
    assert plan.assignments == {"super-app": plan.units[0].identity}
    assert plan.unit_for("super-app").name == "super-app"


def test_shared_source_is_built_once(tmp_path, charm_factory, bundle_factory):
    path = charm_factory("shared-charm")
    plan = _plan(
        bundle_factory(
            {
                "applications": {
                    "app-a": {"charm": "./shared-charm"},
                    "app-b": {"charm": "./shared-charm/"},
                    "app-c": {"charm": str(path)},
                }
            }
        )
    )
    assert len(plan) == 1
    unit = plan.units[0]
    assert unit.source == path.resolve()
    assert plan.applications_for(unit) == ["app-a", "app-b", "app-c"]


def test_symlink_is_the_same_source(tmp_path, charm_factory, bundle_factory):
    path = charm_factory("real-charm")
    (tmp_path / "linked-charm").symlink_to(path, target_is_directory=True)
    plan = _plan(
        bundle_factory(
            {
                "applications": {
                    "app-a": {"charm": "./real-charm"},
                    "app-b": {"charm": "./linked-charm"},
                }
            }
        )
    )
    assert len(plan) == 1
    assert plan.unit_for("app-a") is plan.unit_for("app-b")


def test_conflicting_options(charm_factory, bundle_factory):
    path = charm_factory("shared-charm")
    with pytest.raises(ConflictError) as ie:
        _plan(
            bundle_factory(
                {
                    "applications": {
                        "app-a": {"charm": "./shared-charm"},
                        "app-b": {
                            "charm": "./shared-charm",
                            "build-options": {"destructive-mode": True},
                        },
                    }
                }
            )
        )
    assert ie.value.path == path.resolve()
    assert ie.value.applications == ["app-a", "app-b"]


def test_explicit_default_is_not_a_conflict(charm_factory, bundle_factory):
    charm_factory("shared-charm")
    plan = _plan(
        bundle_factory(
            {
                "applications": {
                    "app-a": {"charm": "./shared-charm"},
                    "app-b": {
                        "charm": "./shared-charm",
                        "build-options": {"tool": "charmcraft"},
                    },
                }
            }
        )
    )
    assert len(plan) == 1


def test_units_in_first_seen_order(charm_factory, bundle_factory):
    for name in ("zeta", "alpha", "mid"):
        charm_factory(name)
    plan = _plan(
        bundle_factory(
            {
                "applications": {
                    "z": {"charm": "./zeta"},
                    "a": {"charm": "./alpha"},
                    "z2": {"charm": "./zeta"},
                    "m": {"charm": "./mid"},
                }
            }
        )
    )
    assert [unit.name for unit in plan.units] == ["zeta", "alpha", "mid"]


def test_tool_selection(charm_factory, bundle_factory):
    charm_factory("operator")
    charm_factory("layered", reactive=True)
    plan = _plan(
        bundle_factory(
            {
                "applications": {
                    "op": {"charm": "./operator"},
                    "layered": {"charm": "./layered"},
                }
            }
        )
    )
    assert plan.unit_for("op").options.tool == "charmcraft"
    assert plan.unit_for("layered").options.tool == "charm"


def test_defaults_apply(charm_factory, bundle_factory):
    charm_factory("operator")
    plan = _plan(
        bundle_factory({"applications": {"op": {"charm": "./operator"}}}),
        defaults=BuildOptions(destructive_mode=True),
    )
    assert plan.unit_for("op").options == BuildOptions(
        tool="charmcraft", destructive_mode=True
    )


def test_identity_depends_on_options(tmp_path):
    plain = BuildUnit(tmp_path, BuildOptions("charmcraft", False), None)
    again = BuildUnit(tmp_path, BuildOptions("charmcraft", False), None)
    destructive = BuildUnit(tmp_path, BuildOptions("charmcraft", True), None)
    assert plain.identity == again.identity
    assert plain.identity != destructive.identity
