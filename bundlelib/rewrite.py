"""Point a bundle's built applications at their artifacts."""

import copy
from pathlib import Path
from typing import Mapping

from bundlelib import log
from bundlelib.build import BuildResults
from bundlelib.bundle import BundleDocument
from bundlelib.errors import BuildError


def substitute(bundle: BundleDocument, artifacts: Mapping[str, Path]) -> BundleDocument:
    """
    Copy the bundle, replacing `charm:` of each application in artifacts.

    Nothing else changes: key order, unknown fields and untouched
    applications are carried over as loaded. An application that only
    had `source:` gains a `charm:` key after its existing keys.
    """
    raw = copy.deepcopy(bundle.raw)
    applications = raw[bundle.apps_key]
    for name, artifact in artifacts.items():
        if applications.get(name) is None:
            applications[name] = {}
        applications[name]["charm"] = str(artifact)
        log.owned_by(name).debug(f"charm -> {artifact}")
    return BundleDocument(raw, bundle.path)


def rewrite_bundle(
    bundle: BundleDocument, results: BuildResults, fill_resources: bool = False
) -> BundleDocument:
    """
    Produce the bundle to deploy from a fully successful build.

    @param fill_resources: also supply upstream-source defaults for resources
        a built charm declares but the bundle leaves unset
    """
    if not results.ok:
        raise BuildError(results.failures)
    rewritten = substitute(bundle, results.artifacts())
    if fill_resources:
        applications = rewritten.raw_applications
        for name in results.plan.assignments:
            charm = results.plan.unit_for(name).charm
            configured = bundle.applications[name].resources
            resources = charm.resources_with_defaults(configured)
            if resources and resources != configured:
                applications[name]["resources"] = {**configured, **resources}
        rewritten = BundleDocument(rewritten.raw, bundle.path)
    return rewritten
