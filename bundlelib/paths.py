"""Locations of juju and charm build directories.

Each location can be overridden from the environment.
"""

import os
from pathlib import Path

DEFAULT_JOBS = 4


def _home() -> Path:
    return Path(os.environ.get("HOME") or "/root")


def _dir_from_env(env_var: str, suffix: str) -> Path:
    value = os.environ.get(env_var)
    if value:
        return Path(value)
    return _home() / suffix


def juju_data_dir() -> Path:
    return _dir_from_env("JUJU_DATA", ".local/share/juju")


def charm_build_dir() -> Path:
    """Where `charm build` writes reactive charms, always absolute."""
    if os.environ.get("CHARM_BUILD_DIR"):
        return Path(os.environ["CHARM_BUILD_DIR"]).absolute()
    if os.environ.get("JUJU_REPOSITORY"):
        return (Path(os.environ["JUJU_REPOSITORY"]) / "builds").absolute()
    return Path("/tmp/charm-builds")


def charm_source_dir() -> Path:
    return _dir_from_env("CHARM_SOURCE_DIR", "charms/source")


def charm_cache_dir(charm_name: str) -> Path:
    if os.environ.get("CHARM_CACHE_DIR"):
        return Path(os.environ["CHARM_CACHE_DIR"]) / charm_name
    return _home() / ".cache" / "charm" / charm_name


def build_jobs() -> int:
    """Default number of concurrent builds."""
    try:
        jobs = int(os.environ.get("JUJU_BUNDLE_JOBS", DEFAULT_JOBS))
    except ValueError:
        return DEFAULT_JOBS
    return max(jobs, 1)
