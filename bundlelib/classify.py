"""Decide which bundle applications must be built from local source."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from bundlelib import paths
from bundlelib.bundle import ApplicationSpec, BundleDocument
from bundlelib.errors import SchemaError

IMPLICIT_SOURCE_DIRS = (".", "charms", "operators")


@dataclass(frozen=True)
class Local:
    """A charm source tree on this machine."""

    path: Path


@dataclass(frozen=True)
class Remote:
    """A reference handed to juju untouched."""

    reference: str


Classification = Union[Local, Remote]


def _looks_like_path(reference: str) -> bool:
    """`./foo`, `/srv/foo`, `~/foo` and `charms/foo` are paths, `foo` is not."""
    return reference.startswith((".", "/", "~")) or "/" in reference


def _resolve(reference: str, bundle_dir: Path) -> Path:
    path = Path(reference).expanduser()
    if not path.is_absolute():
        path = bundle_dir / path
    return path


def source_path(source: str, bundle_dir: Path) -> Path:
    """
    Locate an application's `source:` directory.

    A source starting with `.` is relative to the bundle, anything else
    relative to $CHARM_SOURCE_DIR.
    """
    if source.startswith(".") or Path(source).expanduser().is_absolute():
        return _resolve(source, bundle_dir)
    return paths.charm_source_dir() / source


def implicit_source(name: str, bundle_dir: Path) -> Optional[Path]:
    """Find a source tree named after the application next to the bundle."""
    for parent in IMPLICIT_SOURCE_DIRS:
        candidate = bundle_dir / parent / name
        if candidate.is_dir():
            return candidate
    return None


def classify(
    app: ApplicationSpec, bundle_dir: Path, build: bool = False
) -> Classification:
    """
    Classify one application.

    @param app: the application entry
    @param bundle_dir: directory of the bundle document
    @param build: prefer `source:` over `charm:` when both are given
    """
    if app.source and (build or app.charm is None):
        path = source_path(app.source, bundle_dir)
        if path.is_dir():
            return Local(path)
        if app.charm is None:
            raise SchemaError(
                f"applications.{app.name}.source", f"{path} is not a directory"
            )

    if app.charm is not None:
        if _looks_like_path(app.charm):
            path = _resolve(app.charm, bundle_dir)
            if path.is_dir():
                return Local(path)
        return Remote(app.charm)

    path = implicit_source(app.name, bundle_dir)
    if path is None:
        raise SchemaError(
            f"applications.{app.name}", "has neither `charm` nor `source` set"
        )
    return Local(path)


def classify_bundle(
    bundle: BundleDocument, build: bool = False
) -> Dict[str, Classification]:
    """Classify every application, in bundle order."""
    return {
        name: classify(app, bundle.directory, build=build)
        for name, app in bundle.applications.items()
    }
