"""Errors raised while resolving, building and deploying a bundle.

Structural errors (schema, reference, conflict) are raised before any
external process runs. Build failures are collected per unit and raised
together once every unit has finished.
"""

from typing import Iterable, List


class BundleException(Exception):
    """Base of every error raised by bundlelib."""


class SchemaError(BundleException):
    """A metadata or bundle document is malformed."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}" if path else message)


class ReferenceError(BundleException):
    """A name refers to something that was never declared."""

    def __init__(self, name: str, kind: str, owner: str = ""):
        self.name = name
        self.kind = kind
        self.owner = owner
        where = f" (referenced by {owner})" if owner else ""
        super().__init__(f"Unknown {kind} '{name}'{where}")


class ConflictError(BundleException):
    """One source path was requested with incompatible build options."""

    def __init__(self, path, applications: Iterable[str]):
        self.path = path
        self.applications = list(applications)
        super().__init__(
            f"Conflicting build options for {path} requested by "
            + ", ".join(self.applications)
        )


class BuildError(BundleException):
    """One or more build units failed; nothing was deployed."""

    def __init__(self, failures: List["BuildFailure"]):  # noqa: F821
        self.failures = list(failures)
        count = len(self.failures)
        plural = "s" if count > 1 else ""
        lines = [f"Encountered {count} Charm Build Failure{plural}:"]
        for failure in self.failures:
            lines.append(f"\t{failure}")
        super().__init__("\n".join(lines))


class DeployFailure(BundleException):
    """The deploy command exited non-zero."""

    def __init__(self, returncode: int, command: str = "juju deploy"):
        self.returncode = returncode
        self.command = command
        super().__init__(f"`{command}` exited with status {returncode}")
