"""Turn classified applications into a deduplicated set of builds."""

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping

from bundlelib import log
from bundlelib.bundle import BuildOptions, BundleDocument
from bundlelib.classify import Classification, Local
from bundlelib.errors import ConflictError
from bundlelib.metadata import CharmSource

DEFAULT_OPTIONS = BuildOptions(destructive_mode=False)


@dataclass(frozen=True)
class BuildUnit:
    """Build the charm at `source` with `options`."""

    source: Path
    options: BuildOptions
    charm: CharmSource = field(compare=False, hash=False, repr=False)

    @property
    def digest(self) -> str:
        options = {
            "tool": self.options.tool,
            "destructive-mode": self.options.destructive_mode,
            "args": list(self.options.args),
        }
        blob = json.dumps(options, sort_keys=True).encode()
        return hashlib.sha256(blob).hexdigest()[:12]

    @property
    def identity(self) -> str:
        return f"{self.source}#{self.digest}"

    @property
    def name(self) -> str:
        return self.charm.name

    def __str__(self):
        return f"{self.name} ({self.source}, {self.options.tool})"


@dataclass
class BuildPlan:
    """Units in first-seen order plus which application each one serves."""

    units: List[BuildUnit] = field(default_factory=list)
    assignments: Dict[str, str] = field(default_factory=dict)

    def unit(self, identity: str) -> BuildUnit:
        return next(unit for unit in self.units if unit.identity == identity)

    def unit_for(self, application: str) -> BuildUnit:
        return self.unit(self.assignments[application])

    def applications_for(self, unit: BuildUnit) -> List[str]:
        return [
            app for app, ident in self.assignments.items() if ident == unit.identity
        ]

    def __len__(self):
        return len(self.units)


def resolve_options(
    options: BuildOptions, defaults: BuildOptions, charm: CharmSource
) -> BuildOptions:
    """Fill unset options from defaults, picking a build tool if none was named."""
    options = options.merged(defaults)
    tool = options.tool or ("charm" if charm.reactive else "charmcraft")
    return BuildOptions(
        tool=tool,
        destructive_mode=bool(options.destructive_mode),
        args=options.args,
    )


def plan_builds(
    bundle: BundleDocument,
    classifications: Mapping[str, Classification],
    defaults: BuildOptions = DEFAULT_OPTIONS,
) -> BuildPlan:
    """
    Group local applications by canonical source path.

    Raises ConflictError, before anything is built, when one path is
    requested with different options.
    """
    groups: Dict[Path, List] = {}
    charms: Dict[Path, CharmSource] = {}
    for name, classification in classifications.items():
        if not isinstance(classification, Local):
            continue
        canonical = classification.path.resolve()
        if canonical not in charms:
            charms[canonical] = CharmSource.load(canonical)
        options = resolve_options(
            bundle.applications[name].build_options, defaults, charms[canonical]
        )
        groups.setdefault(canonical, []).append((name, options))

    plan = BuildPlan()
    for canonical, requests in groups.items():
        distinct = {options for _, options in requests}
        if len(distinct) > 1:
            raise ConflictError(canonical, [name for name, _ in requests])
        unit = BuildUnit(canonical, distinct.pop(), charms[canonical])
        plan.units.append(unit)
        for name, _ in requests:
            plan.assignments[name] = unit.identity
        log.info(f"Planned {unit} for {', '.join(n for n, _ in requests)}")
    return plan
