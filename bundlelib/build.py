# -*- coding: utf-8 -*-
"""
build.py - Run the external charm build tools for a BuildPlan.

Each unit is one bounded invocation of `charmcraft pack` or `charm build`
with no retry. Units run on a thread pool; a failing unit never stops
the others, but its failure is kept so the caller can refuse to deploy.
"""

import re
import shutil
import subprocess
import threading
import traceback
from dataclasses import dataclass
from multiprocessing.pool import ThreadPool
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union

import click

from bundlelib import paths
from bundlelib.log import DebugMixin
from bundlelib.plan import BuildPlan, BuildUnit
from bundlelib.run import CmdResult, capture


@dataclass(frozen=True)
class BuildFailure:
    unit: BuildUnit
    detail: str
    returncode: Optional[int] = None

    def __str__(self):
        lines = [line for line in self.detail.splitlines() if line.strip()]
        reason = lines[-1].strip() if lines else "no output"
        status = f"exit {self.returncode}" if self.returncode is not None else "error"
        return f"{self.unit.name} ({self.unit.source}) [{status}]: {reason}"


Outcome = Union[Path, BuildFailure]


class BuildResults:
    """Outcome of every unit of a plan, each recorded exactly once."""

    def __init__(self, plan: BuildPlan):
        self.plan = plan
        self._outcomes: Dict[str, Outcome] = {}
        self._lock = threading.Lock()
        self._sealed = False

    def record(self, unit: BuildUnit, outcome: Outcome):
        with self._lock:
            if self._sealed:
                raise RuntimeError("Build results are sealed")
            if unit.identity in self._outcomes:
                raise RuntimeError(f"{unit} already has a result")
            self._outcomes[unit.identity] = outcome

    def seal(self):
        self._sealed = True

    def __getitem__(self, unit: BuildUnit) -> Outcome:
        return self._outcomes[unit.identity]

    def __len__(self):
        return len(self._outcomes)

    @property
    def outcomes(self) -> Mapping[str, Outcome]:
        return MappingProxyType(self._outcomes)

    @property
    def failures(self) -> List[BuildFailure]:
        """Failures in plan order, regardless of which unit finished first."""
        return [
            self._outcomes[unit.identity]
            for unit in self.plan.units
            if isinstance(self._outcomes.get(unit.identity), BuildFailure)
        ]

    @property
    def ok(self) -> bool:
        return len(self._outcomes) == len(self.plan.units) and not self.failures

    def artifacts(self) -> Dict[str, Path]:
        """Application name -> built artifact for every successful unit."""
        artifacts = {}
        for app, identity in self.plan.assignments.items():
            outcome = self._outcomes.get(identity)
            if isinstance(outcome, Path):
                artifacts[app] = outcome
        return artifacts


class BuildTool(DebugMixin):
    """One external build invocation for a unit."""

    env: Mapping[str, str] = {}

    def __init__(self, unit: BuildUnit, workdir: Path):
        self.unit = unit
        self.name = unit.name
        self.workdir = workdir

    def echo(self, msg, **kwds):
        """Click echo wrapper."""
        click.echo(f"[{self.name}] {msg}", **kwds)

    def command(self) -> List[str]:
        raise NotImplementedError

    def artifact(self, result: CmdResult) -> Optional[Path]:
        raise NotImplementedError


class Charmcraft(BuildTool):
    """`charmcraft pack`, run from the unit's output directory."""

    CREATED = re.compile(r"Created '(\S+)'", re.MULTILINE)
    env = {"CHARMCRAFT_DEVELOPER": "y"}

    def command(self) -> List[str]:
        args = ["charmcraft", "pack", "-p", str(self.unit.source)]
        if self.unit.options.destructive_mode:
            args.append("--destructive-mode")
        return args + list(self.unit.options.args)

    def artifact(self, result: CmdResult) -> Optional[Path]:
        created = self.CREATED.findall(result.output)
        if created:
            path = Path(created[-1])
            return path if path.is_absolute() else self.workdir / path
        packed = sorted(self.workdir.glob("*.charm"))
        if len(packed) == 1:
            return packed[0]
        return None


class CharmTools(BuildTool):
    """`charm build` for reactive charms, assembled into $CHARM_BUILD_DIR."""

    def command(self) -> List[str]:
        args = [
            "charm",
            "build",
            str(self.unit.source),
            "--cache-dir",
            str(paths.charm_cache_dir(self.unit.source.name)),
        ]
        return args + list(self.unit.options.args)

    def artifact(self, result: CmdResult) -> Optional[Path]:
        built = paths.charm_build_dir() / self.unit.name
        return built if built.exists() else None


TOOLS = {"charmcraft": Charmcraft, "charm": CharmTools}


class BuildExecutor(DebugMixin):
    """Build every unit of a plan on a bounded pool of workers."""

    name = "build"

    def __init__(self, jobs: Optional[int] = None, output_dir: Optional[Path] = None):
        self.jobs = max(jobs or paths.build_jobs(), 1)
        self.output_dir = (
            Path(output_dir).absolute() if output_dir else paths.charm_build_dir()
        )
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._running: Dict[str, subprocess.Popen] = {}

    def _workdir(self, unit: BuildUnit) -> Path:
        workdir = self.output_dir / f"{unit.name}-{unit.digest}"
        workdir.mkdir(parents=True, exist_ok=True)
        return workdir

    def _track(self, unit: BuildUnit, process: subprocess.Popen):
        with self._lock:
            self._running[unit.identity] = process
        if self._cancelled.is_set():
            process.terminate()

    def build_unit(self, unit: BuildUnit) -> Outcome:
        """Run the build tool once for a single unit."""
        if self._cancelled.is_set():
            return BuildFailure(unit, "cancelled before start")
        tool = TOOLS[unit.options.tool](unit, self._workdir(unit))
        command = tool.command()
        tool.info(f"Building with: {' '.join(command)}")
        result = capture(
            command,
            echo=tool.echo,
            env=tool.env,
            cwd=str(tool.workdir),
            on_start=lambda process: self._track(unit, process),
        )
        with self._lock:
            self._running.pop(unit.identity, None)
        if self._cancelled.is_set():
            return BuildFailure(unit, "cancelled", result.returncode)
        if not result.ok:
            tool.error(f"Failed to build, exit status {result.returncode}")
            return BuildFailure(unit, result.output, result.returncode)
        artifact = tool.artifact(result)
        if artifact is None:
            tool.error("Build succeeded but no artifact was found")
            return BuildFailure(
                unit,
                result.output + "\nNo artifact produced by " + command[0],
                result.returncode,
            )
        tool.info(f"Built {artifact}")
        return artifact

    def cancel(self):
        """Stop every running build."""
        self._cancelled.set()
        with self._lock:
            running = list(self._running.values())
        for process in running:
            if process.poll() is None:
                process.terminate()

    def _discard(self, outcomes: List[Outcome]):
        for outcome in outcomes:
            if not isinstance(outcome, Path) or not outcome.exists():
                continue
            self.info(f"Discarding {outcome}")
            if outcome.is_dir():
                shutil.rmtree(outcome, ignore_errors=True)
            else:
                outcome.unlink()

    def run(self, plan: BuildPlan) -> BuildResults:
        """Build all units; results are complete when this returns."""
        results = BuildResults(plan)
        if not plan.units:
            results.seal()
            return results

        finished: List[Outcome] = []

        def _work(unit: BuildUnit):
            try:
                outcome = self.build_unit(unit)
            except Exception:
                outcome = BuildFailure(unit, traceback.format_exc())
            finished.append(outcome)
            results.record(unit, outcome)
            return outcome

        self.info(f"Building {len(plan.units)} unit(s) with {self.jobs} worker(s)")
        pool = ThreadPool(processes=min(self.jobs, len(plan.units)))
        try:
            pool.map(_work, plan.units)
        except KeyboardInterrupt:
            self.error("Interrupted, stopping all builds")
            self.cancel()
            pool.terminate()
            self._discard(finished)
            raise
        finally:
            pool.close()
            pool.join()
        results.seal()
        for failure in results.failures:
            self.error(f"Build failed: {failure}")
        return results
