"""Load, classify, plan, build, rewrite and deploy a bundle."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from bundlelib.build import BuildExecutor, BuildResults
from bundlelib.bundle import BuildOptions, BundleDocument
from bundlelib.classify import Local, classify_bundle
from bundlelib.deploy import Juju
from bundlelib.errors import BuildError, DeployFailure
from bundlelib.log import DebugMixin
from bundlelib.plan import DEFAULT_OPTIONS, BuildPlan, plan_builds
from bundlelib.rewrite import rewrite_bundle


@dataclass
class PipelineOptions:
    build: bool = False
    apps: Sequence[str] = ()
    defaults: BuildOptions = DEFAULT_OPTIONS
    jobs: Optional[int] = None
    output_dir: Optional[Path] = None
    fill_resources: bool = False


class Pipeline(DebugMixin):
    """One invocation of the build-then-deploy pipeline.

    All state (the plan and the build results) lives on this object and
    goes away with it.
    """

    name = "juju-bundle"

    def __init__(
        self,
        bundle_path,
        options: Optional[PipelineOptions] = None,
        executor: Optional[BuildExecutor] = None,
        juju: Optional[Juju] = None,
    ):
        self.bundle_path = Path(bundle_path)
        self.options = options or PipelineOptions()
        self.executor = executor or BuildExecutor(
            jobs=self.options.jobs, output_dir=self.options.output_dir
        )
        self.juju = juju or Juju()
        self.bundle: Optional[BundleDocument] = None
        self.plan: Optional[BuildPlan] = None
        self.results: Optional[BuildResults] = None

    def load(self) -> BundleDocument:
        bundle = BundleDocument.load(self.bundle_path)
        self.bundle = bundle.subset(self.options.apps)
        return self.bundle

    def prepare(self) -> BundleDocument:
        """Build what needs building and return the bundle to deploy.

        Raises BuildError, after every unit has run, if any unit failed.
        """
        bundle = self.load()
        classifications = classify_bundle(bundle, build=self.options.build)
        local = [n for n, c in classifications.items() if isinstance(c, Local)]
        self.info(f"Found {len(classifications)} total applications")
        self.info(f"Found {len(local)} applications to build")

        self.plan = plan_builds(bundle, classifications, self.options.defaults)
        self.results = self.executor.run(self.plan)
        if not self.results.ok:
            raise BuildError(self.results.failures)
        return rewrite_bundle(
            bundle, self.results, fill_resources=self.options.fill_resources
        )

    def deploy(
        self, deploy_args: Sequence[str] = (), recreate: bool = False, wait: int = 0
    ) -> int:
        """Run the whole pipeline; returns 0 or raises DeployFailure."""
        rewritten = self.prepare()
        if recreate:
            self.info("Removing bundle before deploy")
            self.juju.remove_applications(rewritten.applications)
        if wait > 0:
            self.info("Waiting for stability before deploying")
            status = self.juju.wait(wait)
            if status != 0:
                raise DeployFailure(status, "juju wait")
        status = self.juju.deploy(rewritten, deploy_args)
        if status != 0:
            raise DeployFailure(status)
        return status

    def remove(self) -> int:
        """Remove every application of the (selected) bundle."""
        bundle = self.load()
        statuses = self.juju.remove_applications(bundle.applications)
        return next((status for status in statuses if status), 0)
