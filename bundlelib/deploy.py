"""Hand a bundle over to `juju`."""

import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Sequence

from bundlelib.bundle import BundleDocument
from bundlelib.log import DebugMixin
from bundlelib.run import passthrough


class Juju(DebugMixin):
    """Thin wrapper over the juju client, attached to this terminal."""

    name = "juju"

    def __init__(self, executable: str = "juju"):
        self.executable = executable

    def _run(self, *args) -> int:
        command = [self.executable, *map(str, args)]
        self.debug(f"Running: {' '.join(command)}")
        return passthrough(command)

    def deploy(self, bundle: BundleDocument, deploy_args: Sequence[str] = ()) -> int:
        """
        Deploy a bundle, returning juju's exit status.

        The document is written next to the original bundle so relative
        paths inside it (local resources, overlays) still resolve.
        """
        fd, tmp_path = tempfile.mkstemp(
            prefix=".juju-bundle-", suffix=".yaml", dir=str(bundle.directory)
        )
        tmp_path = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf8") as fwrite:
                fwrite.write(bundle.dumps())
            self.info(f"Deploying bundle from {bundle.path or tmp_path}")
            return self._run("deploy", tmp_path, *deploy_args)
        finally:
            tmp_path.unlink()

    def remove_applications(self, names: Iterable[str]) -> List[int]:
        """Remove each application, returning every exit status."""
        return [self._run("remove-application", name) for name in names]

    def wait(self, timeout: int) -> int:
        """Wait for the model to settle using the juju-wait plugin."""
        return self._run("wait", "-wv", "-t", timeout)
