"""Run kubectl against the Kubernetes cluster behind a juju model."""

import os
import tempfile
from dataclasses import dataclass
from enum import Enum, unique
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import sh
import yaml

from bundlelib import log, paths
from bundlelib.errors import BundleException, ReferenceError
from bundlelib.run import passthrough

CONTROL_PLANE_UNITS = ("kubernetes-control-plane/0", "kubernetes-master/0")
NAMESPACE_FLAGS = ("-A", "--all-namespaces")


@unique
class Substrate(Enum):
    CDK = "cdk"
    MICROK8S = "microk8s"
    UNKNOWN = "unknown"


def parse_model_name(model_name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """`[<controller>:]<model>` -> (controller, model)"""
    if not model_name:
        return None, None
    if ":" in model_name:
        controller, model = model_name.split(":", 1)
        return controller or None, model or None
    return None, model_name


def is_namespaced(args: Sequence[str]) -> bool:
    return any(
        arg in NAMESPACE_FLAGS or arg.startswith("-n") or arg.startswith("--namespace")
        for arg in args
    )


@dataclass
class ModelRef:
    controller: str
    model: str
    region: Optional[str] = None

    @property
    def namespace(self) -> str:
        """Models are namespaced by owner, `admin/foo` lives in namespace `foo`."""
        return self.model.split("/")[-1]


class JujuData:
    """Read-only view of the juju client's controllers.yaml and models.yaml."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else paths.juju_data_dir()

    def _load(self, fname: str) -> dict:
        path = self.data_dir / fname
        if not path.exists():
            raise BundleException(f"Couldn't read {path}, is juju bootstrapped?")
        return yaml.safe_load(path.read_text(encoding="utf8")) or {}

    def resolve(self, model_name: Optional[str] = None) -> ModelRef:
        """Find the controller and model to operate in, defaulting to current ones."""
        controller_name, model = parse_model_name(model_name)
        controllers = self._load("controllers.yaml")
        controller_name = controller_name or controllers.get("current-controller")
        if not controller_name:
            raise BundleException("No active controller found")
        controller = (controllers.get("controllers") or {}).get(controller_name)
        if controller is None:
            raise ReferenceError(controller_name, "controller")

        models = (
            (self._load("models.yaml").get("controllers") or {}).get(controller_name)
            or {}
        )
        known = models.get("models") or {}
        model = model or models.get("current-model")
        if not model:
            raise BundleException(
                f"Could not determine model for controller {controller_name}"
            )
        matched = [
            name for name in known if name == model or name.split("/")[-1] == model
        ]
        if not matched:
            raise ReferenceError(model, "model", controller_name)
        return ModelRef(controller_name, matched[0], controller.get("region"))


def control_plane_unit(ref: ModelRef) -> Optional[str]:
    """Name of the Charmed Kubernetes control plane unit, if the controller has one."""
    try:
        status = sh.juju.status(
            "-m", f"{ref.controller}:default", "--format", "yaml", _tty_out=False
        )
    except sh.ErrorReturnCode as ex:
        log.warning(f"Couldn't determine cloud type: {ex.stderr.decode().strip()}")
        return None
    output = str(status)
    return next((unit for unit in CONTROL_PLANE_UNITS if unit in output), None)


def detect_substrate(ref: ModelRef) -> Tuple[Substrate, Optional[str]]:
    unit = control_plane_unit(ref)
    if unit:
        return Substrate.CDK, unit
    if ref.region == "localhost":
        return Substrate.MICROK8S, None
    return Substrate.UNKNOWN, None


def kubectl(
    args: Sequence[str], model_name: Optional[str] = None, data_dir=None
) -> int:
    """Run kubectl with args in the model's namespace, returning its exit status."""
    ref = JujuData(data_dir).resolve(model_name)
    args: List[str] = list(args)
    if not is_namespaced(args):
        args += ["-n", ref.namespace]

    substrate, unit = detect_substrate(ref)
    log.debug(f"Substrate for {ref.controller}: {substrate.value}")
    if substrate is Substrate.MICROK8S:
        return passthrough(["microk8s.kubectl", *args])
    if substrate is Substrate.CDK:
        fd, kubeconfig = tempfile.mkstemp(prefix="kubeconfig-")
        os.close(fd)
        try:
            sh.juju.scp(
                "-m", f"{ref.controller}:default", f"{unit}:~/config", kubeconfig
            )
            return passthrough(["kubectl", "--kubeconfig", kubeconfig, *args])
        except sh.ErrorReturnCode as ex:
            log.error(f"Couldn't fetch kubeconfig from {unit}: {ex.stderr.decode()}")
            return ex.exit_code
        finally:
            os.unlink(kubeconfig)
    log.warning("Couldn't determine cloud substrate! Using default kubeconfig")
    return passthrough(["kubectl", *args])
