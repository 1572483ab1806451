"""
bundle.py - Parsing for bundle.yaml files.

The parsed document keeps the loaded YAML untouched in `BundleDocument.raw`
so that a rewrite can reproduce every field it does not understand,
in its original order. The typed `ApplicationSpec` views are what the
rest of the pipeline reasons about.

See https://juju.is/docs/olm/bundle-reference
"""

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from bundlelib.errors import BundleException, ReferenceError, SchemaError

BUILD_TOOLS = ("charmcraft", "charm")

_APPLICATION_KEYS = (
    "charm",
    "source",
    "channel",
    "resources",
    "options",
    "series",
    "base",
    "build-options",
)


def _kind_error(path: str, expected: str, value) -> SchemaError:
    return SchemaError(path, f"expected a {expected}, got {type(value).__name__}")


def _optional_str(data: Mapping, key: str, path: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _kind_error(f"{path}.{key}", "string", value)
    return value


def _optional_mapping(data: Mapping, key: str, path: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _kind_error(f"{path}.{key}", "mapping", value)
    return dict(value)


@dataclass(frozen=True)
class BuildOptions:
    """Options which influence how a charm source tree is built.

    Unset fields take their value from the command line defaults.
    """

    tool: Optional[str] = None
    destructive_mode: Optional[bool] = None
    args: tuple = ()

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "BuildOptions":
        tool = _optional_str(data, "tool", path)
        if tool is not None and tool not in BUILD_TOOLS:
            raise SchemaError(
                f"{path}.tool", f"'{tool}' is not one of: {', '.join(BUILD_TOOLS)}"
            )
        destructive = data.get("destructive-mode")
        if destructive is not None and not isinstance(destructive, bool):
            raise _kind_error(f"{path}.destructive-mode", "boolean", destructive)
        args = data.get("args") or []
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise _kind_error(f"{path}.args", "sequence of strings", args)
        unknown = set(data) - {"tool", "destructive-mode", "args"}
        if unknown:
            raise SchemaError(
                path, f"unknown build options: {', '.join(sorted(unknown))}"
            )
        return cls(tool=tool, destructive_mode=destructive, args=tuple(args))

    def merged(self, defaults: "BuildOptions") -> "BuildOptions":
        return BuildOptions(
            tool=self.tool if self.tool is not None else defaults.tool,
            destructive_mode=(
                self.destructive_mode
                if self.destructive_mode is not None
                else defaults.destructive_mode
            ),
            args=self.args or defaults.args,
        )


@dataclass
class ApplicationSpec:
    """One entry of a bundle's applications mapping."""

    name: str
    charm: Optional[str] = None
    source: Optional[str] = None
    channel: Optional[str] = None
    resources: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    series: Optional[str] = None
    base: Optional[str] = None
    build_options: BuildOptions = field(default_factory=BuildOptions)
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data, path: str) -> "ApplicationSpec":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise _kind_error(path, "mapping", data)
        resources = _optional_mapping(data, "resources", path)
        for key, value in resources.items():
            if not isinstance(value, (str, int)) or isinstance(value, bool):
                raise _kind_error(
                    f"{path}.resources.{key}", "string or revision", value
                )
        series = data.get("series")
        return cls(
            name=name,
            charm=_optional_str(data, "charm", path),
            source=_optional_str(data, "source", path),
            channel=_optional_str(data, "channel", path),
            resources=resources,
            options=_optional_mapping(data, "options", path),
            series=None if series is None else str(series),
            base=_optional_str(data, "base", path),
            build_options=BuildOptions.from_dict(
                _optional_mapping(data, "build-options", path), f"{path}.build-options"
            ),
            extras={k: v for k, v in data.items() if k not in _APPLICATION_KEYS},
        )


def _relation_app(endpoint: str) -> str:
    """`app:endpoint` -> `app`"""
    return endpoint.split(":", 1)[0]


class BundleDocument:
    """A loaded bundle.yaml."""

    def __init__(self, raw: Dict[str, Any], path: Optional[Path] = None):
        if not isinstance(raw, dict):
            raise _kind_error("bundle", "mapping", raw)
        self.raw = raw
        self.path = Path(path) if path else None
        self.apps_key = "applications"
        if "services" in raw and "applications" not in raw:
            self.apps_key = "services"

        raw_apps = raw.get(self.apps_key)
        if raw_apps is None:
            raise SchemaError("applications", "required field is missing")
        if not isinstance(raw_apps, dict):
            raise _kind_error(self.apps_key, "mapping", raw_apps)
        self.applications: Dict[str, ApplicationSpec] = {
            str(name): ApplicationSpec.from_dict(
                str(name), value, f"{self.apps_key}.{name}"
            )
            for name, value in raw_apps.items()
        }
        self.relations = self._parse_relations(raw.get("relations"))
        self.validate()

    def __repr__(self):
        where = self.path or "<memory>"
        return f"<BundleDocument: {where} ({len(self.applications)} applications)>"

    @staticmethod
    def _parse_relations(raw) -> List[List[str]]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise _kind_error("relations", "sequence", raw)
        relations = []
        for i, pair in enumerate(raw):
            path = f"relations[{i}]"
            if not isinstance(pair, list) or len(pair) != 2:
                raise SchemaError(path, "expected a pair of endpoints")
            if not all(isinstance(endpoint, str) for endpoint in pair):
                raise SchemaError(path, "endpoints must be strings")
            relations.append(list(pair))
        return relations

    def validate(self):
        """Every relation endpoint must name an application of this bundle."""
        for i, pair in enumerate(self.relations):
            for endpoint in pair:
                app = _relation_app(endpoint)
                if app not in self.applications:
                    raise ReferenceError(app, "application", f"relations[{i}]")

    @property
    def directory(self) -> Path:
        """Directory that relative charm paths are resolved against."""
        if self.path is None:
            return Path.cwd()
        return self.path.absolute().parent

    @property
    def raw_applications(self) -> Dict[str, Any]:
        return self.raw[self.apps_key]

    @classmethod
    def loads(cls, text, path=None) -> "BundleDocument":
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as ex:
            where = f" in {path}" if path else ""
            raise SchemaError("bundle", f"invalid YAML{where}: {ex}") from ex
        return cls(raw, path)

    @classmethod
    def load(cls, path) -> "BundleDocument":
        path = Path(path)
        if not path.is_file():
            raise BundleException(f"Bundle file {path} not found")
        try:
            text = path.read_text(encoding="utf8")
        except UnicodeDecodeError as ex:
            raise SchemaError("bundle", f"{path} is not UTF-8 text") from ex
        return cls.loads(text, path)

    def dumps(self) -> str:
        return yaml.safe_dump(self.raw, sort_keys=False, default_flow_style=False)

    def save(self, path):
        Path(path).write_text(self.dumps(), encoding="utf8")

    def subset(self, names: Iterable[str]) -> "BundleDocument":
        """Narrow the bundle to the named applications.

        Relations are kept only when both ends are still present. An empty
        selection returns a copy of the whole bundle.
        """
        names = list(names)
        raw = copy.deepcopy(self.raw)
        if not names:
            return BundleDocument(raw, self.path)
        for name in names:
            if name not in self.applications:
                raise ReferenceError(name, "application", "--app")
        raw[self.apps_key] = {
            name: spec
            for name, spec in raw[self.apps_key].items()
            if str(name) in names
        }
        if "relations" in raw:
            raw["relations"] = [
                pair
                for pair in raw["relations"] or []
                if all(_relation_app(endpoint) in names for endpoint in pair)
            ]
        return BundleDocument(raw, self.path)
