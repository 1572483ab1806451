# -*- coding: utf-8 -*-
"""
metadata.py - Typed view of a charm's metadata.yaml and config.yaml.

Documents are validated once while parsing; anything handed out of this
module is known to be structurally sound and internally consistent.

See https://juju.is/docs/sdk/metadata-reference
"""

import zipfile
from dataclasses import MISSING, dataclass, field, fields
from enum import Enum, unique
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from bundlelib.errors import BundleException, ReferenceError, SchemaError

_KIND_NAMES = {
    dict: "mapping",
    list: "sequence",
    str: "string",
    bool: "boolean",
    int: "integer",
    float: "number",
}


def _describe(value) -> str:
    if value is None:
        return "nothing"
    if isinstance(value, bool):
        return "boolean"
    for kind, name in _KIND_NAMES.items():
        if isinstance(value, kind):
            return name
    return type(value).__name__


def _join(path: str, key) -> str:
    return f"{path}.{key}" if path else str(key)


def _check(value, kind, path: str):
    """Ensure value is of kind, naming the field path if not."""
    if (kind in (int, float) and isinstance(value, bool)) or not isinstance(
        value, kind
    ):
        raise SchemaError(
            path, f"expected a {_KIND_NAMES[kind]}, got {_describe(value)}"
        )
    return value


def _required(data: Mapping, key: str, kind, path: str):
    if data.get(key) is None:
        raise SchemaError(_join(path, key), "required field is missing")
    return _check(data[key], kind, _join(path, key))


def _optional(data: Mapping, key: str, kind, path: str, default=None):
    value = data.get(key)
    if value is None:
        return default
    return _check(value, kind, _join(path, key))


def _string_list(data: Mapping, key: str, path: str) -> List[str]:
    items = _optional(data, key, list, path, default=[])
    return [
        _check(item, str, f"{_join(path, key)}[{i}]") for i, item in enumerate(items)
    ]


def _mapping_of(data: Mapping, key: str, path: str, parser) -> Dict[str, Any]:
    entries = _optional(data, key, dict, path, default={})
    here = _join(path, key)
    return {
        str(name): parser(_check(value, dict, _join(here, name)), _join(here, name))
        for name, value in entries.items()
    }


def _load_yaml(text, path: str, origin=None):
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as ex:
        where = f" in {origin}" if origin else ""
        raise SchemaError(path, f"invalid YAML{where}: {ex}") from ex


def _defaults(cls) -> Dict[str, Any]:
    defaults = {}
    for each in fields(cls):
        if each.default is not MISSING:
            defaults[each.name] = each.default
        elif each.default_factory is not MISSING:
            defaults[each.name] = each.default_factory()
    return defaults


def _attribute(key: str) -> str:
    """Document key -> dataclass attribute, `read-only` -> `read_only`."""
    return "kind" if key == "type" else key.replace("-", "_")


def _prune(obj, d: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose serialized value is the attribute's own default.

    Required attributes are always kept, and so is any value which would
    parse back to something other than the default (`series: []`).
    """
    defaults = _defaults(type(obj))
    return {
        k: v
        for k, v in d.items()
        if _attribute(k) not in defaults or v != defaults[_attribute(k)]
    }


@unique
class ResourceKind(Enum):
    FILE = "file"
    OCI_IMAGE = "oci-image"


@unique
class StorageKind(Enum):
    FILESYSTEM = "filesystem"
    BLOCK = "block"


@unique
class RelationScope(Enum):
    GLOBAL = "global"
    CONTAINER = "container"


def _enum(kind, data: Mapping, key: str, path: str, required=True):
    raw = (_required if required else _optional)(data, key, str, path)
    if raw is None:
        return None
    try:
        return kind(raw)
    except ValueError:
        choices = ", ".join(each.value for each in kind)
        raise SchemaError(
            _join(path, key), f"'{raw}' is not one of: {choices}"
        ) from None


@dataclass
class ContainerBase:
    name: str
    channel: str
    architectures: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "ContainerBase":
        return cls(
            name=_required(data, "name", str, path),
            channel=_required(data, "channel", str, path),
            architectures=_string_list(data, "architectures", path),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "channel": self.channel,
            "architectures": list(self.architectures),
        }


@dataclass
class ContainerMount:
    storage: str
    location: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "ContainerMount":
        return cls(
            storage=_required(data, "storage", str, path),
            location=_optional(data, "location", str, path),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _prune(self, {"storage": self.storage, "location": self.location})


@dataclass
class Container:
    """A workload container, created from either a resource or a base."""

    resource: Optional[str] = None
    bases: List[ContainerBase] = field(default_factory=list)
    mounts: List[ContainerMount] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "Container":
        resource = _optional(data, "resource", str, path)
        raw_bases = _optional(data, "bases", list, path, default=[])
        if resource is None and not raw_bases:
            raise SchemaError(path, "one of 'resource' or 'bases' is required")
        if resource is not None and raw_bases:
            raise SchemaError(path, "only one of 'resource' or 'bases' may be given")
        bases = [
            ContainerBase.from_dict(
                _check(each, dict, f"{path}.bases[{i}]"), f"{path}.bases[{i}]"
            )
            for i, each in enumerate(raw_bases)
        ]
        raw_mounts = _optional(data, "mounts", list, path, default=[])
        mounts = [
            ContainerMount.from_dict(
                _check(each, dict, f"{path}.mounts[{i}]"), f"{path}.mounts[{i}]"
            )
            for i, each in enumerate(raw_mounts)
        ]
        return cls(resource=resource, bases=bases, mounts=mounts)

    def to_dict(self) -> Dict[str, Any]:
        return _prune(
            self,
            {
                "resource": self.resource,
                "bases": [base.to_dict() for base in self.bases],
                "mounts": [mount.to_dict() for mount in self.mounts],
            },
        )


@dataclass
class Resource:
    kind: ResourceKind
    description: Optional[str] = None
    filename: Optional[str] = None
    upstream_source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "Resource":
        kind = _enum(ResourceKind, data, "type", path)
        filename = _optional(data, "filename", str, path)
        if kind is ResourceKind.FILE and filename is None:
            raise SchemaError(_join(path, "filename"), "required for file resources")
        return cls(
            kind=kind,
            description=_optional(data, "description", str, path),
            filename=filename,
            upstream_source=_optional(data, "upstream-source", str, path),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _prune(
            self,
            {
                "type": self.kind.value,
                "description": self.description,
                "filename": self.filename,
                "upstream-source": self.upstream_source,
            },
        )


@dataclass
class Relation:
    interface: str
    limit: Optional[int] = None
    optional: bool = False
    scope: Optional[RelationScope] = None
    schema: Optional[str] = None
    versions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "Relation":
        limit = _optional(data, "limit", int, path)
        if limit is not None and limit < 1:
            raise SchemaError(_join(path, "limit"), "must be a positive integer")
        return cls(
            interface=_required(data, "interface", str, path),
            limit=limit,
            optional=_optional(data, "optional", bool, path, default=False),
            scope=_enum(RelationScope, data, "scope", path, required=False),
            schema=_optional(data, "schema", str, path),
            versions=_string_list(data, "versions", path),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _prune(
            self,
            {
                "interface": self.interface,
                "limit": self.limit,
                "optional": self.optional,
                "scope": self.scope and self.scope.value,
                "schema": self.schema,
                "versions": list(self.versions),
            },
        )


@dataclass
class Storage:
    kind: StorageKind
    description: Optional[str] = None
    location: Optional[str] = None
    shared: bool = False
    read_only: bool = False
    multiple: Any = None
    minimum_size: Optional[str] = None
    properties: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "Storage":
        minimum_size = data.get("minimum-size")
        return cls(
            kind=_enum(StorageKind, data, "type", path),
            description=_optional(data, "description", str, path),
            location=_optional(data, "location", str, path),
            shared=_optional(data, "shared", bool, path, default=False),
            read_only=_optional(data, "read-only", bool, path, default=False),
            multiple=data.get("multiple"),
            minimum_size=None if minimum_size is None else str(minimum_size),
            properties=_string_list(data, "properties", path),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _prune(
            self,
            {
                "type": self.kind.value,
                "description": self.description,
                "location": self.location,
                "shared": self.shared,
                "read-only": self.read_only,
                "multiple": self.multiple,
                "minimum-size": self.minimum_size,
                "properties": list(self.properties),
            },
        )


@dataclass
class Device:
    kind: str
    description: Optional[str] = None
    countmin: Optional[int] = None
    countmax: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "Device":
        return cls(
            kind=_required(data, "type", str, path),
            description=_optional(data, "description", str, path),
            countmin=_optional(data, "countmin", int, path),
            countmax=_optional(data, "countmax", int, path),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _prune(
            self,
            {
                "type": self.kind,
                "description": self.description,
                "countmin": self.countmin,
                "countmax": self.countmax,
            },
        )


_METADATA_KEYS = (
    "name",
    "summary",
    "description",
    "maintainers",
    "terms",
    "subordinate",
    "containers",
    "resources",
    "provides",
    "requires",
    "peer",
    "peers",
    "storage",
    "devices",
    "extra-bindings",
    "series",
)


@dataclass
class CharmMetadata:
    """A charm's metadata.yaml."""

    name: str
    summary: str
    description: str
    maintainers: List[str] = field(default_factory=list)
    terms: List[str] = field(default_factory=list)
    subordinate: bool = False
    containers: Dict[str, Container] = field(default_factory=dict)
    resources: Dict[str, Resource] = field(default_factory=dict)
    provides: Dict[str, Relation] = field(default_factory=dict)
    requires: Dict[str, Relation] = field(default_factory=dict)
    peer: Dict[str, Relation] = field(default_factory=dict)
    storage: Dict[str, Storage] = field(default_factory=dict)
    devices: Dict[str, Device] = field(default_factory=dict)
    extra_bindings: Dict[str, Any] = field(default_factory=dict)
    series: Optional[List[str]] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping) -> "CharmMetadata":
        """Parse and validate a loaded metadata document."""
        _check(data, dict, "metadata")
        if "peer" in data and "peers" in data:
            raise SchemaError("peers", "only one of 'peer' or 'peers' may be given")
        peer_key = "peer" if "peer" in data else "peers"
        series = None
        if data.get("series") is not None:
            series = _string_list(data, "series", "")
        metadata = cls(
            name=_required(data, "name", str, ""),
            summary=_required(data, "summary", str, ""),
            description=_required(data, "description", str, ""),
            maintainers=_string_list(data, "maintainers", ""),
            terms=_string_list(data, "terms", ""),
            subordinate=_optional(data, "subordinate", bool, "", default=False),
            containers=_mapping_of(data, "containers", "", Container.from_dict),
            resources=_mapping_of(data, "resources", "", Resource.from_dict),
            provides=_mapping_of(data, "provides", "", Relation.from_dict),
            requires=_mapping_of(data, "requires", "", Relation.from_dict),
            peer=_mapping_of(data, peer_key, "", Relation.from_dict),
            storage=_mapping_of(data, "storage", "", Storage.from_dict),
            devices=_mapping_of(data, "devices", "", Device.from_dict),
            extra_bindings=dict(
                _optional(data, "extra-bindings", dict, "", default={})
            ),
            series=series,
            extras={k: v for k, v in data.items() if k not in _METADATA_KEYS},
        )
        metadata.validate()
        return metadata

    @classmethod
    def loads(cls, text, origin=None) -> "CharmMetadata":
        return cls.from_dict(_load_yaml(text, "metadata", origin))

    def validate(self):
        """Check that containers only refer to declared resources and storage."""
        for name, container in self.containers.items():
            owner = f"containers.{name}"
            if container.resource is not None:
                resource = self.resources.get(container.resource)
                if resource is None:
                    raise ReferenceError(container.resource, "resource", owner)
                if resource.kind is not ResourceKind.OCI_IMAGE:
                    raise SchemaError(
                        f"{owner}.resource",
                        f"resource '{container.resource}' is not an oci-image",
                    )
            for i, mount in enumerate(container.mounts):
                if mount.storage not in self.storage:
                    raise ReferenceError(
                        mount.storage, "storage", f"{owner}.mounts[{i}]"
                    )

    def to_dict(self) -> Dict[str, Any]:
        def _section(entries):
            return {name: each.to_dict() for name, each in entries.items()}

        data = {
            "name": self.name,
            "summary": self.summary,
            "description": self.description,
            "maintainers": list(self.maintainers),
            "terms": list(self.terms),
            "subordinate": self.subordinate,
            "containers": _section(self.containers),
            "resources": _section(self.resources),
            "provides": _section(self.provides),
            "requires": _section(self.requires),
            "peer": _section(self.peer),
            "storage": _section(self.storage),
            "devices": _section(self.devices),
            "extra-bindings": dict(self.extra_bindings),
            "series": self.series,
        }
        data = _prune(self, data)
        data.update(self.extras)
        return data

    def dumps(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)


@unique
class ConfigType(Enum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOLEAN = "boolean"


_CONFIG_DEFAULT_KINDS = {
    ConfigType.STRING: str,
    ConfigType.INT: int,
    ConfigType.FLOAT: (int, float),
    ConfigType.BOOLEAN: bool,
}


@dataclass
class ConfigOption:
    kind: ConfigType
    description: Optional[str] = None
    default: Any = None

    @classmethod
    def from_dict(cls, data: Mapping, path: str) -> "ConfigOption":
        kind = _enum(ConfigType, data, "type", path)
        default = data.get("default")
        if default is not None:
            expected = _CONFIG_DEFAULT_KINDS[kind]
            wrong_bool = kind is not ConfigType.BOOLEAN and isinstance(default, bool)
            if wrong_bool or not isinstance(default, expected):
                raise SchemaError(
                    _join(path, "default"),
                    f"expected a {kind.value} default, got {_describe(default)}",
                )
        return cls(
            kind=kind,
            description=_optional(data, "description", str, path),
            default=default,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.kind.value}
        if self.description is not None:
            data["description"] = self.description
        if self.default is not None:
            data["default"] = self.default
        return data


@dataclass
class CharmConfig:
    """A charm's config.yaml."""

    options: Dict[str, ConfigOption] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> "CharmConfig":
        if data is None:
            return cls()
        _check(data, dict, "config")
        return cls(options=_mapping_of(data, "options", "", ConfigOption.from_dict))

    @classmethod
    def loads(cls, text, origin=None) -> "CharmConfig":
        return cls.from_dict(_load_yaml(text, "config", origin))

    def to_dict(self) -> Dict[str, Any]:
        return {"options": {k: v.to_dict() for k, v in self.options.items()}}


def _read_member(source: Path, name: str) -> Optional[str]:
    """Read a file from a charm source directory or packed .charm archive."""
    if source.is_file():
        try:
            with zipfile.ZipFile(source) as archive:
                member = zipfile.Path(archive) / name
                if not member.exists():
                    return None
                return member.read_text(encoding="utf8")
        except zipfile.BadZipFile as ex:
            raise BundleException(f"{source} is not a packed charm") from ex
        except UnicodeDecodeError as ex:
            raise SchemaError(name, f"{source}:{name} is not UTF-8 text") from ex
    member = source / name
    if not member.exists():
        return None
    try:
        return member.read_text(encoding="utf8")
    except UnicodeDecodeError as ex:
        raise SchemaError(name, f"{member} is not UTF-8 text") from ex


@dataclass
class CharmSource:
    """A charm as found on disk, either a source tree or a packed archive."""

    path: Path
    metadata: CharmMetadata
    config: Optional[CharmConfig] = None

    @classmethod
    def load(cls, path) -> "CharmSource":
        path = Path(path)
        if not path.exists():
            raise BundleException(f"Charm not found at {path}")
        text = _read_member(path, "metadata.yaml")
        if text is None:
            raise SchemaError("metadata", f"no metadata.yaml found in {path}")
        metadata = CharmMetadata.loads(text, origin=path / "metadata.yaml")
        config_text = _read_member(path, "config.yaml")
        config = None
        if config_text is not None:
            config = CharmConfig.loads(config_text, origin=path / "config.yaml")
        return cls(path, metadata, config)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def reactive(self) -> bool:
        """Reactive charms are assembled from layers by `charm build`."""
        return self.path.is_dir() and (self.path / "layer.yaml").exists()

    def resources_with_defaults(self, configured: Mapping[str, str]) -> Dict[str, str]:
        """Merge resources given in a bundle with the charm's upstream defaults."""
        merged = {}
        for name, resource in self.metadata.resources.items():
            if name in configured:
                merged[name] = configured[name]
            elif resource.upstream_source:
                merged[name] = resource.upstream_source
            else:
                raise ReferenceError(name, "resource value", self.name)
        return merged
