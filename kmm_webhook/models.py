"""
Read-only view of the Module custom resource.

The admission request carries the resource as a plain dictionary with the
camelCase keys used on the wire. The dataclasses below decode just the parts
the webhook looks at; everything else in the object is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

MODULE_GROUP = "kmm.sigs.x-k8s.io"
MODULE_VERSION = "v1beta1"
MODULE_API_VERSION = f"{MODULE_GROUP}/{MODULE_VERSION}"
MODULE_KIND = "Module"


def _as_mapping(data: Any, where: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{where} must be an object, got {type(data).__name__}")
    return data


def _as_str(data: Mapping[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key} must be a string")
    return value


def _as_str_tuple(data: Mapping[str, Any], key: str, where: str) -> tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"{where}.{key} must be a list of strings")
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{where}.{key} must be a list of strings")
    return tuple(value)


@dataclass(frozen=True)
class ObjectMeta:
    name: str = ""
    namespace: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> ObjectMeta:
        data = _as_mapping(data, "metadata")
        return cls(
            name=_as_str(data, "name", "metadata"),
            namespace=_as_str(data, "namespace", "metadata"),
        )


@dataclass(frozen=True)
class KernelMapping:
    """Selects a kernel by exact version (literal) or pattern (regexp)."""

    literal: str = ""
    regexp: str = ""
    container_image: str = ""

    @classmethod
    def from_dict(cls, data: Any, where: str = "kernelMappings[]") -> KernelMapping:
        data = _as_mapping(data, where)
        return cls(
            literal=_as_str(data, "literal", where),
            regexp=_as_str(data, "regexp", where),
            container_image=_as_str(data, "containerImage", where),
        )


@dataclass(frozen=True)
class ModprobeArgs:
    load: tuple[str, ...] = ()
    unload: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> ModprobeArgs:
        where = "spec.moduleLoader.container.modprobe.rawArgs"
        data = _as_mapping(data, where)
        return cls(
            load=_as_str_tuple(data, "load", where),
            unload=_as_str_tuple(data, "unload", where),
        )


@dataclass(frozen=True)
class ModprobeSpec:
    module_name: str = ""
    # None means rawArgs was omitted, which is not the same as an empty block.
    raw_args: ModprobeArgs | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ModprobeSpec:
        where = "spec.moduleLoader.container.modprobe"
        data = _as_mapping(data, where)
        raw_args = data.get("rawArgs")
        return cls(
            module_name=_as_str(data, "moduleName", where),
            raw_args=None if raw_args is None else ModprobeArgs.from_dict(raw_args),
        )


@dataclass(frozen=True)
class ModuleLoaderContainerSpec:
    container_image: str = ""
    kernel_mappings: tuple[KernelMapping, ...] = ()
    modprobe: ModprobeSpec = field(default_factory=ModprobeSpec)

    @classmethod
    def from_dict(cls, data: Any) -> ModuleLoaderContainerSpec:
        where = "spec.moduleLoader.container"
        data = _as_mapping(data, where)

        mappings = data.get("kernelMappings")
        if mappings is None:
            mappings = []
        if not isinstance(mappings, (list, tuple)):
            raise ValueError(f"{where}.kernelMappings must be a list")

        return cls(
            container_image=_as_str(data, "containerImage", where),
            kernel_mappings=tuple(
                KernelMapping.from_dict(km, f"{where}.kernelMappings[{idx}]")
                for idx, km in enumerate(mappings)
            ),
            modprobe=ModprobeSpec.from_dict(data.get("modprobe")),
        )


@dataclass(frozen=True)
class ModuleLoaderSpec:
    container: ModuleLoaderContainerSpec = field(default_factory=ModuleLoaderContainerSpec)

    @classmethod
    def from_dict(cls, data: Any) -> ModuleLoaderSpec:
        data = _as_mapping(data, "spec.moduleLoader")
        return cls(container=ModuleLoaderContainerSpec.from_dict(data.get("container")))


@dataclass(frozen=True)
class ModuleSpec:
    module_loader: ModuleLoaderSpec = field(default_factory=ModuleLoaderSpec)

    @classmethod
    def from_dict(cls, data: Any) -> ModuleSpec:
        data = _as_mapping(data, "spec")
        return cls(module_loader=ModuleLoaderSpec.from_dict(data.get("moduleLoader")))


@dataclass(frozen=True)
class Module:
    api_version: str = MODULE_API_VERSION
    kind: str = MODULE_KIND
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: ModuleSpec = field(default_factory=ModuleSpec)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def container(self) -> ModuleLoaderContainerSpec:
        return self.spec.module_loader.container

    @classmethod
    def from_dict(cls, data: Any) -> Module:
        """Decode a Module from its Kubernetes object dictionary.

        ``None`` and ``{}`` decode to the zero-valued Module. Raises
        ``ValueError`` when a field has the wrong shape.
        """
        data = _as_mapping(data, "object")
        return cls(
            api_version=_as_str(data, "apiVersion", "object") or MODULE_API_VERSION,
            kind=_as_str(data, "kind", "object") or MODULE_KIND,
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=ModuleSpec.from_dict(data.get("spec")),
        )
