"""
Admission rules for the Module resource.

A Module is accepted when its kernel mappings are well formed and its
modprobe block selects exactly one load mode. The rules look only at the
proposed object: updates are judged on the new state alone and deletes are
always allowed.
"""

from __future__ import annotations

import logging
import re2
from dataclasses import dataclass
from typing import Any, Mapping, Union

from .errors import (
    ConflictingLoadModeError,
    IncompleteRawArgsError,
    InvalidPatternError,
    MissingImageError,
    MissingSelectorError,
    ModuleValidationError,
    MutuallyExclusiveSelectorError,
    render_reason,
)
from .models import Module, ModuleLoaderContainerSpec


@dataclass(frozen=True)
class Accepted:
    allowed = True
    reason = ""


@dataclass(frozen=True)
class Rejected:
    error: ModuleValidationError
    allowed = False

    @property
    def reason(self) -> str:
        return render_reason(self.error)


ValidationResult = Union[Accepted, Rejected]


def validate_kernel_mappings(container: ModuleLoaderContainerSpec) -> None:
    """Check kernel mappings in declaration order, raising at the first bad entry."""
    for idx, km in enumerate(container.kernel_mappings):
        if km.regexp and km.literal:
            raise MutuallyExclusiveSelectorError(idx)

        if not km.regexp and not km.literal:
            raise MissingSelectorError(idx)

        # Kernels are matched with RE2 downstream. An empty pattern compiles,
        # so literal-only mappings pass through here.
        try:
            re2.compile(km.regexp)
        except re2.error as err:
            raise InvalidPatternError(idx, km.regexp, err) from err

        if not container.container_image and not km.container_image:
            raise MissingImageError(idx)


def validate_modprobe(container: ModuleLoaderContainerSpec) -> None:
    modprobe = container.modprobe
    module_name_defined = modprobe.module_name != ""
    raw_load_defined = modprobe.raw_args is not None and len(modprobe.raw_args.load) > 0
    raw_unload_defined = modprobe.raw_args is not None and len(modprobe.raw_args.unload) > 0

    if module_name_defined:
        if raw_load_defined or raw_unload_defined:
            raise ConflictingLoadModeError(raw_load_defined, raw_unload_defined)
        return

    if not raw_load_defined or not raw_unload_defined:
        raise IncompleteRawArgsError(raw_load_defined, raw_unload_defined)


class ModuleValidator:
    """Validates Module create, update and delete requests.

    The validator holds no state besides its logger, so a single instance can
    serve concurrent admission requests.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, module: Module) -> ValidationResult:
        """Run the kernel mapping rules, then the modprobe rules."""
        try:
            validate_kernel_mappings(module.container)
            validate_modprobe(module.container)
        except ModuleValidationError as err:
            return Rejected(err)
        return Accepted()

    def validate_create(self, module: Module) -> ValidationResult:
        self.logger.info(
            "Validating Module creation name=%s namespace=%s", module.name, module.namespace
        )
        return self.validate(module)

    def validate_update(self, old_module: Module | None, new_module: Module) -> ValidationResult:
        self.logger.info(
            "Validating Module update name=%s namespace=%s", new_module.name, new_module.namespace
        )
        return self.validate(new_module)

    def validate_delete(self, module: Module | None) -> ValidationResult:
        return Accepted()

    def dispatch(
        self,
        operation: str,
        obj: Mapping[str, Any] | None,
        old_obj: Mapping[str, Any] | None = None,
    ) -> ValidationResult:
        """Route an admission operation to the matching entry point.

        ``obj`` and ``old_obj`` are the raw object dictionaries from the
        admission request. ``old_obj`` is only decoded for DELETE. Raises
        ``ValueError`` when the object in use cannot be decoded.
        """
        if operation == "CREATE":
            return self.validate_create(Module.from_dict(obj))
        if operation == "UPDATE":
            return self.validate_update(None, Module.from_dict(obj))
        if operation == "DELETE":
            return self.validate_delete(Module.from_dict(old_obj or obj))
        return Accepted()
