"""Rejection reasons for Module admission."""

from __future__ import annotations

import re2


class ModuleValidationError(ValueError):
    """Base class for every reason a Module's desired state is rejected."""

    context: str | None = None


class KernelMappingError(ModuleValidationError):
    """A violation found on a single entry of kernelMappings."""

    context = "failed to validate kernel mappings"

    def __init__(self, index: int):
        super().__init__(index)
        self.index = index


class MutuallyExclusiveSelectorError(KernelMappingError):
    def __str__(self) -> str:
        return f"regexp and literal are mutually exclusive properties at kernelMappings[{self.index}]"


class MissingSelectorError(KernelMappingError):
    def __str__(self) -> str:
        return f"regexp or literal must be set at kernelMappings[{self.index}]"


class InvalidPatternError(KernelMappingError):
    def __init__(self, index: int, pattern: str, cause: re2.error):
        super().__init__(index)
        self.pattern = pattern
        self.cause = cause

    def __str__(self) -> str:
        return f"invalid regexp at index {self.index}: {self.cause}"


class MissingImageError(KernelMappingError):
    @property
    def field_path(self) -> str:
        return f"spec.moduleLoader.container.kernelMappings[{self.index}].containerImage"

    def __str__(self) -> str:
        return f"missing {self.field_path}"


class ModprobeError(ModuleValidationError):
    """The modprobe block selects no load mode, or more than one."""

    def __init__(self, load_defined: bool, unload_defined: bool):
        super().__init__(load_defined, unload_defined)
        self.load_defined = load_defined
        self.unload_defined = unload_defined


class ConflictingLoadModeError(ModprobeError):
    def __str__(self) -> str:
        return "rawArgs cannot be set when moduleName is set"


class IncompleteRawArgsError(ModprobeError):
    def __str__(self) -> str:
        return "load and unload rawArgs must be set when moduleName is unset"


def render_reason(error: ModuleValidationError) -> str:
    """Render an error as the message shown to whoever submitted the Module."""
    if error.context:
        return f"{error.context}: {error}"
    return str(error)
