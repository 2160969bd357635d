"""Registration of the Module validating webhook."""

from __future__ import annotations

from typing import Collection

from .models import MODULE_API_VERSION, MODULE_GROUP, MODULE_KIND, MODULE_VERSION
from .module_validator import ModuleValidator
from .registry import REGISTRY, Registry
from .validator import validating

MODULE_WEBHOOK_NAME = "vmodule.kb.io"
MODULE_WEBHOOK_PATH = f"/validate-{MODULE_GROUP.replace('.', '-')}-{MODULE_VERSION}-{MODULE_KIND.lower()}"


def register_module_webhook(
    registry: Registry | None = None,
    validator: ModuleValidator | None = None,
    operations: Collection[str] = ("CREATE", "UPDATE"),
) -> ModuleValidator:
    """Register the Module validator with a registry and return it."""
    module_validator = validator or ModuleValidator()

    @validating(
        MODULE_WEBHOOK_NAME,
        kind=MODULE_KIND,
        apiVersion=MODULE_API_VERSION,
        operation=tuple(operations),
        path=MODULE_WEBHOOK_PATH,
        registry=registry if registry is not None else REGISTRY,
    )
    def validate_module(object, oldObject, operation):
        result = module_validator.dispatch(operation, object, oldObject)
        return result.allowed, result.reason

    return module_validator
