"""
Validator module containing the @validating decorator and helper functions.

This module provides the @validating decorator used to register Kubernetes admission
validation functions, along with supporting helper functions.
"""

from typing import Any, Callable, Collection, Union
import re
import inspect

from .registry import REGISTRY, Registry, Validator, ValidatingHook, lookup


Filter = Union[str, re.Pattern, Collection[str], None]


def create_condition_check(field_path: list[str], expected_value: Filter):
    """Create a condition check that returns True on match and None on mismatch."""

    def check(request: dict[str, Any]) -> bool | None:
        current = lookup(request, field_path)
        actual_value = current if isinstance(current, str) else ""
        if not actual_value:
            return None

        if isinstance(expected_value, re.Pattern):
            return True if expected_value.match(actual_value) else None
        if isinstance(expected_value, str):
            return True if actual_value == expected_value else None
        # A collection of strings matches any of its members
        return True if actual_value in expected_value else None

    return check


def create_pre_conditions(
    kind: Filter,
    namespace: Filter,
    apiVersion: Filter,
    operation: Filter,
) -> list:
    """Create pre-conditions based on provided parameters."""
    pre_conditions = []

    condition_mappings: list[tuple[Filter, list[str]]] = [
        (kind, ["object", "kind"]),
        (namespace, ["object", "metadata", "namespace"]),
        (apiVersion, ["object", "apiVersion"]),
        (operation, ["operation"]),
    ]

    for value, path in condition_mappings:
        if value is not None:
            pre_conditions.append(create_condition_check(path, value))

    return pre_conditions


def extract_fields_from_signature(f: Callable) -> dict[str, list[str]]:
    """Extract the fields that need to be passed to the function based on signature."""
    sig = inspect.signature(f)
    extract_fields = {}

    # Mapping of parameter names to their paths in the request
    field_mappings = {
        "labels": ["object", "metadata", "labels"],
        "annotations": ["object", "metadata", "annotations"],
        "name": ["object", "metadata", "name"],
        "namespace": ["object", "metadata", "namespace"],
        "spec": ["object", "spec"],
        "metadata": ["object", "metadata"],
        "object": ["object"],  # The Kubernetes resource being validated
        "oldObject": ["oldObject"],  # The previous state (for DELETE/UPDATE)
        "operation": ["operation"],  # The admission operation (CREATE, UPDATE, DELETE, CONNECT)
        "userInfo": ["userInfo"],  # Information about the user making the request
        "raw_object": [],  # Special case - pass the entire request
    }

    for param_name in sig.parameters:
        if param_name in field_mappings:
            extract_fields[param_name] = field_mappings[param_name]

    return extract_fields


def validating(
    name: str,
    kind: Filter = None,
    namespace: Filter = None,
    apiVersion: Filter = None,
    operation: Filter = None,
    path: str | None = None,
    registry: Registry | None = None,
):
    """
    Decorator to register a Kubernetes admission validation function.

    The function is only invoked if all pre-conditions (kind, namespace,
    apiVersion, operation) match the incoming request. Each filter can be:
        - str: Exact match (e.g., "Module", "CREATE")
        - re.Pattern: Regex pattern (e.g., re.compile(r"^kmm-.*"))
        - a collection of str: Any member matches (e.g., ("CREATE", "UPDATE"))
        - None: Accept everything

    Args:
        name: Unique name for this validator within the registry.
        path: URL path the API server should post reviews for this hook to.
        registry: Registry to add the hook to, defaults to the global REGISTRY.

    The decorated function can accept any combination of these parameters:
    object, oldObject, raw_object, metadata, spec, labels, annotations, name,
    namespace, operation, userInfo. For DELETE requests ``object`` is the
    resource being deleted, taken from ``oldObject``.

    The function returns True to allow the request, False to deny it, or a
    ``(allowed, message)`` tuple to deny with a message shown to the user.

    Raises:
        Exception: If a validator with the same name already exists

    Example:
        @validating("module-name", kind="Module", operation=("CREATE", "UPDATE"))
        def validate_module_name(name):
            return name.startswith("kmm-"), "Module names must start with kmm-"
    """
    target = registry if registry is not None else REGISTRY

    def inner(f):
        pre_conditions = create_pre_conditions(kind, namespace, apiVersion, operation)
        extract_fields = extract_fields_from_signature(f)

        validator = Validator(
            pre_conditions=pre_conditions,
            user_function=f,
            name=name,
            extract_fields=extract_fields,
            kind_filter=kind,
            namespace_filter=namespace,
            api_version_filter=apiVersion,
            operation_filter=operation,
            path=path,
        )

        # Check if hook exists, if it does throw an exception
        if name in target.validating_hooks:
            raise Exception(f"Duplicate hook name: {name}")

        hook = ValidatingHook(name=name, validators=[validator])
        target.add_validating_webhook(hook)

        return f

    return inner
