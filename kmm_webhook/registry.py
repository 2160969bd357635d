from typing import Any, Callable
from dataclasses import dataclass
import logging
import types


logger = logging.getLogger(__name__)

ADMISSION_API_VERSION = "admission.k8s.io/v1"


def resource_of(request: dict[str, Any]) -> Any:
    """Return the resource a request is about; DELETE only carries oldObject."""
    obj = request.get("object")
    if obj is None and request.get("operation") == "DELETE":
        return request.get("oldObject")
    return obj


def lookup(request: dict[str, Any], field_path: list[str]) -> Any:
    """Navigate field_path through the request, returning None when it is absent."""
    current: Any = request
    for idx, path_part in enumerate(field_path):
        if not isinstance(current, dict):
            return None
        if idx == 0 and path_part == "object":
            current = resource_of(current)
        else:
            current = current.get(path_part)
    return current


def create_field_cache(request: dict[str, Any]) -> tuple[dict[str, Any], Any]:
    """Create a cache for extracted fields to avoid re-computation"""
    field_cache = {}

    def get_cached_field(field_name: str, field_path: list[str]):
        if field_name not in field_cache:
            if field_name == "raw_object":
                # Special case: pass the entire request as immutable 'raw_object'
                field_cache[field_name] = types.MappingProxyType(request)
            else:
                value = lookup(request, field_path)
                # Mappings are handed out read-only, missing fields as an empty mapping
                if isinstance(value, dict):
                    field_cache[field_name] = types.MappingProxyType(value)
                elif value is None:
                    field_cache[field_name] = types.MappingProxyType({})
                else:
                    field_cache[field_name] = value
        return field_cache[field_name]

    return field_cache, get_cached_field


def validate_request_structure(request: dict[str, Any]) -> None:
    """Validate the structure of the incoming request"""
    if not isinstance(request, dict):
        raise ValueError("Request must be a dictionary")

    obj = resource_of(request)
    if obj is None:
        raise ValueError("Request must contain an 'object' field")

    if not isinstance(obj, dict):
        raise ValueError("Request 'object' field must be a dictionary")

    # Validate that object has required Kubernetes fields
    if "kind" not in obj:
        raise ValueError("Request object must contain a 'kind' field")

    if "apiVersion" not in obj:
        raise ValueError("Request object must contain an 'apiVersion' field")

    # Validate metadata structure if present
    if "metadata" in obj and not isinstance(obj["metadata"], dict):
        raise ValueError("Request object 'metadata' field must be a dictionary")


@dataclass
class Validator:
    pre_conditions: list[
        Callable[[dict[str, Any]], bool | None]
    ]  # kind=Module,operation=.. conditions, which must hold before running user code
    user_function: Callable[..., Any]
    name: str
    extract_fields: dict[str, list[str]]  # field name -> path to extract from request
    kind_filter: Any = None
    namespace_filter: Any = None
    api_version_filter: Any = None
    operation_filter: Any = None
    path: str | None = None  # URL path advertised in the webhook configuration


@dataclass
class ValidatingHook:
    name: str
    validators: list[Validator]


@dataclass
class AdmissionResult:
    allowed: bool
    message: str = ""
    validator_name: str | None = None
    code: int = 200


class Registry:
    def __init__(self):
        self.validating_hooks: dict[str, ValidatingHook] = {}

    def add_validating_webhook(self, hook: ValidatingHook):
        if hook.name in self.validating_hooks:
            raise Exception(f"Duplicate hook.name={hook.name}")
        self.validating_hooks[hook.name] = hook

    def _check_pre_conditions(self, validator: Validator, request: dict[str, Any]) -> bool | None:
        """Check all pre-conditions for a validator.

        Returns None when the validator does not apply to the request, False when
        a pre-condition explicitly rejects it.
        """
        for pre_condition in validator.pre_conditions:
            result = pre_condition(request)
            if result is None:
                logger.debug("Pre-condition does not match for %s, skipping", validator.name)
                return None
            if not result:
                logger.info("Pre-condition failed for %s", validator.name)
                return False
        return True

    def _extract_validator_kwargs(self, validator: Validator, get_cached_field) -> dict[str, Any]:
        """Extract kwargs for a validator using the field cache"""
        kwargs = {}
        for field_name, field_path in validator.extract_fields.items():
            kwargs[field_name] = get_cached_field(field_name, field_path)
        return kwargs

    def _run_validator(self, validator: Validator, kwargs: dict[str, Any]) -> AdmissionResult:
        """Run a single validator; it may return a bool or a (bool, message) tuple"""
        response = validator.user_function(**kwargs)

        message = ""
        if isinstance(response, tuple) and len(response) == 2 and isinstance(response[1], str):
            response, message = response

        if not isinstance(response, bool):
            logger.warning(
                "%s returned invalid type %s, rejecting", validator.name, type(response).__name__
            )
            return AdmissionResult(
                allowed=False,
                message=f"{validator.name} returned an invalid result type",
                validator_name=validator.name,
                code=403,
            )

        if response is False:
            logger.info("%s rejected the request: %s", validator.name, message)
            return AdmissionResult(
                allowed=False,
                message=message or f"Validation failed: {validator.name}",
                validator_name=validator.name,
                code=403,
            )
        return AdmissionResult(allowed=True, validator_name=validator.name)

    def validate_request_detailed(self, request: dict[str, Any]) -> AdmissionResult:
        """Evaluate all validating hooks against the request, stopping at the first rejection"""
        validate_request_structure(request)

        field_cache, get_cached_field = create_field_cache(request)

        for hook in self.validating_hooks.values():
            for validator in hook.validators:
                applies = self._check_pre_conditions(validator, request)
                if applies is None:
                    continue
                if applies is False:
                    return AdmissionResult(
                        allowed=False,
                        message=f"Pre-condition failed: {validator.name}",
                        validator_name=validator.name,
                        code=403,
                    )

                kwargs = self._extract_validator_kwargs(validator, get_cached_field)

                result = self._run_validator(validator, kwargs)
                if not result.allowed:
                    return result

        return AdmissionResult(allowed=True)

    def validate_request(self, request: dict[str, Any]) -> bool:
        return self.validate_request_detailed(request).allowed

    def process_admission_review(self, admission_review: dict[str, Any]) -> dict[str, Any]:
        """Answer an AdmissionReview with the verdict of the registered hooks"""
        if not isinstance(admission_review, dict):
            raise ValueError("AdmissionReview must be a dictionary")
        request = admission_review.get("request")
        if not isinstance(request, dict):
            raise ValueError("AdmissionReview must contain a 'request' field")

        try:
            result = self.validate_request_detailed(request)
        except ValueError as e:
            logger.info("Malformed admission request %s: %s", request.get("uid", "unknown"), e)
            result = AdmissionResult(allowed=False, message=str(e), code=400)

        response: dict[str, Any] = {
            "uid": request.get("uid", ""),
            "allowed": result.allowed,
        }
        if not result.allowed:
            response["status"] = {
                "code": result.code,
                "reason": "BadRequest" if result.code == 400 else "Forbidden",
                "message": result.message,
            }

        return {
            "apiVersion": admission_review.get("apiVersion") or ADMISSION_API_VERSION,
            "kind": "AdmissionReview",
            "response": response,
        }


REGISTRY = Registry()
