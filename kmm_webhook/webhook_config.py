"""Webhook configuration generation utilities."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException

from .registry import Registry, Validator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceReference:
    namespace: str
    name: str
    port: int = 443

    @classmethod
    def parse(cls, value: str) -> ServiceReference:
        """Parse ``namespace/name[:port]``."""
        match = re.fullmatch(r"([a-z0-9.-]+)/([a-z0-9.-]+)(?::(\d+))?", value.strip())
        if match is None:
            raise ValueError(f"service must look like namespace/name[:port], got {value!r}")
        namespace, name, port = match.groups()
        return cls(namespace=namespace, name=name, port=int(port) if port else 443)


@dataclass(frozen=True)
class WebhookRule:
    name: str
    path: str
    operations: list[str]
    api_groups: list[str]
    api_versions: list[str]
    resources: list[str]


def _pluralize_kind(kind: str) -> str:
    normalized = kind.strip().lower()
    if normalized.endswith("s"):
        return f"{normalized}es"
    if normalized.endswith("y") and len(normalized) > 1 and normalized[-2] not in "aeiou":
        return f"{normalized[:-1]}ies"
    return f"{normalized}s"


def _as_string_filters(value: Any) -> list[str] | None:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else None
    if isinstance(value, (list, tuple, set, frozenset)):
        values = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return values or None
    # Regex filters cannot be expressed as webhook rules
    return None


def _to_operations(value: Any) -> list[str]:
    filter_values = _as_string_filters(value)
    if filter_values is None:
        return ["*"]
    return sorted({item.upper() for item in filter_values})


def _to_resources(value: Any) -> list[str]:
    filter_values = _as_string_filters(value)
    if filter_values is None:
        return ["*"]
    return sorted({_pluralize_kind(item) for item in filter_values})


def _to_groups_and_versions(value: Any) -> tuple[list[str], list[str]]:
    filter_values = _as_string_filters(value)
    if filter_values is None:
        return ["*"], ["*"]

    groups: set[str] = set()
    versions: set[str] = set()
    for filter_value in filter_values:
        if "/" in filter_value:
            group, version = filter_value.split("/", 1)
        else:
            group, version = "", filter_value
        groups.add(group)
        versions.add(version)
    return sorted(groups), sorted(versions)


def _webhook_rule(validator: Validator) -> WebhookRule:
    api_groups, api_versions = _to_groups_and_versions(validator.api_version_filter)
    return WebhookRule(
        name=validator.name,
        path=validator.path or "/",
        operations=_to_operations(validator.operation_filter),
        api_groups=api_groups,
        api_versions=api_versions,
        resources=_to_resources(validator.kind_filter),
    )


def collect_webhook_rules(registry: Registry) -> list[WebhookRule]:
    return [
        _webhook_rule(validator)
        for hook in registry.validating_hooks.values()
        for validator in hook.validators
    ]


def _config_name(name: str) -> str:
    config_name = re.sub(r"[^a-z0-9.-]", "-", name.lower()).strip("-")
    return config_name or "kmm-webhook"


def _check_client_config(url: str | None, service: ServiceReference | None) -> None:
    if (url is None) == (service is None):
        raise ValueError("exactly one of url or service must be given")


def _join_url(url: str, path: str) -> str:
    if path == "/":
        return url
    return f"{url.rstrip('/')}{path}"


def _render_list(values: list[str], indent: int) -> list[str]:
    space = " " * indent
    return [f"{space}- {value}" for value in values]


def _render_webhook(
    rule: WebhookRule,
    url: str | None,
    service: ServiceReference | None,
    ca_bundle: str | None,
) -> list[str]:
    lines = [
        f"  - name: {rule.name}",
        "    admissionReviewVersions:",
        "      - v1",
        "    sideEffects: None",
        "    failurePolicy: Fail",
        "    timeoutSeconds: 10",
        "    clientConfig:",
    ]

    if service is not None:
        lines.extend(
            [
                "      service:",
                f"        namespace: {service.namespace}",
                f"        name: {service.name}",
                f"        path: {rule.path}",
                f"        port: {service.port}",
            ]
        )
    else:
        lines.append(f"      url: {_join_url(url, rule.path)}")

    if ca_bundle:
        lines.append(f"      caBundle: {ca_bundle}")

    lines.extend(
        [
            "    rules:",
            "      - operations:",
            *_render_list(rule.operations, 10),
            "        apiGroups:",
            *_render_list(rule.api_groups, 10),
            "        apiVersions:",
            *_render_list(rule.api_versions, 10),
            "        resources:",
            *_render_list(rule.resources, 10),
        ]
    )
    return lines


def generate_webhook_configuration_yaml(
    *,
    registry: Registry,
    url: str | None = None,
    service: ServiceReference | None = None,
    name: str = "kmm-webhook",
    ca_bundle: str | None = None,
) -> str:
    """
    Generate a ValidatingWebhookConfiguration YAML document from registered hooks.

    Args:
        registry: Registry containing registered hooks.
        url: Webhook base URL reachable by the Kubernetes API server.
        service: In-cluster service fronting the webhook, instead of a URL.
        name: metadata.name of the generated resource.
        ca_bundle: Optional base64-encoded CA bundle.
    """
    _check_client_config(url, service)

    lines = [
        "apiVersion: admissionregistration.k8s.io/v1",
        "kind: ValidatingWebhookConfiguration",
        "metadata:",
        f"  name: {_config_name(name)}",
        "webhooks:",
    ]
    for rule in collect_webhook_rules(registry):
        lines.extend(_render_webhook(rule, url, service, ca_bundle))

    return "\n".join(lines) + "\n"


def build_validating_webhook_configuration(
    *,
    registry: Registry,
    url: str | None = None,
    service: ServiceReference | None = None,
    name: str = "kmm-webhook",
    ca_bundle: str | None = None,
) -> client.V1ValidatingWebhookConfiguration:
    """Same document as generate_webhook_configuration_yaml, as a Kubernetes API object."""
    _check_client_config(url, service)

    webhooks = []
    for rule in collect_webhook_rules(registry):
        if service is not None:
            client_config = client.AdmissionregistrationV1WebhookClientConfig(
                service=client.AdmissionregistrationV1ServiceReference(
                    namespace=service.namespace,
                    name=service.name,
                    path=rule.path,
                    port=service.port,
                ),
                ca_bundle=ca_bundle,
            )
        else:
            client_config = client.AdmissionregistrationV1WebhookClientConfig(
                url=_join_url(url, rule.path),
                ca_bundle=ca_bundle,
            )

        webhooks.append(
            client.V1ValidatingWebhook(
                name=rule.name,
                client_config=client_config,
                rules=[
                    client.V1RuleWithOperations(
                        operations=rule.operations,
                        api_groups=rule.api_groups,
                        api_versions=rule.api_versions,
                        resources=rule.resources,
                    )
                ],
                admission_review_versions=["v1"],
                side_effects="None",
                timeout_seconds=10,
                failure_policy="Fail",
            )
        )

    return client.V1ValidatingWebhookConfiguration(
        api_version="admissionregistration.k8s.io/v1",
        kind="ValidatingWebhookConfiguration",
        metadata=client.V1ObjectMeta(name=_config_name(name)),
        webhooks=webhooks,
    )


def apply_webhook_configuration(
    admission_api: client.AdmissionregistrationV1Api,
    configuration: client.V1ValidatingWebhookConfiguration,
) -> None:
    """Create the configuration, patching it when it already exists."""
    name = configuration.metadata.name
    try:
        admission_api.create_validating_webhook_configuration(configuration)
        logger.info("Created ValidatingWebhookConfiguration %s", name)
    except ApiException as e:
        if e.status != 409:  # Already exists
            raise
        admission_api.patch_validating_webhook_configuration(name, configuration)
        logger.info("Patched ValidatingWebhookConfiguration %s", name)
