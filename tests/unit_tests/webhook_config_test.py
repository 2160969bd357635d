from unittest.mock import Mock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from kmm_webhook.registry import Registry
from kmm_webhook.validator import validating
from kmm_webhook.webhook_config import (
    ServiceReference,
    apply_webhook_configuration,
    build_validating_webhook_configuration,
    collect_webhook_rules,
    generate_webhook_configuration_yaml,
)
from kmm_webhook.webhooks import register_module_webhook


@pytest.fixture
def registry():
    registry = Registry()
    register_module_webhook(registry)
    return registry


def test_module_webhook_rule(registry):
    (rule,) = collect_webhook_rules(registry)

    assert rule.name == "vmodule.kb.io"
    assert rule.path == "/validate-kmm-sigs-x-k8s-io-v1beta1-module"
    assert rule.operations == ["CREATE", "UPDATE"]
    assert rule.api_groups == ["kmm.sigs.x-k8s.io"]
    assert rule.api_versions == ["v1beta1"]
    assert rule.resources == ["modules"]


def test_unfiltered_hook_matches_everything():
    registry = Registry()

    @validating("catch-all", registry=registry)
    def allow():
        return True

    (rule,) = collect_webhook_rules(registry)
    assert rule.operations == ["*"]
    assert rule.api_groups == ["*"]
    assert rule.api_versions == ["*"]
    assert rule.resources == ["*"]
    assert rule.path == "/"


def test_core_group_and_plural_kinds():
    registry = Registry()

    @validating("policies", kind=("NetworkPolicy", "Ingress"), apiVersion="v1", registry=registry)
    def allow():
        return True

    (rule,) = collect_webhook_rules(registry)
    assert rule.api_groups == [""]
    assert rule.resources == ["ingresses", "networkpolicies"]


def test_generate_yaml_with_url(registry):
    output = generate_webhook_configuration_yaml(
        registry=registry,
        url="https://kmm-webhook.example.com:9443/",
        name="KMM Webhook",
        ca_bundle="Y2EtYnVuZGxl",
    )

    assert output.startswith("apiVersion: admissionregistration.k8s.io/v1\n")
    assert "kind: ValidatingWebhookConfiguration" in output
    assert "  name: kmm-webhook" in output
    assert "  - name: vmodule.kb.io" in output
    assert "url: https://kmm-webhook.example.com:9443/validate-kmm-sigs-x-k8s-io-v1beta1-module" in output
    assert "caBundle: Y2EtYnVuZGxl" in output
    assert "failurePolicy: Fail" in output
    assert "sideEffects: None" in output
    assert "          - modules" in output
    assert "          - CREATE\n          - UPDATE" in output
    assert output.endswith("\n")


def test_generate_yaml_with_service(registry):
    output = generate_webhook_configuration_yaml(
        registry=registry,
        service=ServiceReference.parse("kmm-operator-system/kmm-webhook-service"),
    )

    assert "      service:" in output
    assert "        namespace: kmm-operator-system" in output
    assert "        name: kmm-webhook-service" in output
    assert "        path: /validate-kmm-sigs-x-k8s-io-v1beta1-module" in output
    assert "        port: 443" in output
    assert "url:" not in output
    assert "caBundle" not in output


@pytest.mark.parametrize(
    "kwargs",
    [{}, {"url": "https://a", "service": ServiceReference("ns", "svc")}],
)
def test_exactly_one_client_config(registry, kwargs):
    with pytest.raises(ValueError, match="exactly one of url or service"):
        generate_webhook_configuration_yaml(registry=registry, **kwargs)


def test_service_reference_parse():
    assert ServiceReference.parse("ns/svc:8443") == ServiceReference("ns", "svc", 8443)
    assert ServiceReference.parse("ns/svc") == ServiceReference("ns", "svc", 443)

    with pytest.raises(ValueError):
        ServiceReference.parse("svc")


def test_build_configuration_object_with_service(registry):
    configuration = build_validating_webhook_configuration(
        registry=registry,
        service=ServiceReference("kmm-operator-system", "kmm-webhook-service", 443),
        ca_bundle="Y2EtYnVuZGxl",
    )

    assert isinstance(configuration, client.V1ValidatingWebhookConfiguration)
    assert configuration.metadata.name == "kmm-webhook"
    (webhook,) = configuration.webhooks
    assert webhook.name == "vmodule.kb.io"
    assert webhook.failure_policy == "Fail"
    assert webhook.side_effects == "None"
    assert webhook.admission_review_versions == ["v1"]
    assert webhook.client_config.service.path == "/validate-kmm-sigs-x-k8s-io-v1beta1-module"
    assert webhook.client_config.ca_bundle == "Y2EtYnVuZGxl"
    assert webhook.rules[0].resources == ["modules"]
    assert webhook.rules[0].operations == ["CREATE", "UPDATE"]


def test_build_configuration_object_with_url(registry):
    configuration = build_validating_webhook_configuration(registry=registry, url="https://10.0.0.1:9443")

    assert configuration.webhooks[0].client_config.url == (
        "https://10.0.0.1:9443/validate-kmm-sigs-x-k8s-io-v1beta1-module"
    )


def test_apply_creates_configuration(registry):
    admission_api = Mock()
    configuration = build_validating_webhook_configuration(registry=registry, url="https://a")

    apply_webhook_configuration(admission_api, configuration)

    admission_api.create_validating_webhook_configuration.assert_called_once_with(configuration)
    admission_api.patch_validating_webhook_configuration.assert_not_called()


def test_apply_patches_existing_configuration(registry):
    admission_api = Mock()
    admission_api.create_validating_webhook_configuration.side_effect = ApiException(status=409)
    configuration = build_validating_webhook_configuration(registry=registry, url="https://a")

    apply_webhook_configuration(admission_api, configuration)

    admission_api.patch_validating_webhook_configuration.assert_called_once_with(
        "kmm-webhook", configuration
    )


def test_apply_propagates_other_api_errors(registry):
    admission_api = Mock()
    admission_api.create_validating_webhook_configuration.side_effect = ApiException(status=403)
    configuration = build_validating_webhook_configuration(registry=registry, url="https://a")

    with pytest.raises(ApiException):
        apply_webhook_configuration(admission_api, configuration)
