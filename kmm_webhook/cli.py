"""Command line utilities for kmm-webhook."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from .models import Module
from .module_validator import ModuleValidator
from .registry import REGISTRY, Registry
from .server import ServerConfig, WebhookServer
from .webhook_config import (
    ServiceReference,
    apply_webhook_configuration,
    build_validating_webhook_configuration,
    generate_webhook_configuration_yaml,
)
from .webhooks import MODULE_WEBHOOK_NAME, register_module_webhook

logger = logging.getLogger(__name__)


def _add_client_config_arguments(parser: argparse.ArgumentParser) -> None:
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--url", help="Webhook base URL reachable by the API server.")
    target.add_argument(
        "--service",
        type=ServiceReference.parse,
        help="In-cluster service fronting the webhook, as namespace/name[:port].",
    )
    parser.add_argument(
        "--name",
        default="kmm-webhook",
        help="metadata.name of the generated ValidatingWebhookConfiguration.",
    )
    parser.add_argument(
        "--ca-bundle",
        default=None,
        help="Optional base64-encoded CA bundle.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kmm-webhook")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the admission webhook server.")
    serve_parser.add_argument("--host", default=None, help="Address to listen on.")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on.")
    serve_parser.add_argument("--cert-file", default=None, help="TLS certificate (PEM).")
    serve_parser.add_argument("--key-file", default=None, help="TLS private key (PEM).")
    serve_parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
    )

    generate_parser = subparsers.add_parser(
        "generate-webhook",
        help="Generate the ValidatingWebhookConfiguration YAML for the Module webhook.",
    )
    _add_client_config_arguments(generate_parser)

    apply_parser = subparsers.add_parser(
        "apply-webhook",
        help="Create or update the ValidatingWebhookConfiguration in the cluster.",
    )
    _add_client_config_arguments(apply_parser)
    apply_parser.add_argument("--context", default=None, help="kubeconfig context to use.")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a Module manifest (JSON) as if it were being created.",
    )
    validate_parser.add_argument("file", help="Path to the manifest, or - for stdin.")
    return parser


def _module_registry() -> Registry:
    if MODULE_WEBHOOK_NAME not in REGISTRY.validating_hooks:
        register_module_webhook(REGISTRY)
    return REGISTRY


def _serve(args: argparse.Namespace) -> int:
    # Flags win over KMM_WEBHOOK_* variables.
    try:
        env = ServerConfig.from_env()
        server_config = ServerConfig(
            host=args.host if args.host is not None else env.host,
            port=args.port if args.port is not None else env.port,
            cert_file=args.cert_file or env.cert_file,
            key_file=args.key_file or env.key_file,
            log_level=args.log_level or env.log_level,
        )
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    logging.basicConfig(
        level=server_config.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    server = WebhookServer(server_config, _module_registry())
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


def _apply(args: argparse.Namespace) -> int:
    try:
        config.load_kube_config(context=args.context)
    except ConfigException:
        config.load_incluster_config()

    configuration = build_validating_webhook_configuration(
        registry=_module_registry(),
        url=args.url,
        service=args.service,
        name=args.name,
        ca_bundle=args.ca_bundle,
    )
    apply_webhook_configuration(client.AdmissionregistrationV1Api(), configuration)
    print(f"validatingwebhookconfiguration/{configuration.metadata.name} applied")
    return 0


def _validate(args: argparse.Namespace) -> int:
    try:
        if args.file == "-":
            manifest = json.load(sys.stdin)
        else:
            with open(args.file) as f:
                manifest = json.load(f)
        module = Module.from_dict(manifest)
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    result = ModuleValidator().validate_create(module)
    if result.allowed:
        print("accepted")
        return 0
    print(result.reason)
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return _serve(args)

    if args.command == "generate-webhook":
        yaml_output = generate_webhook_configuration_yaml(
            registry=_module_registry(),
            url=args.url,
            service=args.service,
            name=args.name,
            ca_bundle=args.ca_bundle,
        )
        print(yaml_output, end="")
        return 0

    if args.command == "apply-webhook":
        return _apply(args)

    if args.command == "validate":
        return _validate(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
