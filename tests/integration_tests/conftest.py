"""Pytest fixtures for integration tests."""

import datetime
import ipaddress

import pytest

from kmm_webhook.registry import Registry
from kmm_webhook.server import ServerConfig, WebhookServer
from kmm_webhook.webhooks import register_module_webhook


@pytest.fixture(scope="session")
def webhook_certs(tmp_path_factory):
    """Generate self-signed certificates for webhook server."""
    from cryptography import x509
    from cryptography.x509.oid import NameOID
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.hazmat.primitives import serialization

    cert_dir = tmp_path_factory.mktemp("certs")

    # Generate private key
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )

    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "KMM Webhook Test"),
            x509.NameAttribute(NameOID.COMMON_NAME, "kmm-webhook-service"),
        ]
    )
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName(
                [
                    x509.DNSName("localhost"),
                    x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                ]
            ),
            critical=False,
        )
        .sign(private_key, hashes.SHA256())
    )

    # Write files
    key_file = cert_dir / "tls.key"
    cert_file = cert_dir / "tls.crt"

    with open(key_file, "wb") as f:
        f.write(
            private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )

    with open(cert_file, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))

    return {
        "cert_file": str(cert_file),
        "key_file": str(key_file),
    }


@pytest.fixture(scope="session")
def webhook_server(webhook_certs):
    """Start an HTTPS webhook server serving the Module webhook on a free port."""
    registry = Registry()
    register_module_webhook(registry)
    server = WebhookServer(
        ServerConfig(
            host="127.0.0.1",
            port=0,
            cert_file=webhook_certs["cert_file"],
            key_file=webhook_certs["key_file"],
        ),
        registry,
    )

    server.start()

    yield server

    server.stop()
