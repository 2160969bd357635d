"""
HTTPS admission webhook server.

Serves AdmissionReview POSTs with the verdict of a Registry. The validation
logic lives in the registered hooks; this module only moves JSON in and out.
"""
import json
import logging
import os
import ssl
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

from .registry import REGISTRY, Registry


logger = logging.getLogger(__name__)

DEFAULT_PORT = 9443


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self):
        if bool(self.cert_file) != bool(self.key_file):
            raise ValueError("cert_file and key_file must be given together")

    @property
    def tls(self) -> bool:
        return bool(self.cert_file)

    @classmethod
    def from_env(cls, environ=None) -> "ServerConfig":
        """Read KMM_WEBHOOK_* variables, falling back to the defaults."""
        env = os.environ if environ is None else environ
        port = env.get("KMM_WEBHOOK_PORT", str(DEFAULT_PORT))
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"KMM_WEBHOOK_PORT must be an integer, got {port!r}") from None
        return cls(
            host=env.get("KMM_WEBHOOK_HOST", "0.0.0.0"),
            port=port_number,
            cert_file=env.get("KMM_WEBHOOK_CERT_FILE") or None,
            key_file=env.get("KMM_WEBHOOK_KEY_FILE") or None,
            log_level=env.get("KMM_WEBHOOK_LOG_LEVEL", "INFO").upper(),
        )


class AdmissionWebhookHandler(BaseHTTPRequestHandler):
    """HTTP handler for Kubernetes admission webhook requests."""

    server: "AdmissionHTTPServer"

    def log_message(self, format, *args):
        """Override to use proper logging."""
        logger.debug(format % args)

    def _send_json(self, status: int, payload: dict):
        body = json.dumps(payload).encode()
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        """Liveness and readiness probes."""
        if self.path in ('/healthz', '/readyz'):
            body = b'ok'
            self.send_response(200)
            self.send_header('Content-Type', 'text/plain')
            self.send_header('Content-Length', str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        self._send_json(404, {"error": f"no such path {self.path}"})

    def do_POST(self):
        """Handle POST requests with AdmissionReview."""
        try:
            content_length = int(self.headers.get('Content-Length', 0))
            body = self.rfile.read(content_length)
            try:
                admission_review = json.loads(body)
            except ValueError as e:
                logger.info(f"Rejecting undecodable request body: {e}")
                self._send_json(400, {"error": f"invalid JSON: {e}"})
                return

            request = admission_review.get('request') if isinstance(admission_review, dict) else None
            request_uid = request.get('uid', 'unknown') if isinstance(request, dict) else 'unknown'
            logger.info(f"Received admission request {request_uid} on {self.path}")

            try:
                response = self.server.registry.process_admission_review(admission_review)
            except ValueError as e:
                self._send_json(400, {"error": str(e)})
                return

            self._send_json(200, response)

            allowed = response['response']['allowed']
            logger.info(f"Sent response for {request_uid}: allowed={allowed}")

        except Exception as e:
            logger.error(f"Error processing request: {e}", exc_info=True)
            self._send_json(500, {"error": str(e)})


class AdmissionHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, registry: Registry):
        super().__init__(address, AdmissionWebhookHandler)
        self.registry = registry


class WebhookServer:
    """Manages the webhook server lifecycle."""

    def __init__(self, config: Optional[ServerConfig] = None, registry: Optional[Registry] = None):
        self.config = config or ServerConfig()
        self.registry = registry if registry is not None else REGISTRY
        self.server: Optional[AdmissionHTTPServer] = None
        self.thread: Optional[threading.Thread] = None

    def _bind(self) -> AdmissionHTTPServer:
        server = AdmissionHTTPServer((self.config.host, self.config.port), self.registry)

        # Setup SSL if certificates provided
        if self.config.tls:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.load_cert_chain(self.config.cert_file, self.config.key_file)
            server.socket = context.wrap_socket(server.socket, server_side=True)
            logger.info("Webhook server configured with SSL")
        return server

    def start(self):
        """Start the webhook server in a background thread."""
        self.server = self._bind()
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        logger.info(f"Webhook server started on {self.config.host}:{self.port}")

    def serve_forever(self):
        """Run the webhook server in the calling thread until interrupted."""
        self.server = self._bind()
        logger.info(f"Webhook server listening on {self.config.host}:{self.port}")
        try:
            self.server.serve_forever()
        finally:
            self.server.server_close()
            logger.info("Webhook server stopped")

    def stop(self):
        """Stop the webhook server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            logger.info("Webhook server stopped")
        if self.thread:
            self.thread.join()

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when binding to port 0."""
        if self.server:
            return self.server.server_address[1]
        return self.config.port

    @property
    def url(self) -> str:
        """Get the server URL."""
        protocol = "https" if self.config.tls else "http"
        return f"{protocol}://{self.config.host}:{self.port}"
