"""
web2rep/api.py

REST API server for web2rep.

Endpoints:
    GET  /                      index
    GET  /health                liveness
    POST /achievements          {"identities": [{"provider", "username"|"email"}]}
    GET  /achievements          ?github=<username>&google=<email>
    POST /achievements/verify   {"achievement": {...}, "hash": "...", "day": N}
    POST /binding/message       {"identityHash", "walletAddress"}
    POST /binding/verify        {"identityHash", "walletAddress", "signature"}
    GET  /metrics               Prometheus text
"""

import json
import logging
import time
import trio
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

from . import __version__
from .cache import RateLimitedNoop
from .errors import HashMismatchError, NoProvidersError, SignatureInvalidError, ValidationError
from .metrics import MetricsCollector
from .models import AggregateResult, IdentityRequest, Provider
from .protocol.binding import IdentityBindingSession, SignatureVerifier, build_binding_message
from .protocol.commitment import verify_achievement_hash
from .service import AchievementService

logger = logging.getLogger("web2rep.api")

STATUS_TEXT = {
    200: "OK",
    201: "Created",
    204: "No Content",
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    409: "Conflict",
    429: "Too Many Requests",
    500: "Internal Server Error",
    501: "Not Implemented",
}


@dataclass
class Request:
    """HTTP request representation."""
    method: str
    path: str
    query: Dict[str, List[str]]
    headers: Dict[str, str]
    body: bytes

    def json(self) -> Any:
        """Parse the body as JSON, raising ValidationError when malformed."""
        if not self.body:
            raise ValidationError("Request body required")
        try:
            return json.loads(self.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Invalid JSON") from None


@dataclass
class Response:
    """HTTP response representation."""
    status: int
    headers: Dict[str, str]
    body: bytes

    @classmethod
    def json(cls, data: Any, status: int = 200) -> "Response":
        """Create JSON response."""
        body = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
        return cls(
            status=status,
            headers={"Content-Type": "application/json"},
            body=body,
        )

    @classmethod
    def text(cls, text: str, status: int = 200, content_type: str = "text/plain") -> "Response":
        """Create text response."""
        return cls(
            status=status,
            headers={"Content-Type": content_type},
            body=text.encode("utf-8"),
        )

    @classmethod
    def error(cls, message: str, status: int = 400) -> "Response":
        """Create error response."""
        return cls.json({"error": message}, status=status)


class AchievementAPI:
    """
    REST API server for web2rep.

    Usage:
        service = AchievementService.from_config(config)
        api = AchievementAPI(service, verifier=my_verifier, port=8080)
        await api.start()
    """

    def __init__(
        self,
        service: AchievementService,
        verifier: Optional[SignatureVerifier] = None,
        host: str = "127.0.0.1",
        port: int = 8080,
        enable_metrics: bool = True,
        use_cache: bool = True,
    ):
        """
        Initialize REST API server.

        Args:
            service: AchievementService backing the endpoints
            verifier: Signature verifier for /binding/verify (disabled if None)
            host: Host to bind to (default: localhost)
            port: Port to listen on (default: 8080)
            enable_metrics: Enable Prometheus metrics endpoint
            use_cache: Route aggregation through the cache and rate limiter
        """
        self.service = service
        self.verifier = verifier
        self.host = host
        self.port = port
        self.enable_metrics = enable_metrics
        self.use_cache = use_cache

        self.metrics = MetricsCollector(service) if enable_metrics else None

        self._start_time = time.time()

        # Route handlers
        self._routes: Dict[Tuple[str, str], Callable] = {
            ("GET", "/"): self._handle_root,
            ("GET", "/health"): self._handle_health,
            ("POST", "/achievements"): self._handle_post_achievements,
            ("GET", "/achievements"): self._handle_get_achievements,
            ("POST", "/achievements/verify"): self._handle_verify_achievement,
            ("POST", "/binding/message"): self._handle_binding_message,
            ("POST", "/binding/verify"): self._handle_binding_verify,
            ("GET", "/metrics"): self._handle_metrics,
        }

    async def start(self) -> None:
        """Serve until cancelled."""
        logger.info(f"Starting REST API server on {self.host}:{self.port}")

        try:
            await trio.serve_tcp(
                self._handle_connection,
                self.port,
                host=self.host,
            )
        except Exception as e:
            logger.error(f"API server error: {e}")
            raise
        finally:
            logger.info("REST API server stopped")

    async def _handle_connection(self, stream: trio.SocketStream) -> None:
        """Handle incoming TCP connection."""
        try:
            request = await self._read_request(stream)
            if not request:
                return

            response = await self.handle(request)
            await self._send_response(stream, response)

        except Exception as e:
            logger.error(f"Connection error: {e}")
            try:
                await self._send_response(stream, Response.error(str(e), status=500))
            except trio.BrokenResourceError:
                pass
        finally:
            await stream.aclose()

    async def _read_request(self, stream: trio.SocketStream) -> Optional[Request]:
        """Read and parse HTTP request."""
        try:
            # Read request line and headers
            data = b""
            while b"\r\n\r\n" not in data:
                chunk = await stream.receive_some(4096)
                if not chunk:
                    return None
                data += chunk

            header_end = data.index(b"\r\n\r\n")
            header_data = data[:header_end].decode("utf-8")
            body = data[header_end + 4:]

            lines = header_data.split("\r\n")
            request_line = lines[0].split(" ")
            method = request_line[0]
            path_with_query = request_line[1] if len(request_line) > 1 else "/"

            parsed = urlparse(path_with_query)

            headers = {}
            for line in lines[1:]:
                if ":" in line:
                    key, value = line.split(":", 1)
                    headers[key.strip().lower()] = value.strip()

            # Read remaining body if Content-Length specified
            content_length = int(headers.get("content-length", 0))
            while len(body) < content_length:
                chunk = await stream.receive_some(4096)
                if not chunk:
                    break
                body += chunk

            return Request(
                method=method,
                path=parsed.path,
                query=parse_qs(parsed.query),
                headers=headers,
                body=body[:content_length] if content_length else body,
            )

        except (ValueError, UnicodeDecodeError, trio.BrokenResourceError) as e:
            logger.error(f"Error reading request: {e}")
            return None

    async def _send_response(self, stream: trio.SocketStream, response: Response) -> None:
        """Send HTTP response."""
        status_text = STATUS_TEXT.get(response.status, "Unknown")

        lines = [f"HTTP/1.1 {response.status} {status_text}"]

        response.headers["Content-Length"] = str(len(response.body))
        response.headers["Connection"] = "close"
        response.headers["Server"] = f"web2rep/{__version__}"

        for key, value in response.headers.items():
            lines.append(f"{key}: {value}")

        lines.append("")
        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"

        await stream.send_all(header_bytes + response.body)

    async def handle(self, request: Request) -> Response:
        """Route a request and map domain errors to HTTP statuses."""
        started = time.monotonic()
        try:
            response = await self._route_request(request)
        except ValidationError as e:
            response = Response.error(str(e), status=400)
        except NoProvidersError as e:
            response = Response.error(str(e), status=404)
        except HashMismatchError as e:
            response = Response.json({
                "valid": False,
                "error": "Achievement hash mismatch",
                "expected": e.expected,
                "claimed": e.actual,
            }, status=409)
        except Exception as e:
            logger.error(f"Error handling {request.method} {request.path}: {e}")
            response = Response.error("Internal server error", status=500)

        if self.metrics:
            self.metrics.record_request(time.monotonic() - started)
        return response

    async def _route_request(self, request: Request) -> Response:
        """Route request to appropriate handler."""
        handler = self._routes.get((request.method, request.path))
        if handler:
            return await handler(request)
        return Response.error("Not Found", status=404)

    # ========== Route Handlers ==========

    async def _handle_root(self, request: Request) -> Response:
        return Response.json({
            "name": "web2rep",
            "version": __version__,
            "endpoints": list(f"{m} {p}" for (m, p) in self._routes.keys()),
        })

    async def _handle_health(self, request: Request) -> Response:
        return Response.json({
            "status": "healthy",
            "providers": sorted(p.value for p in self.service.sources),
            "uptime_seconds": time.time() - self._start_time,
        })

    async def _aggregate(self, identities: List[IdentityRequest]) -> Response:
        if not self.use_cache:
            result = await self.service.aggregate_identities(identities)
            return Response.json(result.to_dict())

        outcome = await self.service.fetch_cached(identities)
        if isinstance(outcome, RateLimitedNoop):
            response = Response.json({
                "rateLimited": True,
                "retryAfter": round(outcome.retry_after, 3),
            }, status=429)
            response.headers["Retry-After"] = str(max(1, int(outcome.retry_after + 0.999)))
            return response
        return Response.json(outcome.to_dict())

    async def _handle_post_achievements(self, request: Request) -> Response:
        body = request.json()
        identities = body.get("identities") if isinstance(body, dict) else None
        if not isinstance(identities, list):
            return Response.error("Identities array is required", status=400)
        return await self._aggregate([IdentityRequest.from_dict(i) for i in identities])

    async def _handle_get_achievements(self, request: Request) -> Response:
        identities = []
        github = request.query.get("github", [])
        if github:
            identities.append(IdentityRequest(Provider.GITHUB, github[0]))
        google = request.query.get("google", [])
        if google:
            identities.append(IdentityRequest(Provider.GOOGLE, google[0]))

        if not identities:
            return Response.error("At least one identity (github or google) is required", status=400)
        return await self._aggregate(identities)

    async def _handle_verify_achievement(self, request: Request) -> Response:
        body = request.json()
        if not isinstance(body, dict) or "achievement" not in body or "hash" not in body:
            return Response.error("achievement and hash are required", status=400)

        aggregate_result = AggregateResult.from_dict(body["achievement"])
        try:
            day = int(body.get("day", aggregate_result.generated_at_day))
        except (TypeError, ValueError):
            return Response.error("day must be an integer", status=400)

        verify_achievement_hash(aggregate_result, body["hash"], day)
        return Response.json({"valid": True, "hash": body["hash"], "day": day})

    async def _handle_binding_message(self, request: Request) -> Response:
        body = request.json()
        if not isinstance(body, dict):
            return Response.error("Request body must be an object", status=400)
        identity_hash = body.get("identityHash") or ""
        wallet = body.get("walletAddress") or ""
        message = build_binding_message(identity_hash, wallet)
        return Response.json({
            "identityHash": identity_hash,
            "walletAddress": wallet.lower(),
            "bindingMessage": message,
        })

    async def _handle_binding_verify(self, request: Request) -> Response:
        if self.verifier is None:
            return Response.error("Signature verification not configured", status=501)

        body = request.json()
        if not isinstance(body, dict):
            return Response.error("Request body must be an object", status=400)

        session = IdentityBindingSession(
            self.verifier,
            identity_hash=body.get("identityHash") or "",
            wallet_address=body.get("walletAddress") or "",
        )
        try:
            binding = session.link(body.get("signature") or "")
        except SignatureInvalidError as e:
            payload = session.snapshot().to_dict()
            payload["error"] = str(e)
            return Response.json(payload, status=401)
        return Response.json(binding.to_dict())

    async def _handle_metrics(self, request: Request) -> Response:
        if not self.metrics:
            return Response.error("Metrics not enabled", status=404)

        return Response.text(
            self.metrics.collect(),
            content_type="text/plain; version=0.0.4; charset=utf-8",
        )
