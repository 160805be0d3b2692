"""Shared JSON request handling for the serverless endpoints."""

from http.server import BaseHTTPRequestHandler
import json
import asyncio
from pydantic import BaseModel
from src.services.session import extract_bearer_token, resolve_actor
from src.utils.errors import MarketplaceError
from src.utils.logging import correlation_context, get_structured_logger, setup_logging
from src.utils.logging_config import LoggingConfig

setup_logging()
logger = get_structured_logger(__name__)


class BadRequest(ValueError):
    """Malformed request body."""


def require_field(body: dict, name: str):
    value = body.get(name)
    if value is None or value == "":
        raise BadRequest(f"Missing required field: {name}")
    return value


def to_json(value):
    """Serialize models (or lists of them) into JSON-safe structures."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple, set)):
        return [to_json(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    return value


class JsonHandler(BaseHTTPRequestHandler):
    """POST handler that resolves the actor and maps errors to status codes."""

    endpoint = "api"

    async def process(self, actor_id: str, body: dict) -> dict:
        raise NotImplementedError

    def send_json(self, status: int, payload: dict) -> None:
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode('utf-8'))

    def read_json(self) -> dict:
        content_length = int(self.headers.get('Content-Length', 0) or 0)
        raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
        try:
            body = json.loads(raw_body) if raw_body else {}
        except json.JSONDecodeError as e:
            raise BadRequest("Request body is not valid JSON") from e
        if not isinstance(body, dict):
            raise BadRequest("Request body must be a JSON object")
        return body

    async def _dispatch(self, body: dict) -> dict:
        token = extract_bearer_token(self.headers.get("Authorization"))
        actor_id = await resolve_actor(token)
        return to_json(await self.process(actor_id, body))

    def do_POST(self):
        """Handle POST request."""
        correlation_id = self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)
        with correlation_context(correlation_id) as cid:
            try:
                body = self.read_json()
                result = asyncio.run(self._dispatch(body))
                self.send_json(200, {"ok": True, **result})
            except MarketplaceError as e:
                logger.info(
                    "Request rejected",
                    endpoint=self.endpoint,
                    correlation_id=cid,
                    error_type=type(e).__name__,
                    status_code=e.status_code,
                    error=e.message
                )
                self.send_json(e.status_code, {
                    "error": e.message,
                    "code": type(e).__name__,
                    "details": to_json(e.details),
                })
            except ValueError as e:
                logger.info("Bad request", endpoint=self.endpoint, correlation_id=cid, error=str(e))
                self.send_json(400, {"error": str(e), "code": "BadRequest"})
            except Exception as e:
                logger.error(
                    "Unhandled error",
                    endpoint=self.endpoint,
                    correlation_id=cid,
                    error=str(e),
                    exc_info=True
                )
                self.send_json(500, {"error": "internal server error"})

    def do_GET(self):
        """Handle GET request (endpoint liveness check)."""
        self.send_json(200, {"status": "ok", "endpoint": self.endpoint})
