"""JSON-RPC 2.0 handling for the MCP bindings (HTTP and stdio).

A payload is one request object or a batch array. Items are handled one by
one in input order; a failing item produces its own error response and
never aborts its siblings. Notifications (no ``id``) get no response.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .channels import ConnectionRegistry
from .config import settings as default_settings, Settings
from .dispatcher import Dispatcher
from .identity import Credential
from .tools import list_tools


logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SESSION_NOT_INITIALIZED = -32002

# Methods that need a handshaken connection first
SESSION_METHODS = {"tools/list", "tools/call"}


def rpc_result(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def rpc_error(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": {"code": code, "message": message}}


@dataclass
class RpcOutcome:
    """Response body (None when nothing needs answering) and any new session id."""
    body: Any
    session_id: Optional[str] = None


class RpcHandler:
    """Serves initialize, tools/list, tools/call and ping."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        registry: ConnectionRegistry,
        settings: Settings = None
    ):
        self.dispatcher = dispatcher
        self.registry = registry
        self.settings = settings or default_settings

    async def handle(
        self,
        payload: Any,
        credential: Credential = None,
        session_id: Optional[str] = None
    ) -> RpcOutcome:
        credential = credential or Credential.none()
        is_batch = isinstance(payload, list)
        messages = payload if is_batch else [payload]

        if is_batch and not messages:
            return RpcOutcome(rpc_error(None, INVALID_REQUEST, "Empty batch"))

        issued_session = None
        responses = []
        for message in messages:
            current = issued_session or session_id
            response, new_session = await self._handle_one(message, credential, current)
            if new_session:
                issued_session = new_session
            if response is not None:
                responses.append(response)

        if not responses:
            body = None
        elif is_batch:
            body = responses
        else:
            body = responses[0]
        return RpcOutcome(body, issued_session)

    async def _handle_one(
        self,
        message: Any,
        credential: Credential,
        session_id: Optional[str]
    ) -> tuple[Optional[dict], Optional[str]]:
        if not isinstance(message, dict):
            return rpc_error(None, INVALID_REQUEST, "Invalid Request"), None

        if "method" not in message:
            # A client's reply to a server request; nothing to answer
            if "result" in message or "error" in message:
                return None, None
            return rpc_error(message.get("id"), INVALID_REQUEST, "Invalid Request"), None

        method = message["method"]
        request_id = message.get("id")
        if not isinstance(method, str):
            return rpc_error(request_id, INVALID_REQUEST, "Invalid Request"), None
        is_notification = "id" not in message
        params = message.get("params") or {}

        try:
            if method == "initialize":
                if is_notification:
                    return None, None
                connection = self.registry.initialize(
                    client_info=params.get("clientInfo") if isinstance(params, dict) else None,
                    capabilities=params.get("capabilities") if isinstance(params, dict) else None,
                )
                return rpc_result(request_id, self._initialize_result(params)), connection.session_id

            if method == "ping":
                response = rpc_result(request_id, "pong")
            elif method.startswith("notifications/"):
                return None, None
            elif method in SESSION_METHODS and self.settings.require_mcp_session \
                    and not self.registry.accepts_calls(session_id):
                response = rpc_error(request_id, SESSION_NOT_INITIALIZED, "Session not initialized")
            elif method == "tools/list":
                response = rpc_result(request_id, {"tools": list_tools()})
            elif method == "tools/call":
                response = await self._tools_call(request_id, params, credential)
            else:
                response = rpc_error(request_id, METHOD_NOT_FOUND, f"Unknown method {method}")
        except Exception:
            logger.exception(f"JSON-RPC method {method} failed")
            response = rpc_error(request_id, INTERNAL_ERROR, "Internal error")

        if is_notification:
            return None, None
        return response, None

    def _initialize_result(self, params: Any) -> dict:
        requested = params.get("protocolVersion") if isinstance(params, dict) else None
        return {
            "protocolVersion": requested or self.settings.protocol_version,
            "capabilities": {"tools": {}},
            "serverInfo": {
                "name": self.settings.server_name,
                "version": self.settings.server_version,
            },
        }

    async def _tools_call(self, request_id: Any, params: Any, credential: Credential) -> dict:
        if not isinstance(params, dict) or not isinstance(params.get("name"), str):
            return rpc_error(request_id, INVALID_PARAMS, "tools/call requires a tool name")
        arguments = params.get("arguments")
        if arguments is not None and not isinstance(arguments, dict):
            return rpc_error(request_id, INVALID_PARAMS, "tools/call arguments must be an object")

        result = await self.dispatcher.invoke(params["name"], arguments, credential)
        return rpc_result(request_id, result.payload())
