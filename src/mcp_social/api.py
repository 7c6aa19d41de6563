"""FastAPI application for the MCP social network."""
import json
import logging
from typing import Optional
from fastapi import FastAPI, Depends, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from . import __version__
from .channels import ConnectionRegistry, event_stream
from .config import settings
from .database import get_db, init_db
from .dispatcher import Dispatcher
from .errors import ChannelError, HTTP_STATUS_BY_KIND, SocialError, ValidationError
from .identity import Credential, parse_credential
from .rpc import PARSE_ERROR, RpcHandler, rpc_error
from .sessions import MemorySessionStore, SessionStore
from .store import SocialStore
from .tools import list_tools


logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"

app = FastAPI(
    title="MCP Social Network",
    description="Profiles, posts, follows and likes exposed as MCP tools",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[SESSION_HEADER],
)

# Process-lifetime state: lost on restart, no expiry
app.state.identity_sessions = MemorySessionStore()
app.state.connections = ConnectionRegistry()


# =============================================================================
# Startup
# =============================================================================

@app.on_event("startup")
async def startup():
    """Initialize database on startup."""
    init_db()


@app.exception_handler(SocialError)
async def social_error_handler(request: Request, exc: SocialError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# =============================================================================
# Dependencies
# =============================================================================

def get_identity_sessions(request: Request) -> SessionStore:
    return request.app.state.identity_sessions


def get_connections(request: Request) -> ConnectionRegistry:
    return request.app.state.connections


def get_dispatcher(
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_identity_sessions)
) -> Dispatcher:
    return Dispatcher(SocialStore(db), sessions)


def get_credential(
    authorization: Optional[str] = Header(default=None),
    x_session_token: Optional[str] = Header(default=None)
) -> Credential:
    return parse_credential(authorization, x_session_token)


# =============================================================================
# Schemas
# =============================================================================

class SignupRequest(BaseModel):
    username: str = ""
    password: str = ""
    bio: Optional[str] = None


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class AuthResponse(BaseModel):
    message: str
    username: str
    token: str


class ToolCallRequest(BaseModel):
    arguments: Optional[dict] = None


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/")
async def root():
    """Health check."""
    return {
        "name": "MCP Social Network",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "tools": "/tools",
            "mcp": "/mcp",
            "signup": "/auth/signup",
            "login": "/auth/login",
            "health": "/"
        }
    }


@app.post("/auth/signup", response_model=AuthResponse, status_code=201)
async def signup(
    request: SignupRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher)
):
    """Create a password account and return a session token."""
    if not request.username or not request.password:
        raise ValidationError("Username and password are required")
    user, token = dispatcher.identity.signup(request.username, request.password, request.bio)
    return AuthResponse(message="Account created successfully", username=user.username, token=token)


@app.post("/auth/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher)
):
    """Verify a password and return a fresh session token."""
    user, token = dispatcher.identity.login(request.username, request.password)
    return AuthResponse(message="Login successful", username=user.username, token=token)


@app.get("/tools")
async def get_tools():
    """List the tool catalog."""
    return {"tools": list_tools()}


@app.post("/tools/{tool_name}")
async def call_tool(
    tool_name: str,
    request: Optional[ToolCallRequest] = None,
    dispatcher: Dispatcher = Depends(get_dispatcher),
    credential: Credential = Depends(get_credential)
):
    """Invoke one tool; identity comes from the request headers."""
    arguments = request.arguments if request else None
    result = await dispatcher.invoke(tool_name, arguments, credential)
    status_code = HTTP_STATUS_BY_KIND[result.error_kind] if result.isError else 200
    return JSONResponse(status_code=status_code, content=result.payload())


# =============================================================================
# MCP over HTTP (JSON-RPC + SSE push channel)
# =============================================================================

@app.post("/mcp")
async def mcp_rpc(
    request: Request,
    dispatcher: Dispatcher = Depends(get_dispatcher),
    connections: ConnectionRegistry = Depends(get_connections),
    credential: Credential = Depends(get_credential)
):
    """JSON-RPC request or batch."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content=rpc_error(None, PARSE_ERROR, "Parse error"))

    handler = RpcHandler(dispatcher, connections)
    outcome = await handler.handle(payload, credential, request.headers.get(SESSION_HEADER))

    headers = {SESSION_HEADER: outcome.session_id} if outcome.session_id else None
    if outcome.body is None:
        return Response(status_code=204, headers=headers)
    return JSONResponse(content=outcome.body, headers=headers)


@app.get("/mcp")
async def mcp_stream(
    request: Request,
    connections: ConnectionRegistry = Depends(get_connections)
):
    """Server-sent events channel for a handshaken session."""
    session_id = request.headers.get(SESSION_HEADER)
    try:
        connection = connections.open_stream(session_id)
    except ChannelError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    return StreamingResponse(
        event_stream(
            connections,
            connection,
            request.is_disconnected,
            keepalive_seconds=settings.sse_keepalive_seconds,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            SESSION_HEADER: connection.session_id,
        },
    )


@app.delete("/mcp", status_code=204)
async def mcp_terminate(
    request: Request,
    connections: ConnectionRegistry = Depends(get_connections)
):
    """Explicitly end a session."""
    session_id = request.headers.get(SESSION_HEADER)
    if connections.get(session_id) is None:
        return JSONResponse(status_code=404, content={"error": "Unknown session"})
    connections.close(session_id)
    return Response(status_code=204)
