"""MCP over stdin/stdout, served by the MCP SDK's low-level server.

The process is one client. It presents a per-process session token on every
call: ``create_profile`` binds that token to the new anonymous profile, and a
successful ``create_account`` or ``login`` rebinds it to the credentialed
account, so later write tools act as that user for the rest of the process.
"""
import asyncio
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import settings as default_settings, Settings
from .database import SessionLocal, get_engine
from .dispatcher import Dispatcher
from .identity import Credential
from .security import new_token
from .sessions import Credentialed, MemorySessionStore
from .store import SocialStore
from .tools import TOOLS


logger = logging.getLogger(__name__)

# Tools whose success proves a password for the username argument
SIGN_IN_TOOLS = {"create_account", "login"}


class ToolCallFailed(Exception):
    """Raised from the call_tool handler; the SDK reports it with isError set."""
    pass


class StdioServer:
    """Serves the tool set to a single client over stdio."""

    def __init__(self, settings: Settings = None, session_factory=None):
        self.settings = settings or default_settings
        self.session_factory = session_factory or SessionLocal

        self.identity_sessions = MemorySessionStore()
        self.credential = Credential.bearer(new_token())

        self.server = Server(self.settings.server_name, version=self.settings.server_version)
        self.server.list_tools()(self.list_tools)
        # Arguments are validated by the dispatcher against the same models
        self.server.call_tool(validate_input=False)(self.call_tool)

    async def list_tools(self) -> list[Tool]:
        return [
            Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema)
            for tool in TOOLS
        ]

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]]) -> list[TextContent]:
        db = self.session_factory()
        try:
            dispatcher = Dispatcher(SocialStore(db), self.identity_sessions, self.settings)
            result = await dispatcher.invoke(name, arguments, self.credential)
        finally:
            db.close()

        if result.isError:
            raise ToolCallFailed(result.text)

        if name in SIGN_IN_TOOLS:
            username = arguments["username"]
            self.identity_sessions.set(self.credential.token, Credentialed(username))
            logger.info(f"stdio client signed in as @{username}")
        return result.content

    async def serve(self):
        logger.info("MCP Social Network server running on stdio")
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options()
            )


def run_stdio(settings: Settings = None):
    get_engine()
    asyncio.run(StdioServer(settings).serve())
