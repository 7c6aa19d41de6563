"""Transport-agnostic tool dispatcher.

``Dispatcher.invoke`` is the single place where failures become results:
whatever a handler raises, the caller gets a well-formed ``ToolResult``
with ``isError`` set and a readable message. Raw exception text from the
store never reaches the caller.
"""
import logging
from typing import Any, Optional
from mcp.types import TextContent
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .config import settings as default_settings, Settings
from .errors import ErrorKind, InternalError, SocialError, UnknownToolError, ValidationError
from .feed import SocialGraph
from .formatting import (
    format_date, format_post, format_posts, format_profile, format_user_line
)
from .identity import Credential, IdentityResolver
from .sessions import Identity, SessionStore
from .store import SocialStore
from .tools import Tool, TOOLS, get_tool


logger = logging.getLogger(__name__)


# =============================================================================
# Result envelope
# =============================================================================

class ToolResult(BaseModel):
    """MCP tool result; ``error_kind`` stays server-side."""
    content: list[TextContent]
    isError: bool = False
    error_kind: Optional[ErrorKind] = Field(default=None, exclude=True)

    @classmethod
    def ok(cls, text: str) -> "ToolResult":
        return cls(content=[TextContent(type="text", text=text)])

    @classmethod
    def failure(cls, error: SocialError) -> "ToolResult":
        return cls(
            content=[TextContent(type="text", text=f"❌ Error: {error.message}")],
            isError=True,
            error_kind=error.kind,
        )

    @property
    def text(self) -> str:
        return "\n".join(c.text for c in self.content)

    def payload(self) -> dict:
        """Wire form: unset MCP content fields are left out."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def describe_validation_error(error: PydanticValidationError) -> str:
    """Turn pydantic errors into one message, keeping validator wording."""
    messages = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"]) or "arguments"
        if err["type"] == "value_error" and "error" in err.get("ctx", {}):
            messages.append(str(err["ctx"]["error"]))
        elif err["type"] == "missing":
            messages.append(f"Missing required argument: {field}")
        else:
            messages.append(f"{field}: {err['msg']}")
    return "; ".join(messages)


# =============================================================================
# Dispatcher
# =============================================================================

class Dispatcher:
    """Routes (tool name, arguments, credential) to a ToolResult."""

    def __init__(
        self,
        store: SocialStore,
        sessions: SessionStore[Identity],
        settings: Settings = None
    ):
        settings = settings or default_settings
        self.store = store
        self.graph = SocialGraph(store)
        self.identity = IdentityResolver(
            store,
            sessions,
            bcrypt_rounds=settings.bcrypt_rounds,
            identity_mode=settings.identity_mode,
        )
        self._handlers = {tool.name: getattr(self, f"_tool_{tool.name}") for tool in TOOLS}

    async def invoke(
        self,
        name: str,
        args: Optional[dict[str, Any]],
        credential: Credential = None
    ) -> ToolResult:
        credential = credential or Credential.none()
        try:
            tool = get_tool(name)
            if tool is None:
                raise UnknownToolError(f"Unknown tool: {name}")

            identity = None
            if tool.requires_identity:
                identity = self.identity.resolve(credential)

            params = self._validate(tool, args)
            caller = identity.username if identity else "-"
            logger.info(f"Tool call: {name} (caller @{caller})")

            text = await self._handlers[name](params, identity, credential)
            return ToolResult.ok(text)

        except SocialError as e:
            logger.info(f"Tool {name} failed ({e.kind.value}): {e.message}")
            return ToolResult.failure(e)
        except Exception:
            logger.exception(f"Tool {name} raised an unexpected error")
            self.store.rollback()
            return ToolResult.failure(InternalError("Internal error"))

    def _validate(self, tool: Tool, args: Any) -> BaseModel:
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise ValidationError("Tool arguments must be a JSON object")
        try:
            return tool.args_model.model_validate(args)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

    # -------------------------------------------------------------------------
    # Accounts & profiles
    # -------------------------------------------------------------------------

    async def _tool_create_account(self, params, identity, credential) -> str:
        user, token = self.identity.signup(params.username, params.password, params.bio)
        return (
            f"✅ Account created successfully!\n\n"
            f"Username: @{user.username}\n"
            f"Bio: {user.bio or 'No bio yet'}\n"
            f"Joined: {format_date(user.created_at)}\n\n"
            f"🔐 Your account is now secured with a password!\n"
            f"Session token: {token}\n\n"
            f"You can now start posting and following other users!"
        )

    async def _tool_login(self, params, identity, credential) -> str:
        user, token = self.identity.login(params.username, params.password)
        return (
            f"✅ Login successful!\n\n"
            f"Welcome back, @{user.username}!\n"
            f"Session token: {token}\n\n"
            f"You can now access all your social features!"
        )

    async def _tool_create_profile(self, params, identity, credential) -> str:
        user = self.identity.create_profile(credential.token, params.username, params.bio)
        return (
            f"✅ Profile created successfully!\n\n"
            f"Username: @{user.username}\n"
            f"Bio: {user.bio or 'No bio yet'}\n"
            f"Joined: {format_date(user.created_at)}\n\n"
            f"You can now start posting and following other users!"
        )

    async def _tool_get_profile(self, params, identity, credential) -> str:
        return format_profile(self.graph.get_profile(params.username))

    async def _tool_update_profile(self, params, identity, credential) -> str:
        user = self.graph.update_bio(identity.username, params.bio)
        return f"✅ Profile updated!\n\nNew bio: {user['bio']}"

    async def _tool_search_users(self, params, identity, credential) -> str:
        users = self.graph.search_users(params.query, params.limit)
        if not users:
            return f'No users found matching "{params.query}"'
        user_list = "\n".join(format_user_line(u) for u in users)
        return f'🔍 Found {len(users)} user(s) matching "{params.query}":\n\n{user_list}'

    # -------------------------------------------------------------------------
    # Posts & feeds
    # -------------------------------------------------------------------------

    async def _tool_post_update(self, params, identity, credential) -> str:
        post = self.graph.create_post(identity.username, params.content, tags=params.tags)
        return f"✅ Posted successfully!\n\n{format_post(post)}"

    async def _tool_post_code(self, params, identity, credential) -> str:
        post = self.graph.create_post(
            identity.username,
            params.description,
            code=params.code,
            language=params.language,
            tags=params.tags,
        )
        return f"✅ Code snippet posted successfully!\n\n{format_post(post)}"

    async def _tool_get_feed(self, params, identity, credential) -> str:
        posts = self.graph.personalized_feed(identity.username, params.limit)
        if not posts:
            return (
                "📱 Your feed is empty!\n\n"
                "Try following some users to see their posts here. "
                "Use search_users() to find people to follow."
            )
        return f"📱 Your Feed ({len(posts)} posts)\n\n{format_posts(posts)}"

    async def _tool_get_global_feed(self, params, identity, credential) -> str:
        posts = self.graph.global_feed(params.limit)
        if not posts:
            return "🌍 Global feed is empty!\n\nBe the first to post something!"
        return f"🌍 Global Feed ({len(posts)} posts)\n\n{format_posts(posts)}"

    async def _tool_get_user_posts(self, params, identity, credential) -> str:
        posts = self.graph.user_posts(params.username, params.limit)
        if not posts:
            return f"@{params.username} hasn't posted anything yet."
        return f"📝 Posts by @{params.username} ({len(posts)} posts)\n\n{format_posts(posts)}"

    # -------------------------------------------------------------------------
    # Follow graph
    # -------------------------------------------------------------------------

    async def _tool_follow_user(self, params, identity, credential) -> str:
        self.graph.follow(identity.username, params.username)
        return f"✅ You are now following @{params.username}!"

    async def _tool_unfollow_user(self, params, identity, credential) -> str:
        self.graph.unfollow(identity.username, params.username)
        return f"✅ You have unfollowed @{params.username}"

    async def _tool_get_following(self, params, identity, credential) -> str:
        following = self.graph.get_following(identity.username)
        if not following:
            return "You're not following anyone yet. Use search_users() to find people to follow!"
        user_list = "\n".join(format_user_line(u) for u in following)
        return f"👥 You are following {len(following)} user(s):\n\n{user_list}"

    async def _tool_get_followers(self, params, identity, credential) -> str:
        followers = self.graph.get_followers(identity.username)
        if not followers:
            return "You don't have any followers yet. Keep posting great content!"
        user_list = "\n".join(format_user_line(u, stat="posts") for u in followers)
        return f"👥 You have {len(followers)} follower(s):\n\n{user_list}"

    # -------------------------------------------------------------------------
    # Likes
    # -------------------------------------------------------------------------

    async def _tool_like_post(self, params, identity, credential) -> str:
        post = self.graph.like_post(identity.username, params.post_id)
        return f"❤️ You liked @{post['username']}'s post!"

    async def _tool_unlike_post(self, params, identity, credential) -> str:
        post = self.graph.unlike_post(identity.username, params.post_id)
        return f"💔 You unliked @{post['username']}'s post"
