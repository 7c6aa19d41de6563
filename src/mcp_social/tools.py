"""Tool registry.

Each tool's pydantic argument model is both the schema advertised by
``tools/list`` / ``GET /tools`` and the validator the dispatcher runs, so
the listed shape and the accepted shape cannot drift apart.
"""
from dataclasses import dataclass
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from .identity import BIO_MAX_LENGTH


CONTENT_MAX_LENGTH = 280
CODE_MAX_LENGTH = 10_000
LANGUAGE_MAX_LENGTH = 30
MAX_TAGS = 10
TAG_MAX_LENGTH = 30
MAX_LIMIT = 100


def _clean_tags(tags: Optional[list[str]]) -> Optional[list[str]]:
    if tags is None:
        return None
    if len(tags) > MAX_TAGS:
        raise ValueError(f"At most {MAX_TAGS} tags are allowed")
    cleaned = []
    for tag in tags:
        tag = tag.strip().lstrip("#")
        if not tag or len(tag) > TAG_MAX_LENGTH:
            raise ValueError(f"Tags must be between 1 and {TAG_MAX_LENGTH} characters")
        cleaned.append(tag)
    return cleaned


# =============================================================================
# Argument models
# =============================================================================

class CreateAccountArgs(BaseModel):
    username: str = Field(description="Username (3-20 characters, must be unique)")
    password: str = Field(description="Password (minimum 6 characters)")
    bio: Optional[str] = Field(default=None, description="Optional bio (max 500 characters)")


class LoginArgs(BaseModel):
    username: str = Field(description="Your username")
    password: str = Field(description="Your password")


class CreateProfileArgs(BaseModel):
    username: str = Field(description="Username (3-20 characters, must be unique)")
    bio: Optional[str] = Field(default=None, description="Optional bio (max 500 characters)")


class UsernameArgs(BaseModel):
    username: str = Field(description="Username")


class UpdateProfileArgs(BaseModel):
    bio: str = Field(description="New bio (max 500 characters)")

    @field_validator("bio")
    @classmethod
    def check_bio(cls, v: str) -> str:
        if len(v) > BIO_MAX_LENGTH:
            raise ValueError(f"Bio must be {BIO_MAX_LENGTH} characters or less")
        return v


class SearchUsersArgs(BaseModel):
    query: str = Field(description="Search query")
    limit: int = Field(default=10, ge=1, le=MAX_LIMIT, description="Maximum number of results (default: 10)")


class PostUpdateArgs(BaseModel):
    content: str = Field(description="Post content (max 280 characters)")
    tags: Optional[list[str]] = Field(default=None, description="Optional tags (without # symbol)")

    @field_validator("content")
    @classmethod
    def check_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Post content cannot be empty")
        if len(v) > CONTENT_MAX_LENGTH:
            raise ValueError(f"Post content must be {CONTENT_MAX_LENGTH} characters or less")
        return v

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v):
        return _clean_tags(v)


class PostCodeArgs(BaseModel):
    code: str = Field(description="Code snippet")
    language: str = Field(description="Programming language")
    description: str = Field(description="Description of the code (max 280 characters)")
    tags: Optional[list[str]] = Field(default=None, description="Optional tags (without # symbol)")

    @field_validator("code")
    @classmethod
    def check_code(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Code cannot be empty")
        if len(v) > CODE_MAX_LENGTH:
            raise ValueError(f"Code must be {CODE_MAX_LENGTH} characters or less")
        return v

    @field_validator("language")
    @classmethod
    def check_language(cls, v: str) -> str:
        if len(v) > LANGUAGE_MAX_LENGTH:
            raise ValueError(f"Language must be {LANGUAGE_MAX_LENGTH} characters or less")
        return v

    @field_validator("description")
    @classmethod
    def check_description(cls, v: str) -> str:
        if len(v) > CONTENT_MAX_LENGTH:
            raise ValueError(f"Description must be {CONTENT_MAX_LENGTH} characters or less")
        return v

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v):
        return _clean_tags(v)


class FeedArgs(BaseModel):
    limit: int = Field(default=20, ge=1, le=MAX_LIMIT, description="Maximum number of posts (default: 20)")


class UserPostsArgs(BaseModel):
    username: str = Field(description="Username to get posts from")
    limit: int = Field(default=20, ge=1, le=MAX_LIMIT, description="Maximum number of posts (default: 20)")


class NoArgs(BaseModel):
    pass


class PostRefArgs(BaseModel):
    post_id: str = Field(description="ID of the post (full ID or the 8-character short ID)")


# =============================================================================
# Catalog
# =============================================================================

def _strip_titles(schema):
    if isinstance(schema, dict):
        return {k: _strip_titles(v) for k, v in schema.items() if k != "title"}
    if isinstance(schema, list):
        return [_strip_titles(v) for v in schema]
    return schema


@dataclass(frozen=True)
class Tool:
    """Immutable tool descriptor."""
    name: str
    description: str
    args_model: type[BaseModel]
    requires_identity: bool = False

    @property
    def input_schema(self) -> dict:
        schema = _strip_titles(self.args_model.model_json_schema())
        schema.setdefault("properties", {})
        return schema

    def describe(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "requiresIdentity": self.requires_identity,
        }


TOOLS: tuple[Tool, ...] = (
    Tool("create_account", "Create a new user account with username and password", CreateAccountArgs),
    Tool("login", "Login to your existing account and get a session token", LoginArgs),
    Tool(
        "create_profile",
        "Create a passwordless profile bound to your session token",
        CreateProfileArgs,
    ),
    Tool("get_profile", "Get a user profile by username", UsernameArgs),
    Tool("update_profile", "Update your profile bio (requires authentication)", UpdateProfileArgs, True),
    Tool("search_users", "Search for users by username", SearchUsersArgs),
    Tool("post_update", "Post a text update (requires authentication)", PostUpdateArgs, True),
    Tool("post_code", "Post a code snippet with description (requires authentication)", PostCodeArgs, True),
    Tool(
        "get_feed",
        "Get your personalized feed (posts from users you follow, requires authentication)",
        FeedArgs,
        True,
    ),
    Tool("get_global_feed", "Get the global feed (all public posts)", FeedArgs),
    Tool("get_user_posts", "Get posts from a specific user", UserPostsArgs),
    Tool("follow_user", "Follow a user (requires authentication)", UsernameArgs, True),
    Tool("unfollow_user", "Unfollow a user (requires authentication)", UsernameArgs, True),
    Tool("get_following", "Get list of users you are following (requires authentication)", NoArgs, True),
    Tool("get_followers", "Get list of your followers (requires authentication)", NoArgs, True),
    Tool("like_post", "Like a post by post ID (requires authentication)", PostRefArgs, True),
    Tool("unlike_post", "Unlike a post by post ID (requires authentication)", PostRefArgs, True),
)

TOOLS_BY_NAME: dict[str, Tool] = {tool.name: tool for tool in TOOLS}


def get_tool(name: str) -> Optional[Tool]:
    return TOOLS_BY_NAME.get(name)


def list_tools() -> list[dict]:
    return [tool.describe() for tool in TOOLS]
