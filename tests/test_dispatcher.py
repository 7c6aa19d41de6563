"""Test the tool dispatcher and its result envelope."""
import uuid
import pytest
from unittest.mock import patch

from mcp_social.dispatcher import ToolResult
from mcp_social.errors import ErrorKind
from mcp_social.identity import Credential
from mcp_social.models import User


async def signup(dispatcher, username, password="secret1"):
    result = await dispatcher.invoke(
        "create_account", {"username": username, "password": password}
    )
    assert not result.isError, result.text
    return Credential.basic(username, password)


@pytest.mark.asyncio
class TestEnvelope:
    """Every outcome is a well-formed ToolResult."""

    async def test_unknown_tool(self, dispatcher):
        result = await dispatcher.invoke("drop_tables", {})

        assert result.isError
        assert result.error_kind == ErrorKind.UNKNOWN_TOOL
        assert "Unknown tool: drop_tables" in result.text

    async def test_write_tool_without_identity(self, dispatcher):
        result = await dispatcher.invoke("post_update", {"content": "hi"})

        assert result.isError
        assert result.error_kind == ErrorKind.AUTH

    async def test_auth_checked_before_arguments(self, dispatcher):
        result = await dispatcher.invoke("post_update", {"content": "x" * 500})
        assert result.error_kind == ErrorKind.AUTH

    async def test_validation_message_is_readable(self, dispatcher):
        alice = await signup(dispatcher, "alice")
        result = await dispatcher.invoke("post_update", {"content": "x" * 281}, alice)

        assert result.error_kind == ErrorKind.VALIDATION
        assert result.text == "❌ Error: Post content must be 280 characters or less"

    async def test_missing_argument(self, dispatcher):
        result = await dispatcher.invoke("get_profile", {})

        assert result.error_kind == ErrorKind.VALIDATION
        assert "Missing required argument: username" in result.text

    async def test_arguments_must_be_object(self, dispatcher):
        result = await dispatcher.invoke("get_profile", ["alice"])
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_unexpected_error_is_normalized(self, dispatcher):
        with patch.object(dispatcher.graph, "global_feed", side_effect=RuntimeError("db exploded: secret dsn")):
            result = await dispatcher.invoke("get_global_feed", {})

        assert result.isError
        assert result.error_kind == ErrorKind.INTERNAL
        assert "secret dsn" not in result.text

    async def test_error_kind_not_serialized(self, dispatcher):
        result = await dispatcher.invoke("drop_tables", {})
        payload = result.payload()

        assert payload == {
            "content": [{"type": "text", "text": "❌ Error: Unknown tool: drop_tables"}],
            "isError": True,
        }

    async def test_success_payload(self, dispatcher):
        result = await dispatcher.invoke("get_global_feed", {})

        assert isinstance(result, ToolResult)
        assert not result.isError
        assert "Global feed is empty" in result.text


@pytest.mark.asyncio
class TestAccounts:
    """Test account and profile tools."""

    async def test_create_account_returns_token(self, dispatcher, identity_sessions):
        result = await dispatcher.invoke("create_account", {"username": "alice", "password": "secret1"})

        assert "Account created successfully" in result.text
        assert "Session token: " in result.text
        assert len(identity_sessions) == 1

    async def test_duplicate_account(self, dispatcher, db_session):
        await signup(dispatcher, "alice")
        result = await dispatcher.invoke("create_account", {"username": "alice", "password": "secret1"})

        assert result.error_kind == ErrorKind.CONFLICT
        assert 'Username "alice" is already taken' in result.text
        assert db_session.query(User).count() == 1

    async def test_login(self, dispatcher):
        await signup(dispatcher, "alice")

        ok = await dispatcher.invoke("login", {"username": "alice", "password": "secret1"})
        bad = await dispatcher.invoke("login", {"username": "alice", "password": "wrong12"})

        assert "Welcome back, @alice" in ok.text
        assert bad.error_kind == ErrorKind.AUTH

    async def test_create_profile_then_write(self, dispatcher):
        token = Credential.bearer(str(uuid.uuid4()))

        created = await dispatcher.invoke("create_profile", {"username": "ghost", "bio": "boo"}, token)
        posted = await dispatcher.invoke("post_update", {"content": "anonymous hello"}, token)

        assert "Profile created successfully" in created.text
        assert not posted.isError
        assert "@ghost" in posted.text

    async def test_create_profile_needs_token(self, dispatcher):
        result = await dispatcher.invoke("create_profile", {"username": "ghost"})
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_update_profile(self, dispatcher):
        alice = await signup(dispatcher, "alice")

        result = await dispatcher.invoke("update_profile", {"bio": "I like graphs"}, alice)
        profile = await dispatcher.invoke("get_profile", {"username": "alice"})

        assert "New bio: I like graphs" in result.text
        assert "Bio: I like graphs" in profile.text

    async def test_get_profile_unknown(self, dispatcher):
        result = await dispatcher.invoke("get_profile", {"username": "nobody"})
        assert result.error_kind == ErrorKind.NOT_FOUND

    async def test_search_users(self, dispatcher):
        await signup(dispatcher, "alice")
        await signup(dispatcher, "alicia")

        found = await dispatcher.invoke("search_users", {"query": "ali"})
        none = await dispatcher.invoke("search_users", {"query": "zzz"})

        assert "Found 2 user(s)" in found.text
        assert 'No users found matching "zzz"' in none.text


@pytest.mark.asyncio
class TestSocialFlow:
    """End-to-end flows through the dispatcher."""

    async def test_alice_follows_bob_scenario(self, dispatcher):
        alice = await signup(dispatcher, "alice", "secret1")
        bob = await signup(dispatcher, "bob", "secret2")

        followed = await dispatcher.invoke("follow_user", {"username": "bob"}, alice)
        posted = await dispatcher.invoke("post_update", {"content": "hello"}, bob)
        feed = await dispatcher.invoke("get_feed", {}, alice)
        profile = await dispatcher.invoke("get_profile", {"username": "bob"})

        assert "now following @bob" in followed.text
        assert not posted.isError
        assert "Your Feed (1 posts)" in feed.text
        assert '@bob' in feed.text and '"hello"' in feed.text
        assert "Posts: 1" in profile.text

        entries = dispatcher.graph.personalized_feed("alice")
        assert len(entries) == 1
        assert entries[0]["username"] == "bob"
        assert entries[0]["content"] == "hello"

    async def test_empty_feed_message(self, dispatcher):
        alice = await signup(dispatcher, "alice")
        await signup(dispatcher, "bob")
        await dispatcher.invoke("post_update", {"content": "hello"}, Credential.basic("bob", "secret1"))

        feed = await dispatcher.invoke("get_feed", {}, alice)
        assert "Your feed is empty" in feed.text

    async def test_follow_self(self, dispatcher):
        alice = await signup(dispatcher, "alice")
        result = await dispatcher.invoke("follow_user", {"username": "alice"}, alice)
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_unfollow_idempotent(self, dispatcher):
        alice = await signup(dispatcher, "alice")
        await signup(dispatcher, "bob")

        result = await dispatcher.invoke("unfollow_user", {"username": "bob"}, alice)
        assert not result.isError

    async def test_following_and_followers_lists(self, dispatcher):
        alice = await signup(dispatcher, "alice")
        bob = await signup(dispatcher, "bob")
        await dispatcher.invoke("follow_user", {"username": "bob"}, alice)

        following = await dispatcher.invoke("get_following", {}, alice)
        followers = await dispatcher.invoke("get_followers", {}, bob)
        nobody = await dispatcher.invoke("get_following", {}, bob)

        assert "following 1 user(s)" in following.text and "@bob" in following.text
        assert "1 follower(s)" in followers.text and "@alice" in followers.text
        assert "not following anyone yet" in nobody.text

    async def test_post_code_formatting(self, dispatcher):
        alice = await signup(dispatcher, "alice")
        result = await dispatcher.invoke(
            "post_code",
            {"code": "print('hi')", "language": "python", "description": "greeting", "tags": ["#py"]},
            alice,
        )

        assert "```python\nprint('hi')\n```" in result.text
        assert "Tags: #py" in result.text

    async def test_like_flow(self, dispatcher):
        alice = await signup(dispatcher, "alice")
        bob = await signup(dispatcher, "bob")
        await dispatcher.invoke("post_update", {"content": "like me"}, bob)
        post_id = dispatcher.graph.global_feed()[0]["id"]

        liked = await dispatcher.invoke("like_post", {"post_id": post_id}, alice)
        again = await dispatcher.invoke("like_post", {"post_id": post_id}, alice)
        unliked = await dispatcher.invoke("unlike_post", {"post_id": post_id}, alice)
        unliked_again = await dispatcher.invoke("unlike_post", {"post_id": post_id}, alice)

        assert "You liked @bob's post" in liked.text
        assert again.error_kind == ErrorKind.CONFLICT
        assert not unliked.isError
        assert not unliked_again.isError
        assert dispatcher.graph.global_feed()[0]["like_count"] == 0

    async def test_user_posts(self, dispatcher):
        bob = await signup(dispatcher, "bob")
        empty = await dispatcher.invoke("get_user_posts", {"username": "bob"})
        await dispatcher.invoke("post_update", {"content": "one"}, bob)
        listed = await dispatcher.invoke("get_user_posts", {"username": "bob"})

        assert "hasn't posted anything yet" in empty.text
        assert "Posts by @bob (1 posts)" in listed.text
