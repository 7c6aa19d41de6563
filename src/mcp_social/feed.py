"""Social graph and feed assembly.

Works in usernames on the way in and plain dicts on the way out. Every post
dict carries its author's ``username``; listings are newest first with the
post id as tie-break so equal timestamps still order deterministically.
"""
import logging
from typing import Optional

from .errors import ConflictError, NotFoundError, ValidationError
from .models import User, Post
from .store import SocialStore


logger = logging.getLogger(__name__)

# Short ids shown in listings are this long; shorter prefixes are refused
MIN_POST_REF_LENGTH = 8


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "bio": user.bio,
        "created_at": user.created_at,
        "follower_count": user.follower_count,
        "following_count": user.following_count,
        "post_count": user.post_count,
    }


def post_to_dict(post: Post, username: str) -> dict:
    return {
        "id": post.id,
        "user_id": post.user_id,
        "username": username,
        "content": post.content,
        "code": post.code,
        "language": post.language,
        "tags": list(post.tags) if post.tags else [],
        "like_count": post.like_count,
        "reply_count": post.reply_count,
        "created_at": post.created_at,
    }


class SocialGraph:
    """Follow graph, likes and feed queries over the store."""

    def __init__(self, store: SocialStore):
        self.store = store

    def _require_user(self, username: str) -> User:
        user = self.store.get_user(username)
        if not user:
            raise NotFoundError(f"User @{username} not found")
        return user

    def _require_post(self, post_ref: str) -> Post:
        """Look up a post by full id or unique short-id prefix."""
        post_ref = (post_ref or "").strip()
        if not post_ref:
            raise ValidationError("Post ID is required")

        post = self.store.get_post(post_ref)
        if post:
            return post

        if len(post_ref) < MIN_POST_REF_LENGTH:
            raise NotFoundError("Post not found")
        matches = self.store.find_posts_by_prefix(post_ref, limit=2)
        if not matches:
            raise NotFoundError("Post not found")
        if len(matches) > 1:
            raise ValidationError(f"Post ID '{post_ref}' is ambiguous, use the full ID")
        return matches[0]

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def get_profile(self, username: str) -> dict:
        return user_to_dict(self._require_user(username))

    def update_bio(self, username: str, bio: str) -> dict:
        return user_to_dict(self.store.update_bio(username, bio))

    def search_users(self, query: str, limit: int = 10) -> list[dict]:
        return [user_to_dict(u) for u in self.store.search_users(query, limit)]

    # -------------------------------------------------------------------------
    # Follow graph
    # -------------------------------------------------------------------------

    def follow(self, follower: str, following: str) -> None:
        if follower == following:
            raise ValidationError("Cannot follow yourself")
        a = self._require_user(follower)
        b = self._require_user(following)

        message = f"Already following @{b.username}"
        if self.store.follow_exists(a.id, b.id):
            raise ConflictError(message)
        # A concurrent follow can still slip past the check; the primary key
        # on follows turns that into the same ConflictError
        self.store.add_follow(a.id, b.id, conflict_message=message)
        logger.info(f"@{follower} followed @{following}")

    def unfollow(self, follower: str, following: str) -> bool:
        a = self._require_user(follower)
        b = self._require_user(following)
        removed = self.store.remove_follow(a.id, b.id)
        if removed:
            logger.info(f"@{follower} unfollowed @{following}")
        return removed

    def is_following(self, follower: str, following: str) -> bool:
        a = self.store.get_user(follower)
        b = self.store.get_user(following)
        if not a or not b:
            return False
        return self.store.follow_exists(a.id, b.id)

    def get_following(self, username: str) -> list[dict]:
        user = self._require_user(username)
        return [user_to_dict(u) for u in self.store.following_of(user.id)]

    def get_followers(self, username: str) -> list[dict]:
        user = self._require_user(username)
        return [user_to_dict(u) for u in self.store.followers_of(user.id)]

    # -------------------------------------------------------------------------
    # Posts & feeds
    # -------------------------------------------------------------------------

    def create_post(
        self,
        username: str,
        content: str,
        code: Optional[str] = None,
        language: Optional[str] = None,
        tags: Optional[list[str]] = None
    ) -> dict:
        user = self._require_user(username)
        post = self.store.create_post(user.id, content, code, language, tags)
        return post_to_dict(post, user.username)

    def personalized_feed(self, username: str, limit: int = 20) -> list[dict]:
        """Posts from followed accounts only; empty when following nobody."""
        user = self._require_user(username)
        return [post_to_dict(p, name) for p, name in self.store.followed_posts(user.id, limit)]

    def global_feed(self, limit: int = 20) -> list[dict]:
        return [post_to_dict(p, name) for p, name in self.store.global_posts(limit)]

    def user_posts(self, username: str, limit: int = 20) -> list[dict]:
        user = self._require_user(username)
        return [post_to_dict(p, name) for p, name in self.store.user_posts(user.id, limit)]

    # -------------------------------------------------------------------------
    # Likes
    # -------------------------------------------------------------------------

    def like_post(self, username: str, post_ref: str) -> dict:
        user = self._require_user(username)
        post = self._require_post(post_ref)

        message = "You have already liked this post"
        if self.store.like_exists(user.id, post.id):
            raise ConflictError(message)
        self.store.add_like(user.id, post.id, conflict_message=message)
        return post_to_dict(post, post.author.username)

    def unlike_post(self, username: str, post_ref: str) -> dict:
        user = self._require_user(username)
        post = self._require_post(post_ref)
        self.store.remove_like(user.id, post.id)
        return post_to_dict(post, post.author.username)

    def is_liked(self, username: str, post_ref: str) -> bool:
        user = self.store.get_user(username)
        if not user:
            return False
        return self.store.like_exists(user.id, self._require_post(post_ref).id)
