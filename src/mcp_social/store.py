"""Relational store adapter.

Thin repository over the SQLAlchemy session. Every write is one
transaction: the row change and the denormalized counters it implies commit
together. Unique-constraint violations are translated into ConflictError
here, which is the only place the store's own error types are inspected.
"""
import logging
from typing import Optional
from sqlalchemy import select, insert, update, delete, func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
import tenacity

from .models import User, Post, Follow, Like, utc_now
from .errors import ConflictError, NotFoundError


logger = logging.getLogger(__name__)


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log retry attempts for debugging."""
    logger.warning(
        f"Store retry attempt {retry_state.attempt_number} after "
        f"{retry_state.outcome.exception() if retry_state.outcome else 'unknown error'}"
    )


# Retry transient store failures (locked database, dropped connection)
store_retry = tenacity.retry(
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=0.1, min=0.1, max=2),
    retry=tenacity.retry_if_exception_type(OperationalError),
    before_sleep=_log_retry,
    reraise=True,
)


class SocialStore:
    """Accounts, posts, follow edges and like edges."""

    def __init__(self, db: Session):
        self.db = db

    def rollback(self):
        self.db.rollback()

    def _commit(self, conflict_message: str = None):
        """Commit, translating uniqueness violations into ConflictError."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if conflict_message is None:
                raise
            logger.info(f"Uniqueness violation: {e.orig}")
            raise ConflictError(conflict_message) from e
        except OperationalError:
            self.db.rollback()
            raise

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @store_retry
    def create_user(
        self,
        username: str,
        bio: str = None,
        password_hash: str = None
    ) -> User:
        user = User(
            username=username,
            bio=bio,
            password_hash=password_hash,
            created_at=utc_now()
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f'Username "{username}" is already taken') from e
        except OperationalError:
            self.db.rollback()
            raise
        self._commit(f'Username "{username}" is already taken')
        self.db.refresh(user)
        return user

    @store_retry
    def get_user(self, username: str) -> Optional[User]:
        return self.db.scalar(select(User).where(User.username == username))

    @store_retry
    def update_bio(self, username: str, bio: str) -> User:
        user = self.get_user(username)
        if not user:
            raise NotFoundError(f"User @{username} not found")
        user.bio = bio
        self._commit()
        self.db.refresh(user)
        return user

    @store_retry
    def search_users(self, query: str, limit: int = 10) -> list[User]:
        stmt = (
            select(User)
            .where(User.username.icontains(query, autoescape=True))
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(limit)
        )
        return list(self.db.scalars(stmt))

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    @store_retry
    def create_post(
        self,
        user_id: str,
        content: str,
        code: str = None,
        language: str = None,
        tags: list[str] = None
    ) -> Post:
        post = Post(
            user_id=user_id,
            content=content,
            code=code,
            language=language,
            tags=tags or None,
            created_at=utc_now()
        )
        self.db.add(post)
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(post_count=User.post_count + 1)
        )
        self._commit()
        self.db.refresh(post)
        return post

    @store_retry
    def get_post(self, post_id: str) -> Optional[Post]:
        return self.db.get(Post, post_id)

    @store_retry
    def find_posts_by_prefix(self, prefix: str, limit: int = 2) -> list[Post]:
        stmt = (
            select(Post)
            .where(Post.id.startswith(prefix, autoescape=True))
            .order_by(Post.id)
            .limit(limit)
        )
        return list(self.db.scalars(stmt))

    def _attributed_posts(self):
        """Posts joined with their author's username, newest first."""
        return (
            select(Post, User.username)
            .join(User, Post.user_id == User.id)
            .order_by(Post.created_at.desc(), Post.id.desc())
        )

    @store_retry
    def global_posts(self, limit: int = 20) -> list[tuple[Post, str]]:
        return [tuple(row) for row in self.db.execute(self._attributed_posts().limit(limit))]

    @store_retry
    def user_posts(self, user_id: str, limit: int = 20) -> list[tuple[Post, str]]:
        stmt = self._attributed_posts().where(Post.user_id == user_id).limit(limit)
        return [tuple(row) for row in self.db.execute(stmt)]

    @store_retry
    def followed_posts(self, follower_id: str, limit: int = 20) -> list[tuple[Post, str]]:
        """Posts by every account follower_id follows (nested query)."""
        followed = select(Follow.following_id).where(Follow.follower_id == follower_id)
        stmt = self._attributed_posts().where(Post.user_id.in_(followed)).limit(limit)
        return [tuple(row) for row in self.db.execute(stmt)]

    # -------------------------------------------------------------------------
    # Follow edges
    # -------------------------------------------------------------------------

    @store_retry
    def follow_exists(self, follower_id: str, following_id: str) -> bool:
        stmt = select(Follow.follower_id).where(
            Follow.follower_id == follower_id,
            Follow.following_id == following_id,
        )
        return self.db.scalar(stmt) is not None

    @store_retry
    def add_follow(self, follower_id: str, following_id: str, conflict_message: str) -> None:
        try:
            self.db.execute(insert(Follow).values(
                follower_id=follower_id,
                following_id=following_id,
                created_at=utc_now()
            ))
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(conflict_message) from e
        except OperationalError:
            self.db.rollback()
            raise
        self.db.execute(
            update(User)
            .where(User.id == follower_id)
            .values(following_count=User.following_count + 1)
        )
        self.db.execute(
            update(User)
            .where(User.id == following_id)
            .values(follower_count=User.follower_count + 1)
        )
        self._commit(conflict_message)

    @store_retry
    def remove_follow(self, follower_id: str, following_id: str) -> bool:
        result = self.db.execute(
            delete(Follow)
            .where(Follow.follower_id == follower_id)
            .where(Follow.following_id == following_id)
        )
        removed = result.rowcount > 0
        if removed:
            self.db.execute(
                update(User)
                .where(User.id == follower_id)
                .values(following_count=User.following_count - 1)
            )
            self.db.execute(
                update(User)
                .where(User.id == following_id)
                .values(follower_count=User.follower_count - 1)
            )
        self._commit()
        return removed

    @store_retry
    def following_of(self, user_id: str) -> list[User]:
        stmt = (
            select(User)
            .join(Follow, Follow.following_id == User.id)
            .where(Follow.follower_id == user_id)
            .order_by(Follow.created_at.desc(), User.id.desc())
        )
        return list(self.db.scalars(stmt))

    @store_retry
    def followers_of(self, user_id: str) -> list[User]:
        stmt = (
            select(User)
            .join(Follow, Follow.follower_id == User.id)
            .where(Follow.following_id == user_id)
            .order_by(Follow.created_at.desc(), User.id.desc())
        )
        return list(self.db.scalars(stmt))

    # -------------------------------------------------------------------------
    # Like edges
    # -------------------------------------------------------------------------

    @store_retry
    def like_exists(self, user_id: str, post_id: str) -> bool:
        stmt = select(Like.user_id).where(Like.user_id == user_id, Like.post_id == post_id)
        return self.db.scalar(stmt) is not None

    @store_retry
    def add_like(self, user_id: str, post_id: str, conflict_message: str) -> None:
        try:
            self.db.execute(
                insert(Like).values(user_id=user_id, post_id=post_id, created_at=utc_now())
            )
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(conflict_message) from e
        except OperationalError:
            self.db.rollback()
            raise
        self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(like_count=Post.like_count + 1)
        )
        self._commit(conflict_message)

    @store_retry
    def remove_like(self, user_id: str, post_id: str) -> bool:
        result = self.db.execute(
            delete(Like)
            .where(Like.user_id == user_id)
            .where(Like.post_id == post_id)
        )
        removed = result.rowcount > 0
        if removed:
            self.db.execute(
                update(Post)
                .where(Post.id == post_id)
                .values(like_count=Post.like_count - 1)
            )
        self._commit()
        return removed

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    @store_retry
    def counts(self) -> dict:
        return {
            "accounts": self.db.scalar(select(func.count()).select_from(User)),
            "posts": self.db.scalar(select(func.count()).select_from(Post)),
            "follows": self.db.scalar(select(func.count()).select_from(Follow)),
            "likes": self.db.scalar(select(func.count()).select_from(Like)),
        }
