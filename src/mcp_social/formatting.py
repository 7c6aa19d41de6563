"""Human-readable text for tool results."""
from datetime import datetime, timezone
from typing import Optional

from .models import utc_now


FEED_SEPARATOR = "\n\n" + "─" * 50 + "\n\n"
SHORT_ID_LENGTH = 8


def _aware(dt: datetime) -> datetime:
    # SQLite hands datetimes back naive; everything is stored in UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def time_ago(created_at: datetime, now: Optional[datetime] = None) -> str:
    """'3d ago', '5h ago', '12m ago' (never less than 1m)."""
    now = _aware(now or utc_now())
    diff_seconds = (now - _aware(created_at)).total_seconds()
    days = int(diff_seconds // 86400)
    hours = int(diff_seconds // 3600)
    if days > 0:
        return f"{days}d ago"
    if hours > 0:
        return f"{hours}h ago"
    return f"{max(1, int(diff_seconds // 60))}m ago"


def format_date(dt: datetime) -> str:
    return _aware(dt).strftime("%Y-%m-%d")


def format_post(post: dict, now: Optional[datetime] = None) -> str:
    text = (
        f"@{post['username']} ({time_ago(post['created_at'], now)}) "
        f"[ID: {post['id'][:SHORT_ID_LENGTH]}]\n\"{post['content']}\""
    )
    if post.get("code"):
        text += f"\n```{post.get('language') or ''}\n{post['code']}\n```"
    if post.get("tags"):
        text += "\nTags: " + " ".join(f"#{tag}" for tag in post["tags"])
    text += f"\n❤️ {post['like_count']} likes | 💬 {post['reply_count']} replies"
    return text


def format_posts(posts: list[dict]) -> str:
    now = utc_now()
    return FEED_SEPARATOR.join(format_post(p, now) for p in posts)


def format_profile(user: dict) -> str:
    return (
        f"👤 Profile: @{user['username']}\n\n"
        f"Bio: {user['bio'] or 'No bio'}\n"
        f"Posts: {user['post_count']}\n"
        f"Followers: {user['follower_count']}\n"
        f"Following: {user['following_count']}\n"
        f"Joined: {format_date(user['created_at'])}"
    )


def format_user_line(user: dict, stat: str = "followers") -> str:
    count = user["post_count"] if stat == "posts" else user["follower_count"]
    return f"@{user['username']} - {user['bio'] or 'No bio'} ({count} {stat})"
