from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.modules.discussions.models import DiscussionPost, DiscussionThread, DiscussionVote
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.notifications.service import create_notification
from app.shaderhouse.modules.rewards.service import award, can_perform_action
from app.shaderhouse.modules.settings.service import get_setting
from app.shaderhouse.users import public_user
from app.shaderhouse.utils import clean_str, iso, is_http_url, page_meta, paginate, utcnow

logger = logging.getLogger(__name__)

CATEGORIES = ("GENERAL", "BUG_REPORT", "SUGGESTION", "SHOWCASE", "ANNOUNCEMENT")
DEVELOPER_CATEGORIES = ("GENERAL", "ANNOUNCEMENT")
NOTIFY_DEVELOPER_CATEGORIES = ("BUG_REPORT", "SUGGESTION")
MAX_MEDIA = 5


def _require_verified_email(s: Session, user: User) -> None:
    if get_setting(s, "require_email_verification") and not user.is_email_verified:
        raise Forbidden("Verify your email address before posting")


def can_moderate(thread: DiscussionThread, user: User) -> bool:
    return user.is_admin or (thread.game is not None and thread.game.developer_id == user.id)


def get_thread(s: Session, thread_id: int) -> DiscussionThread:
    thread = s.get(DiscussionThread, thread_id)
    if thread is None:
        raise NotFound("Thread not found")
    return thread


def get_post(s: Session, post_id: int) -> DiscussionPost:
    post = s.get(DiscussionPost, post_id)
    if post is None:
        raise NotFound("Post not found")
    return post


# ---------- Threads ----------
def validate_thread_payload(payload: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    title = clean_str(payload.get("title"))
    if not 3 <= len(title) <= 200:
        errors.append("Title must be between 3 and 200 characters.")
    content = clean_str(payload.get("content"))
    if not 10 <= len(content) <= 10000:
        errors.append("Content must be between 10 and 10000 characters.")
    category = clean_str(payload.get("category")).upper() or "GENERAL"
    if category not in CATEGORIES:
        errors.append(f"category must be one of {', '.join(CATEGORIES)}.")
    media = payload.get("media_urls") or []
    if not isinstance(media, list):
        errors.append("media_urls must be a list.")
        media = []
    elif len(media) > MAX_MEDIA:
        errors.append(f"Maximum {MAX_MEDIA} media URLs allowed.")
    elif not all(is_http_url(u) for u in media):
        errors.append("media_urls must be valid http(s) URLs.")
    if media and category != "SHOWCASE":
        errors.append("Media can only be attached to SHOWCASE threads.")
    return {"title": title, "content": content, "category": category, "media_urls": media}, errors


def create_thread(s: Session, user: User, game: Game, data: dict[str, Any]) -> DiscussionThread:
    _require_verified_email(s, user)
    category = data["category"]
    if user.role == "DEVELOPER" and category not in DEVELOPER_CATEGORIES:
        raise Forbidden("Developers can only post GENERAL or ANNOUNCEMENT threads")
    if category == "ANNOUNCEMENT" and game.developer_id != user.id:
        raise Forbidden("Only the game's developer can post announcements")

    now = utcnow()
    thread = DiscussionThread(
        game_id=game.id,
        game_name=game.title,
        author_id=user.id,
        title=data["title"],
        content=data["content"],
        category=category,
        media_urls_json=json.dumps(data["media_urls"]),
        last_activity_at=now,
        created_at=now,
        updated_at=now,
    )
    s.add(thread)
    s.flush()
    award(s, user, "THREAD_CREATED", description=f"Started a thread: {thread.title}", metadata={"thread_id": thread.id})

    if category in NOTIFY_DEVELOPER_CATEGORIES and game.developer_id != user.id:
        label = "bug report" if category == "BUG_REPORT" else "suggestion"
        create_notification(
            s,
            user=game.developer_id,
            type="BETA_FEEDBACK_RECEIVED",
            title=f"New {label} for {game.title}",
            message=thread.title,
            link=f"/discussions/{thread.id}",
            metadata={"thread_id": thread.id, "game_id": game.id},
        )
    return thread


def update_thread(s: Session, thread: DiscussionThread, user: User, payload: dict[str, Any]) -> DiscussionThread:
    is_author = thread.author_id == user.id
    moderator = can_moderate(thread, user)
    touched = False
    if "title" in payload or "content" in payload:
        if not is_author:
            raise Forbidden("Only the author can edit this thread")
        if "title" in payload:
            title = clean_str(payload.get("title"))
            if not 3 <= len(title) <= 200:
                raise ValidationFailed("Title must be between 3 and 200 characters")
            thread.title = title
        if "content" in payload:
            content = clean_str(payload.get("content"))
            if not 10 <= len(content) <= 10000:
                raise ValidationFailed("Content must be between 10 and 10000 characters")
            thread.content = content
        touched = True
    for flag in ("is_pinned", "is_locked"):
        if flag in payload:
            if not moderator:
                raise Forbidden("Only the game's developer or an admin can pin or lock threads")
            setattr(thread, flag, bool(payload[flag]))
            record_event(
                s,
                actor=user,
                action=f"discussion.{flag[3:]}",
                entity_type="DiscussionThread",
                entity_id=str(thread.id),
                metadata={flag: bool(payload[flag])},
            )
            touched = True
    if not touched:
        raise ValidationFailed("Nothing to update")
    thread.updated_at = utcnow()
    return thread


def delete_thread(s: Session, thread: DiscussionThread, user: User) -> None:
    if thread.author_id != user.id and not can_moderate(thread, user):
        raise Forbidden("You cannot delete this thread")
    if thread.author_id != user.id:
        record_event(
            s,
            actor=user,
            action="discussion.thread_delete",
            entity_type="DiscussionThread",
            entity_id=str(thread.id),
            metadata={"title": thread.title, "author_id": thread.author_id},
        )
    s.delete(thread)


def serialize_thread(t: DiscussionThread, *, my_vote: int = 0) -> dict[str, Any]:
    return {
        "id": t.id,
        "game_id": t.game_id,
        "game_name": t.game_name,
        "author": public_user(t.author),
        "title": t.title,
        "content": t.content,
        "category": t.category,
        "media_urls": json.loads(t.media_urls_json or "[]"),
        "is_pinned": t.is_pinned,
        "is_locked": t.is_locked,
        "post_count": t.post_count,
        "upvotes": t.upvotes,
        "downvotes": t.downvotes,
        "score": t.upvotes - t.downvotes,
        "my_vote": my_vote,
        "last_activity_at": iso(t.last_activity_at),
        "created_at": iso(t.created_at),
    }


def list_threads(
    s: Session,
    *,
    game_id: int | None = None,
    category: str = "",
    page: int = 1,
    page_size: int = 20,
) -> dict[str, Any]:
    q = s.query(DiscussionThread)
    if game_id:
        q = q.filter(DiscussionThread.game_id == game_id)
    if category:
        q = q.filter(DiscussionThread.category == category)
    q = q.order_by(DiscussionThread.is_pinned.desc(), DiscussionThread.last_activity_at.desc(), DiscussionThread.id.desc())
    items, total = paginate(q, page, page_size)
    return {"threads": [serialize_thread(t) for t in items], **page_meta(total, page, page_size)}


# ---------- Posts ----------
def create_post(s: Session, user: User, thread: DiscussionThread, content: str, parent_id: Any = None) -> DiscussionPost:
    if thread.is_locked:
        raise Forbidden("This thread is locked")
    _require_verified_email(s, user)
    if not 1 <= len(content) <= 5000:
        raise ValidationFailed("Content must be between 1 and 5000 characters")
    parent = None
    if parent_id not in (None, ""):
        parent = s.get(DiscussionPost, parent_id) if isinstance(parent_id, int) else None
        if parent is None or parent.thread_id != thread.id:
            raise ValidationFailed("Parent post not found in this thread")

    now = utcnow()
    post = DiscussionPost(
        thread_id=thread.id,
        author_id=user.id,
        parent_id=parent.id if parent else None,
        content=content,
        created_at=now,
        updated_at=now,
    )
    s.add(post)
    thread.post_count += 1
    thread.last_activity_at = now
    s.flush()
    award(s, user, "POST_CREATED", description=f"Replied in: {thread.title}", metadata={"post_id": post.id})

    name = user.display_name or user.name
    if thread.author_id != user.id:
        create_notification(
            s,
            user=thread.author_id,
            type="DISCUSSION_REPLY",
            title="New reply to your thread",
            message=f"{name} replied to \"{thread.title}\".",
            link=f"/discussions/{thread.id}#post-{post.id}",
            metadata={"thread_id": thread.id, "post_id": post.id},
        )
    if parent is not None and parent.author_id not in (user.id, thread.author_id):
        create_notification(
            s,
            user=parent.author_id,
            type="DISCUSSION_REPLY",
            title="New reply to your post",
            message=f"{name} replied to you in \"{thread.title}\".",
            link=f"/discussions/{thread.id}#post-{post.id}",
            metadata={"thread_id": thread.id, "post_id": post.id},
        )
    return post


def update_post(post: DiscussionPost, user: User, content: str) -> DiscussionPost:
    if post.author_id != user.id and not user.is_admin:
        raise Forbidden("You cannot edit this post")
    if not 1 <= len(content) <= 5000:
        raise ValidationFailed("Content must be between 1 and 5000 characters")
    post.content = content
    post.updated_at = utcnow()
    return post


def delete_post(s: Session, post: DiscussionPost, user: User) -> None:
    if post.author_id != user.id and not user.is_admin:
        raise Forbidden("You cannot delete this post")
    thread = post.thread
    removed = 1 + s.query(DiscussionPost).filter(DiscussionPost.parent_id == post.id).count()
    if user.is_admin and post.author_id != user.id:
        record_event(s, actor=user, action="discussion.post_delete", entity_type="DiscussionPost", entity_id=str(post.id))
    s.delete(post)
    if thread is not None:
        thread.post_count = max(0, thread.post_count - removed)


def mark_helpful(s: Session, post: DiscussionPost, user: User) -> dict[str, Any]:
    thread = post.thread
    is_game_dev = thread.game is not None and thread.game.developer_id == user.id
    if thread.author_id != user.id and not is_game_dev:
        raise Forbidden("Only the thread author or the game's developer can mark posts helpful")
    if post.author_id == user.id:
        raise ValidationFailed("You cannot mark your own post as helpful")
    if post.is_helpful:
        raise ValidationFailed("This post is already marked helpful")

    post.is_helpful = True
    post.helpful_marked_by_id = user.id
    author = post.author
    rewards = [award(s, author, "HELPFUL_MARKED", description=f"Helpful answer in: {thread.title}", metadata={"post_id": post.id})]
    if is_game_dev:
        rewards.append(award(s, author, "DEV_LIKED", description=f"Developer liked your post in: {thread.title}", metadata={"post_id": post.id}))
    return {"xp": sum(r.xp for r in rewards), "points": sum(r.points for r in rewards), "dev_liked": is_game_dev}


def serialize_post(p: DiscussionPost, *, my_vote: int = 0) -> dict[str, Any]:
    return {
        "id": p.id,
        "thread_id": p.thread_id,
        "parent_id": p.parent_id,
        "author": public_user(p.author),
        "content": p.content,
        "upvotes": p.upvotes,
        "downvotes": p.downvotes,
        "score": p.upvotes - p.downvotes,
        "is_helpful": p.is_helpful,
        "my_vote": my_vote,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def thread_detail(s: Session, thread: DiscussionThread, viewer: User | None) -> dict[str, Any]:
    posts = (
        s.query(DiscussionPost)
        .filter(DiscussionPost.thread_id == thread.id)
        .order_by(DiscussionPost.created_at.asc(), DiscussionPost.id.asc())
        .all()
    )
    thread_vote = 0
    post_votes: dict[int, int] = {}
    if viewer is not None:
        for v in s.query(DiscussionVote).filter(DiscussionVote.user_id == viewer.id).filter(
            (DiscussionVote.thread_id == thread.id) | (DiscussionVote.post_id.in_([p.id for p in posts] or [0]))
        ):
            if v.thread_id == thread.id:
                thread_vote = v.value
            elif v.post_id is not None:
                post_votes[v.post_id] = v.value
    data = serialize_thread(thread, my_vote=thread_vote)
    data["posts"] = [serialize_post(p, my_vote=post_votes.get(p.id, 0)) for p in posts]
    return data


# ---------- Votes ----------
def _apply(target: Any, value: int, delta: int) -> None:
    if value == 1:
        target.upvotes = max(0, target.upvotes + delta)
    elif value == -1:
        target.downvotes = max(0, target.downvotes + delta)


def vote(s: Session, user: User, *, thread_id: Any = None, post_id: Any = None, value: Any = None) -> dict[str, Any]:
    if (thread_id is None) == (post_id is None):
        raise ValidationFailed("Provide exactly one of thread_id or post_id")
    if isinstance(value, bool) or value not in (-1, 0, 1):
        raise ValidationFailed("value must be -1, 0 or 1")
    if not can_perform_action(user.level, "vote"):
        raise Forbidden("You need to reach level 3 to vote")

    if thread_id is not None:
        target: Any = get_thread(s, thread_id) if isinstance(thread_id, int) else None
        if target is None:
            raise NotFound("Thread not found")
        existing = (
            s.query(DiscussionVote).filter(DiscussionVote.user_id == user.id, DiscussionVote.thread_id == target.id).one_or_none()
        )
    else:
        target = get_post(s, post_id) if isinstance(post_id, int) else None
        if target is None:
            raise NotFound("Post not found")
        existing = (
            s.query(DiscussionVote).filter(DiscussionVote.user_id == user.id, DiscussionVote.post_id == target.id).one_or_none()
        )
    if target.author_id == user.id:
        raise ValidationFailed("You cannot vote on your own content")

    previous = existing.value if existing is not None else 0
    if previous == value:
        return {"value": value, "upvotes": target.upvotes, "downvotes": target.downvotes}

    _apply(target, previous, -1)
    _apply(target, value, 1)
    if value == 0:
        s.delete(existing)
    elif existing is not None:
        existing.value = value
    else:
        s.add(
            DiscussionVote(
                user_id=user.id,
                thread_id=target.id if thread_id is not None else None,
                post_id=target.id if post_id is not None else None,
                value=value,
            )
        )
    if value == 1:
        award(s, target.author, "UPVOTE_RECEIVED", description="Your content received an upvote")
    return {"value": value, "upvotes": target.upvotes, "downvotes": target.downvotes}


def global_threads(s: Session, *, limit: int = 20) -> list[dict[str, Any]]:
    threads = (
        s.query(DiscussionThread)
        .order_by(DiscussionThread.last_activity_at.desc(), DiscussionThread.id.desc())
        .limit(limit)
        .all()
    )
    return [serialize_thread(t) for t in threads]
