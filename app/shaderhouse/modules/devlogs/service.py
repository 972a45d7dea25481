from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.modules.beta.models import BetaTester
from app.shaderhouse.modules.devlogs.models import Devlog, DevlogComment, DevlogLike, DevlogSubscription
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.games.service import unique_slug
from app.shaderhouse.modules.notifications.service import create_notification, notify_many
from app.shaderhouse.modules.payments.models import Purchase
from app.shaderhouse.users import public_user
from app.shaderhouse.utils import clean_str, iso, is_http_url, page_meta, paginate, utcnow

logger = logging.getLogger(__name__)

CATEGORIES = ("UPDATE", "BEHIND_THE_SCENES", "TUTORIAL", "ANNOUNCEMENT", "POSTMORTEM", "OTHER")
EXCERPT_LENGTH = 200


def validate_devlog_payload(
    s: Session, user: User, payload: dict[str, Any], *, partial: bool = False
) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    clean: dict[str, Any] = {}

    if not partial or "title" in payload:
        title = clean_str(payload.get("title"))
        if len(title) < 3:
            errors.append("Title must be at least 3 characters.")
        elif len(title) > 200:
            errors.append("Title must be at most 200 characters.")
        clean["title"] = title
    if not partial or "content" in payload:
        content = clean_str(payload.get("content"))
        if len(content) < 20:
            errors.append("Content must be at least 20 characters.")
        clean["content"] = content
    if "excerpt" in payload:
        clean["excerpt"] = clean_str(payload.get("excerpt"))[:500] or None
    if "cover_url" in payload:
        cover = clean_str(payload.get("cover_url")) or None
        if cover and not is_http_url(cover):
            errors.append("cover_url must be a valid http(s) URL.")
        clean["cover_url"] = cover
    if not partial or "category" in payload:
        category = clean_str(payload.get("category")).upper() or "UPDATE"
        if category not in CATEGORIES:
            errors.append(f"category must be one of {', '.join(CATEGORIES)}.")
        clean["category"] = category
    if "game_id" in payload:
        game_id = payload.get("game_id")
        if game_id in (None, ""):
            clean["game_id"] = None
        else:
            game = s.get(Game, game_id) if isinstance(game_id, int) and not isinstance(game_id, bool) else None
            if game is None or game.developer_id != user.id:
                errors.append("game_id must be one of your games.")
            clean["game_id"] = game.id if game else None
    if "is_published" in payload:
        clean["is_published"] = bool(payload.get("is_published"))
    elif not partial:
        clean["is_published"] = True
    return clean, errors


def _excerpt(content: str) -> str:
    flat = " ".join(content.split())
    return flat if len(flat) <= EXCERPT_LENGTH else flat[: EXCERPT_LENGTH - 3].rstrip() + "..."


def get_devlog(s: Session, slug: str, viewer: User | None) -> Devlog:
    devlog = s.query(Devlog).filter(Devlog.slug == slug).one_or_none()
    if devlog is None:
        raise NotFound("Devlog not found")
    if not devlog.is_published and not (viewer and (viewer.id == devlog.developer_id or viewer.is_admin)):
        raise NotFound("Devlog not found")
    return devlog


def can_manage(devlog: Devlog, user: User) -> bool:
    return devlog.developer_id == user.id or user.is_admin


def notify_new_devlog(s: Session, devlog: Devlog) -> int:
    """Subscribers, buyers of the linked game and its beta testers; each once, never the author."""
    recipients: list[int] = [
        uid
        for (uid,) in s.query(DevlogSubscription.subscriber_id)
        .filter(DevlogSubscription.developer_id == devlog.developer_id, DevlogSubscription.notify_new_post.is_(True))
        .all()
    ]
    if devlog.game_id:
        recipients += [
            uid
            for (uid,) in s.query(Purchase.user_id)
            .filter(Purchase.game_id == devlog.game_id, Purchase.status == "COMPLETED")
            .all()
        ]
        recipients += [uid for (uid,) in s.query(BetaTester.user_id).filter(BetaTester.game_id == devlog.game_id).all()]
    recipients = [uid for uid in recipients if uid != devlog.developer_id]
    author = devlog.developer
    return notify_many(
        s,
        recipients,
        type="NEW_DEVLOG",
        title=f"New devlog from {author.display_name or author.name}",
        message=devlog.title,
        link=f"/devlogs/{devlog.slug}",
        metadata={"devlog_id": devlog.id, "game_id": devlog.game_id},
    )


def create_devlog(s: Session, user: User, data: dict[str, Any]) -> Devlog:
    now = utcnow()
    devlog = Devlog(
        developer_id=user.id,
        game_id=data.get("game_id"),
        title=data["title"],
        slug=unique_slug(s, Devlog, data["title"]),
        content=data["content"],
        excerpt=data.get("excerpt") or _excerpt(data["content"]),
        cover_url=data.get("cover_url"),
        category=data["category"],
        is_published=data["is_published"],
        published_at=now if data["is_published"] else None,
        created_at=now,
        updated_at=now,
    )
    s.add(devlog)
    s.flush()
    if devlog.is_published:
        notify_new_devlog(s, devlog)
    record_event(s, actor=user, action="devlog.create", entity_type="Devlog", entity_id=str(devlog.id))
    return devlog


def update_devlog(s: Session, devlog: Devlog, user: User, data: dict[str, Any]) -> Devlog:
    was_published = devlog.is_published
    for key in ("title", "content", "excerpt", "cover_url", "category", "game_id", "is_published"):
        if key in data:
            setattr(devlog, key, data[key])
    if "content" in data and "excerpt" not in data:
        devlog.excerpt = _excerpt(devlog.content)
    devlog.updated_at = utcnow()
    if devlog.is_published and not was_published:
        devlog.published_at = devlog.published_at or utcnow()
        s.flush()
        notify_new_devlog(s, devlog)
    return devlog


def delete_devlog(s: Session, devlog: Devlog, user: User) -> None:
    record_event(
        s,
        actor=user,
        action="devlog.delete",
        entity_type="Devlog",
        entity_id=str(devlog.id),
        metadata={"title": devlog.title, "developer_id": devlog.developer_id},
    )
    s.delete(devlog)


def _liked_ids(s: Session, user: User | None, devlog_ids: list[int]) -> set[int]:
    if user is None or not devlog_ids:
        return set()
    rows = s.query(DevlogLike.devlog_id).filter(DevlogLike.user_id == user.id, DevlogLike.devlog_id.in_(devlog_ids))
    return {did for (did,) in rows.all()}


def serialize_devlog(d: Devlog, *, liked: bool = False, detail: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": d.id,
        "slug": d.slug,
        "title": d.title,
        "excerpt": d.excerpt,
        "cover_url": d.cover_url,
        "category": d.category,
        "developer": public_user(d.developer),
        "game": {"id": d.game.id, "title": d.game.title, "slug": d.game.slug} if d.game else None,
        "is_published": d.is_published,
        "published_at": iso(d.published_at),
        "like_count": d.like_count,
        "comment_count": d.comment_count,
        "view_count": d.view_count,
        "liked_by_me": liked,
        "created_at": iso(d.created_at),
    }
    if detail:
        out["content"] = d.content
        out["updated_at"] = iso(d.updated_at)
    return out


def list_devlogs(
    s: Session,
    *,
    viewer: User | None,
    feed: str = "all",
    category: str = "",
    game_id: int | None = None,
    developer_id: int | None = None,
    page: int = 1,
    page_size: int = 12,
) -> dict[str, Any]:
    q = s.query(Devlog).filter(Devlog.is_published.is_(True))
    if feed == "followed":
        if viewer is None:
            return {"devlogs": [], **page_meta(0, page, page_size)}
        followed = s.query(DevlogSubscription.developer_id).filter(DevlogSubscription.subscriber_id == viewer.id)
        q = q.filter(Devlog.developer_id.in_(followed))
    elif feed == "beta":
        if viewer is None:
            return {"devlogs": [], **page_meta(0, page, page_size)}
        testing = s.query(BetaTester.game_id).filter(BetaTester.user_id == viewer.id)
        q = q.filter(Devlog.game_id.in_(testing))
    if category:
        q = q.filter(Devlog.category == category)
    if game_id:
        q = q.filter(Devlog.game_id == game_id)
    if developer_id:
        q = q.filter(Devlog.developer_id == developer_id)
    q = q.order_by(Devlog.published_at.desc(), Devlog.id.desc())
    items, total = paginate(q, page, page_size)
    liked = _liked_ids(s, viewer, [d.id for d in items])
    return {"devlogs": [serialize_devlog(d, liked=d.id in liked) for d in items], **page_meta(total, page, page_size)}


def my_devlogs(s: Session, user: User) -> list[dict[str, Any]]:
    items = s.query(Devlog).filter(Devlog.developer_id == user.id).order_by(Devlog.updated_at.desc()).all()
    return [serialize_devlog(d) for d in items]


def view_devlog(s: Session, devlog: Devlog, viewer: User | None) -> dict[str, Any]:
    if devlog.is_published and (viewer is None or viewer.id != devlog.developer_id):
        devlog.view_count += 1
    liked = bool(_liked_ids(s, viewer, [devlog.id]))
    return serialize_devlog(devlog, liked=liked, detail=True)


# ---------- Likes ----------
def toggle_like(s: Session, devlog: Devlog, user: User) -> bool:
    like = s.query(DevlogLike).filter(DevlogLike.devlog_id == devlog.id, DevlogLike.user_id == user.id).one_or_none()
    if like is not None:
        s.delete(like)
        devlog.like_count = max(0, devlog.like_count - 1)
        return False
    s.add(DevlogLike(devlog_id=devlog.id, user_id=user.id))
    devlog.like_count += 1
    if devlog.developer_id != user.id:
        create_notification(
            s,
            user=devlog.developer_id,
            type="DEVLOG_LIKE",
            title="Someone liked your devlog",
            message=f"{user.display_name or user.name} liked \"{devlog.title}\".",
            link=f"/devlogs/{devlog.slug}",
            metadata={"devlog_id": devlog.id},
        )
    return True


# ---------- Comments ----------
def serialize_comment(c: DevlogComment) -> dict[str, Any]:
    return {
        "id": c.id,
        "devlog_id": c.devlog_id,
        "parent_id": c.parent_id,
        "user": public_user(c.user),
        "content": c.content,
        "created_at": iso(c.created_at),
    }


def list_comments(s: Session, devlog: Devlog) -> list[dict[str, Any]]:
    comments = (
        s.query(DevlogComment)
        .filter(DevlogComment.devlog_id == devlog.id)
        .order_by(DevlogComment.created_at.asc(), DevlogComment.id.asc())
        .all()
    )
    return [serialize_comment(c) for c in comments]


def add_comment(s: Session, devlog: Devlog, user: User, content: str, parent_id: Any = None) -> DevlogComment:
    if not 1 <= len(content) <= 2000:
        raise ValidationFailed("Comment must be between 1 and 2000 characters")
    parent = None
    if parent_id not in (None, ""):
        parent = s.get(DevlogComment, parent_id) if isinstance(parent_id, int) else None
        if parent is None or parent.devlog_id != devlog.id:
            raise ValidationFailed("Parent comment not found on this devlog")

    comment = DevlogComment(devlog_id=devlog.id, user_id=user.id, parent_id=parent.id if parent else None, content=content)
    s.add(comment)
    devlog.comment_count += 1
    s.flush()

    name = user.display_name or user.name
    if devlog.developer_id != user.id:
        create_notification(
            s,
            user=devlog.developer_id,
            type="DEVLOG_COMMENT",
            title="New comment on your devlog",
            message=f"{name} commented on \"{devlog.title}\".",
            link=f"/devlogs/{devlog.slug}#comment-{comment.id}",
            metadata={"devlog_id": devlog.id, "comment_id": comment.id},
        )
    if parent is not None and parent.user_id not in (user.id, devlog.developer_id):
        create_notification(
            s,
            user=parent.user_id,
            type="DEVLOG_COMMENT_REPLY",
            title="New reply to your comment",
            message=f"{name} replied to your comment on \"{devlog.title}\".",
            link=f"/devlogs/{devlog.slug}#comment-{comment.id}",
            metadata={"devlog_id": devlog.id, "comment_id": comment.id},
        )
    return comment


def _count_with_replies(s: Session, comment_id: int) -> int:
    total = 0
    frontier = [comment_id]
    while frontier:
        total += len(frontier)
        frontier = [cid for (cid,) in s.query(DevlogComment.id).filter(DevlogComment.parent_id.in_(frontier)).all()]
    return total


def delete_comment(s: Session, devlog: Devlog, comment: DevlogComment, user: User) -> None:
    if comment.devlog_id != devlog.id:
        raise NotFound("Comment not found")
    if comment.user_id != user.id and not can_manage(devlog, user):
        raise Forbidden("You cannot delete this comment")
    removed = _count_with_replies(s, comment.id)
    s.delete(comment)
    devlog.comment_count = max(0, devlog.comment_count - removed)


# ---------- Subscriptions ----------
def subscribe(s: Session, user: User, developer_id: int, *, notify_new_post: bool = True) -> DevlogSubscription:
    if developer_id == user.id:
        raise ValidationFailed("You cannot follow yourself")
    developer = s.get(User, developer_id)
    if developer is None or developer.role not in ("DEVELOPER", "ADMIN"):
        raise NotFound("Developer not found")
    sub = (
        s.query(DevlogSubscription)
        .filter(DevlogSubscription.subscriber_id == user.id, DevlogSubscription.developer_id == developer_id)
        .one_or_none()
    )
    if sub is None:
        sub = DevlogSubscription(subscriber_id=user.id, developer_id=developer_id, notify_new_post=notify_new_post)
        s.add(sub)
    else:
        sub.notify_new_post = notify_new_post
    s.flush()
    return sub


def unsubscribe(s: Session, user: User, developer_id: int) -> None:
    sub = (
        s.query(DevlogSubscription)
        .filter(DevlogSubscription.subscriber_id == user.id, DevlogSubscription.developer_id == developer_id)
        .one_or_none()
    )
    if sub is None:
        raise NotFound("You are not following this developer")
    s.delete(sub)


def serialize_subscription(sub: DevlogSubscription) -> dict[str, Any]:
    return {
        "developer": public_user(sub.developer),
        "notify_new_post": sub.notify_new_post,
        "created_at": iso(sub.created_at),
    }
