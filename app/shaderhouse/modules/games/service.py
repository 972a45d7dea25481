from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.cache import (
    FEATURED_GAMES_TTL,
    TRENDING_GAMES_TTL,
    featured_games_key,
    get_cache,
    invalidate_game_caches,
    trending_games_key,
)
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.modules.beta.models import BetaTester
from app.shaderhouse.modules.games.models import Favorite, Game, GameTag, Rating, Tag
from app.shaderhouse.modules.payments.models import Purchase
from app.shaderhouse.modules.payments.service import owns_game
from app.shaderhouse.modules.subscriptions.tiers import has_active_feature
from app.shaderhouse.ratelimit import enforce_content_limit, record_content
from app.shaderhouse.users import public_user
from app.shaderhouse.utils import clean_str, is_http_url, iso, page_meta, paginate, slugify, utcnow

PLATFORMS = ("WINDOWS", "MAC", "LINUX", "WEB", "ANDROID", "IOS")
RELEASE_STATUSES = ("BETA", "RELEASED")
SORTS = ("new", "popular", "rating", "price-low", "price-high")
PRICE_FILTERS = ("all", "free", "paid")
MAX_SCREENSHOTS = 8
MAX_TAGS = 8


def validate_game_payload(payload: dict[str, Any], *, partial: bool = False) -> tuple[dict[str, Any], list[str]]:
    """
    Returns (clean, errors). With partial=True only the keys present are validated,
    for PATCH.
    """
    errors: list[str] = []
    clean: dict[str, Any] = {}
    if not isinstance(payload, dict):
        return clean, ["Request body must be a JSON object."]

    def present(key: str) -> bool:
        return not partial or key in payload

    if present("title"):
        title = clean_str(payload.get("title"))
        if len(title) < 2:
            errors.append("Title must be at least 2 characters.")
        elif len(title) > 200:
            errors.append("Title must be at most 200 characters.")
        clean["title"] = title

    if present("tagline"):
        tagline = clean_str(payload.get("tagline"))
        if not 4 <= len(tagline) <= 120:
            errors.append("Tagline must be between 4 and 120 characters.")
        clean["tagline"] = tagline

    if present("description"):
        description = clean_str(payload.get("description"))
        if len(description) < 20:
            errors.append("Description must be at least 20 characters.")
        clean["description"] = description

    if present("cover_url"):
        cover_url = clean_str(payload.get("cover_url"))
        if not is_http_url(cover_url):
            errors.append("cover_url must be a valid http(s) URL.")
        clean["cover_url"] = cover_url

    if present("external_url"):
        external_url = clean_str(payload.get("external_url"))
        if external_url and not is_http_url(external_url):
            errors.append("external_url must be a valid http(s) URL.")
        clean["external_url"] = external_url

    if present("screenshots"):
        shots = payload.get("screenshots") or []
        if not isinstance(shots, list):
            errors.append("screenshots must be a list of URLs.")
            shots = []
        elif len(shots) > MAX_SCREENSHOTS:
            errors.append(f"Maximum {MAX_SCREENSHOTS} screenshots allowed.")
        elif not all(is_http_url(u) for u in shots):
            errors.append("Screenshots must be valid http(s) URLs.")
        clean["screenshots"] = [u.strip() for u in shots if isinstance(u, str)]

    if present("price_cents"):
        price = payload.get("price_cents", 0)
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            errors.append("price_cents must be an integer of 0 or greater.")
            price = 0
        clean["price_cents"] = price

    if present("platforms"):
        platforms = payload.get("platforms")
        if not isinstance(platforms, list) or not platforms:
            errors.append("At least one platform is required.")
            platforms = []
        else:
            platforms = [str(p).upper() for p in platforms]
            bad = [p for p in platforms if p not in PLATFORMS]
            if bad:
                errors.append(f"Unknown platform: {', '.join(bad)}")
        clean["platforms"] = list(dict.fromkeys(platforms))

    if present("tags"):
        tags = payload.get("tags") or []
        if not isinstance(tags, list):
            errors.append("tags must be a list.")
            tags = []
        elif len(tags) > MAX_TAGS:
            errors.append(f"Maximum {MAX_TAGS} tags allowed.")
        clean["tags"] = [t.strip()[:30] for t in tags if isinstance(t, str) and t.strip()]

    if "release_status" in payload or not partial:
        status = clean_str(payload.get("release_status")).upper() or "RELEASED"
        if status not in RELEASE_STATUSES:
            errors.append("release_status must be BETA or RELEASED.")
        clean["release_status"] = status

    return clean, errors


def unique_slug(s: Session, model: Any, text: str, *, exclude_id: int | None = None) -> str:
    base = slugify(text, max_length=100)
    slug = base
    n = 1
    while True:
        q = s.query(model.id).filter(model.slug == slug)
        if exclude_id is not None:
            q = q.filter(model.id != exclude_id)
        if q.first() is None:
            return slug
        n += 1
        slug = f"{base}-{n}"


def _resolve_tags(s: Session, names: list[str]) -> list[Tag]:
    tags: list[Tag] = []
    seen: set[str] = set()
    for name in names:
        tag_slug = slugify(name, max_length=40)
        if tag_slug in seen:
            continue
        seen.add(tag_slug)
        tag = s.query(Tag).filter(Tag.slug == tag_slug).one_or_none()
        if tag is None:
            tag = Tag(name=name, slug=tag_slug)
            s.add(tag)
            s.flush()
        tags.append(tag)
    return tags


def get_game_by_ref(s: Session, ref: str | int) -> Game | None:
    ref_str = str(ref)
    if ref_str.isdigit():
        game = s.get(Game, int(ref_str))
        if game is not None:
            return game
    return s.query(Game).filter(Game.slug == ref_str).one_or_none()


def get_visible_game(s: Session, ref: str | int, user: User | None) -> Game:
    game = get_game_by_ref(s, ref)
    if game is None:
        raise NotFound("Game not found")
    if not game.is_published and not (user and (user.id == game.developer_id or user.is_admin)):
        raise NotFound("Game not found")
    return game


def create_game(s: Session, user: User, data: dict[str, Any]) -> Game:
    now = utcnow()
    game = Game(
        developer_id=user.id,
        title=data["title"],
        slug=unique_slug(s, Game, data["title"]),
        tagline=data["tagline"],
        description=data["description"],
        cover_url=data["cover_url"],
        screenshots_json=json.dumps(data.get("screenshots") or []),
        price_cents=data.get("price_cents", 0),
        platforms_json=json.dumps(data["platforms"]),
        external_url=data.get("external_url") or "",
        release_status=data.get("release_status") or "RELEASED",
        is_published=False,
        created_at=now,
        updated_at=now,
    )
    game.tags = _resolve_tags(s, data.get("tags") or [])
    s.add(game)
    s.flush()
    record_event(s, actor=user, action="game.create", entity_type="Game", entity_id=str(game.id), metadata={"title": game.title})
    return game


def update_game(s: Session, game: Game, user: User, data: dict[str, Any]) -> Game:
    simple = ("title", "tagline", "description", "cover_url", "external_url", "price_cents", "release_status")
    changed: dict[str, Any] = {}
    for key in simple:
        if key in data and getattr(game, key) != data[key]:
            changed[key] = data[key]
            setattr(game, key, data[key])
    if "screenshots" in data:
        game.screenshots_json = json.dumps(data["screenshots"])
        changed["screenshots"] = len(data["screenshots"])
    if "platforms" in data:
        game.platforms_json = json.dumps(data["platforms"])
        changed["platforms"] = data["platforms"]
    if "tags" in data:
        game.tags = _resolve_tags(s, data["tags"])
        changed["tags"] = data["tags"]
    game.updated_at = utcnow()
    record_event(s, actor=user, action="game.update", entity_type="Game", entity_id=str(game.id), metadata=changed)
    invalidate_game_caches()
    return game


def delete_game(s: Session, game: Game, user: User, *, reason: str | None = None) -> None:
    record_event(
        s,
        actor=user,
        action="game.delete",
        entity_type="Game",
        entity_id=str(game.id),
        reason=reason,
        metadata={"title": game.title, "developer_id": game.developer_id},
    )
    s.delete(game)
    invalidate_game_caches()


# ---------- Listing ----------
def _rating_subquery(s: Session):
    return (
        s.query(
            Rating.game_id.label("game_id"),
            func.avg(Rating.stars).label("avg_stars"),
            func.count(Rating.id).label("rating_count"),
        )
        .group_by(Rating.game_id)
        .subquery()
    )


def _purchase_subquery(s: Session, since=None):
    q = s.query(Purchase.game_id.label("game_id"), func.count(Purchase.id).label("purchase_count")).filter(
        Purchase.status == "COMPLETED"
    )
    if since is not None:
        q = q.filter(Purchase.created_at >= since)
    return q.group_by(Purchase.game_id).subquery()


def rating_stats(s: Session, game_ids: list[int]) -> dict[int, tuple[float, int]]:
    if not game_ids:
        return {}
    rows = (
        s.query(Rating.game_id, func.avg(Rating.stars), func.count(Rating.id))
        .filter(Rating.game_id.in_(game_ids))
        .group_by(Rating.game_id)
        .all()
    )
    return {gid: (round(float(avg), 2), int(cnt)) for gid, avg, cnt in rows}


def serialize_game(game: Game, stats: tuple[float, int] | None = None, *, detail: bool = False) -> dict[str, Any]:
    avg, count = stats or (0.0, 0)
    out: dict[str, Any] = {
        "id": game.id,
        "slug": game.slug,
        "title": game.title,
        "tagline": game.tagline,
        "cover_url": game.cover_url,
        "price_cents": game.price_cents,
        "is_free": game.is_free,
        "platforms": json.loads(game.platforms_json or "[]"),
        "tags": [t.name for t in game.tags],
        "release_status": game.release_status,
        "is_published": game.is_published,
        "is_featured": game.is_featured,
        "developer": public_user(game.developer),
        "rating": {"average": avg, "count": count},
        "published_at": iso(game.published_at),
        "created_at": iso(game.created_at),
    }
    if detail:
        out.update(
            {
                "description": game.description,
                "screenshots": json.loads(game.screenshots_json or "[]"),
                "external_url": game.external_url or None,
                "updated_at": iso(game.updated_at),
            }
        )
    return out


def serialize_games(s: Session, games: list[Game]) -> list[dict[str, Any]]:
    stats = rating_stats(s, [g.id for g in games])
    return [serialize_game(g, stats.get(g.id)) for g in games]


def _apply_filters(s: Session, q: Query, *, search: str, tags: list[str], platform: str, price_filter: str) -> Query:
    if search:
        like = f"%{search}%"
        q = q.filter(Game.title.ilike(like) | Game.tagline.ilike(like))
    if tags:
        tag_slugs = [slugify(t, max_length=40) for t in tags]
        tagged = s.query(GameTag.game_id).join(Tag, Tag.id == GameTag.tag_id).filter(Tag.slug.in_(tag_slugs))
        q = q.filter(Game.id.in_(tagged))
    if platform:
        q = q.filter(Game.platforms_json.like(f'%"{platform}"%'))
    if price_filter == "free":
        q = q.filter(Game.price_cents == 0)
    elif price_filter == "paid":
        q = q.filter(Game.price_cents > 0)
    return q


def list_games(
    s: Session,
    *,
    user: User | None,
    search: str = "",
    tags: list[str] | None = None,
    platform: str = "",
    price_filter: str = "all",
    sort: str = "new",
    page: int = 1,
    page_size: int = 12,
    developer: str = "",
) -> dict[str, Any]:
    q = s.query(Game)
    if developer == "me":
        if user is None:
            raise Forbidden("Log in to see your own games")
        q = q.filter(Game.developer_id == user.id)
    else:
        q = q.filter(Game.is_published.is_(True))
        if developer.isdigit():
            q = q.filter(Game.developer_id == int(developer))

    q = _apply_filters(s, q, search=search, tags=tags or [], platform=platform, price_filter=price_filter)

    if sort == "popular":
        pc = _purchase_subquery(s)
        q = q.outerjoin(pc, pc.c.game_id == Game.id).order_by(
            func.coalesce(pc.c.purchase_count, 0).desc(), Game.created_at.desc()
        )
    elif sort == "rating":
        rs = _rating_subquery(s)
        q = q.outerjoin(rs, rs.c.game_id == Game.id).order_by(
            func.coalesce(rs.c.avg_stars, 0).desc(), func.coalesce(rs.c.rating_count, 0).desc(), Game.created_at.desc()
        )
    elif sort == "price-low":
        q = q.order_by(Game.price_cents.asc(), Game.created_at.desc())
    elif sort == "price-high":
        q = q.order_by(Game.price_cents.desc(), Game.created_at.desc())
    else:
        q = q.order_by(Game.created_at.desc(), Game.id.desc())

    games, total = paginate(q, page, page_size)
    return {"games": serialize_games(s, games), **page_meta(total, page, page_size)}


def featured_games(s: Session, limit: int = 6) -> list[dict[str, Any]]:
    cache = get_cache()
    key = featured_games_key(limit)
    cached = cache.get(key)
    if cached is not None:
        return cached
    games = (
        s.query(Game)
        .filter(Game.is_published.is_(True), Game.is_featured.is_(True))
        .order_by(Game.published_at.desc(), Game.id.desc())
        .limit(limit)
        .all()
    )
    data = serialize_games(s, games)
    cache.set(key, data, FEATURED_GAMES_TTL)
    return data


def trending_games(s: Session, limit: int = 10, days: int = 7) -> list[dict[str, Any]]:
    cache = get_cache()
    key = trending_games_key(limit, days)
    cached = cache.get(key)
    if cached is not None:
        return cached
    pc = _purchase_subquery(s, since=utcnow() - timedelta(days=days))
    rows = (
        s.query(Game, pc.c.purchase_count)
        .join(pc, pc.c.game_id == Game.id)
        .filter(Game.is_published.is_(True))
        .order_by(pc.c.purchase_count.desc(), Game.id.desc())
        .limit(limit)
        .all()
    )
    games = [g for g, _ in rows]
    data = serialize_games(s, games)
    for item, (_, count) in zip(data, rows):
        item["recent_purchases"] = int(count)
    cache.set(key, data, TRENDING_GAMES_TTL)
    return data


def similar_games(s: Session, game: Game, limit: int = 6) -> list[dict[str, Any]]:
    tag_ids = [t.id for t in game.tags]
    if not tag_ids:
        return []
    shared = func.count(GameTag.tag_id)
    rows = (
        s.query(Game, shared)
        .join(GameTag, GameTag.game_id == Game.id)
        .filter(GameTag.tag_id.in_(tag_ids), Game.id != game.id, Game.is_published.is_(True))
        .group_by(Game.id)
        .order_by(shared.desc(), Game.created_at.desc())
        .limit(limit)
        .all()
    )
    return serialize_games(s, [g for g, _ in rows])


def beta_games(s: Session, page: int = 1, page_size: int = 12) -> dict[str, Any]:
    q = (
        s.query(Game)
        .filter(Game.is_published.is_(True), Game.release_status == "BETA")
        .order_by(Game.published_at.desc(), Game.id.desc())
    )
    games, total = paginate(q, page, page_size)
    return {"games": serialize_games(s, games), **page_meta(total, page, page_size)}


# ---------- Per-user ----------
def rate_game(s: Session, user: User, game: Game, payload: dict[str, Any]) -> Rating:
    stars = payload.get("stars")
    if isinstance(stars, bool) or not isinstance(stars, int) or not 1 <= stars <= 5:
        raise ValidationFailed("stars must be an integer between 1 and 5")
    comment = clean_str(payload.get("comment")) or None
    if comment and len(comment) > 1000:
        raise ValidationFailed("Comment must be less than 1000 characters")
    if game.developer_id == user.id:
        raise ValidationFailed("You cannot rate your own game")
    if not owns_game(s, user.id, game.id):
        raise Forbidden("You must own this game to rate it")

    enforce_content_limit(user.id, "review")
    now = utcnow()
    rating = s.query(Rating).filter(Rating.game_id == game.id, Rating.user_id == user.id).one_or_none()
    if rating is None:
        rating = Rating(game_id=game.id, user_id=user.id, stars=stars, comment=comment, created_at=now, updated_at=now)
        s.add(rating)
    else:
        rating.stars = stars
        rating.comment = comment
        rating.updated_at = now
    s.flush()
    record_content(user.id, "review")
    invalidate_game_caches()
    return rating


def serialize_rating(r: Rating) -> dict[str, Any]:
    return {
        "id": r.id,
        "game_id": r.game_id,
        "user": public_user(r.user),
        "stars": r.stars,
        "comment": r.comment,
        "created_at": iso(r.created_at),
        "updated_at": iso(r.updated_at),
    }


def toggle_favorite(s: Session, user: User, game: Game) -> bool:
    fav = s.query(Favorite).filter(Favorite.user_id == user.id, Favorite.game_id == game.id).one_or_none()
    if fav is not None:
        s.delete(fav)
        return False
    s.add(Favorite(user_id=user.id, game_id=game.id))
    return True


def favorites(s: Session, user: User) -> list[dict[str, Any]]:
    favs = s.query(Favorite).filter(Favorite.user_id == user.id).order_by(Favorite.created_at.desc()).all()
    return serialize_games(s, [f.game for f in favs if f.game is not None])


def library(s: Session, user: User) -> list[dict[str, Any]]:
    purchases = (
        s.query(Purchase)
        .filter(Purchase.user_id == user.id, Purchase.status == "COMPLETED")
        .order_by(Purchase.created_at.desc())
        .all()
    )
    games = [p.game for p in purchases if p.game is not None]
    items = serialize_games(s, games)
    for item, p in zip(items, [p for p in purchases if p.game is not None]):
        item["purchased_at"] = iso(p.created_at)
        item["price_paid_cents"] = p.price_cents
    return items


def check_access(s: Session, user: User, game: Game) -> tuple[bool, str]:
    if game.developer_id == user.id:
        return True, "developer"
    if user.is_admin:
        return True, "admin"
    if not game.is_published:
        return False, "unpublished"
    if game.price_cents == 0:
        return True, "free"
    if owns_game(s, user.id, game.id):
        return True, "purchased"
    if has_active_feature(user, "UNLIMITED_LIBRARY"):
        return True, "subscription"
    if game.release_status == "BETA":
        tester = (
            s.query(BetaTester.id).filter(BetaTester.game_id == game.id, BetaTester.user_id == user.id).first()
        )
        if tester is not None:
            return True, "beta_tester"
    return False, "not_owned"
