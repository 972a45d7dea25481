from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, ValidationFailed
from app.shaderhouse.http import current_user, json_body, optional_user, page_args
from app.shaderhouse.modules.games.service import (
    PRICE_FILTERS,
    SORTS,
    beta_games,
    check_access,
    create_game,
    delete_game,
    favorites,
    featured_games,
    get_visible_game,
    library,
    list_games,
    rate_game,
    rating_stats,
    serialize_game,
    serialize_rating,
    similar_games,
    toggle_favorite,
    trending_games,
    update_game,
    validate_game_payload,
)
from app.shaderhouse.modules.games.models import Rating
from app.shaderhouse.rbac import require_login, require_permission
from app.shaderhouse.utils import clean_str, parse_int

bp = Blueprint("games", __name__)


# ---------- Listing ----------
@bp.get("")
def games_list():
    s = db_session()
    page, page_size = page_args(default_size=12, max_size=50)
    tags = [t.strip() for t in (request.args.get("tags") or "").split(",") if t.strip()]
    sort = (request.args.get("sort") or "new").strip()
    price_filter = (request.args.get("price_filter") or "all").strip()
    data = list_games(
        s,
        user=optional_user(),
        search=(request.args.get("q") or "").strip(),
        tags=tags,
        platform=(request.args.get("platform") or "").strip().upper(),
        price_filter=price_filter if price_filter in PRICE_FILTERS else "all",
        sort=sort if sort in SORTS else "new",
        page=page,
        page_size=page_size,
        developer=(request.args.get("developer") or "").strip(),
    )
    return jsonify(data)


@bp.get("/featured")
def games_featured():
    limit = parse_int(request.args.get("limit"), 6, minimum=1, maximum=24)
    return jsonify({"games": featured_games(db_session(), limit)})


@bp.get("/trending")
def games_trending():
    limit = parse_int(request.args.get("limit"), 10, minimum=1, maximum=50)
    days = parse_int(request.args.get("days"), 7, minimum=1, maximum=90)
    return jsonify({"games": trending_games(db_session(), limit, days), "days": days})


@bp.get("/beta")
def games_beta():
    page, page_size = page_args(default_size=12)
    return jsonify(beta_games(db_session(), page, page_size))


@bp.get("/favorites")
@require_login
def games_favorites():
    return jsonify({"games": favorites(db_session(), current_user())})


@bp.get("/library")
@require_login
def games_library():
    return jsonify({"games": library(db_session(), current_user())})


# ---------- CRUD ----------
@bp.post("")
@require_permission("games.create")
def games_create():
    s = db_session()
    user = current_user()
    data, errors = validate_game_payload(json_body())
    if errors:
        raise ValidationFailed(details=errors)
    game = create_game(s, user, data)
    s.commit()
    return jsonify({"game": serialize_game(game, detail=True)}), 201


@bp.get("/<ref>")
def games_detail(ref: str):
    s = db_session()
    game = get_visible_game(s, ref, optional_user())
    stats = rating_stats(s, [game.id]).get(game.id)
    reviews = (
        s.query(Rating).filter(Rating.game_id == game.id).order_by(Rating.created_at.desc()).limit(20).all()
    )
    return jsonify({"game": serialize_game(game, stats, detail=True), "reviews": [serialize_rating(r) for r in reviews]})


@bp.patch("/<ref>")
@require_permission("games.manage")
def games_update(ref: str):
    s = db_session()
    user = current_user()
    game = get_visible_game(s, ref, user)
    if game.developer_id != user.id:
        raise Forbidden("Only the developer can edit this game")
    data, errors = validate_game_payload(json_body(), partial=True)
    if errors:
        raise ValidationFailed(details=errors)
    update_game(s, game, user, data)
    s.commit()
    return jsonify({"game": serialize_game(game, detail=True)})


@bp.delete("/<ref>")
@require_login
def games_delete(ref: str):
    s = db_session()
    user = current_user()
    game = get_visible_game(s, ref, user)
    if game.developer_id != user.id and not user.is_admin:
        raise Forbidden("Only the developer or an admin can delete this game")
    delete_game(s, game, user, reason=clean_str(json_body().get("reason")) or None)
    s.commit()
    return jsonify({"deleted": True})


# ---------- Per-game ----------
@bp.get("/<ref>/similar")
def games_similar(ref: str):
    s = db_session()
    game = get_visible_game(s, ref, optional_user())
    limit = parse_int(request.args.get("limit"), 6, minimum=1, maximum=20)
    return jsonify({"games": similar_games(s, game, limit)})


@bp.post("/<ref>/rate")
@require_permission("games.rate")
def games_rate(ref: str):
    s = db_session()
    user = current_user()
    game = get_visible_game(s, ref, user)
    rating = rate_game(s, user, game, json_body())
    s.commit()
    return jsonify({"rating": serialize_rating(rating)})


@bp.post("/<ref>/favorite")
@require_login
def games_favorite(ref: str):
    s = db_session()
    game = get_visible_game(s, ref, current_user())
    favorited = toggle_favorite(s, current_user(), game)
    s.commit()
    return jsonify({"favorited": favorited})


@bp.get("/<ref>/access")
@require_login
def games_access(ref: str):
    s = db_session()
    user = current_user()
    game = get_visible_game(s, ref, user)
    has_access, reason = check_access(s, user, game)
    return jsonify({"has_access": has_access, "reason": reason, "external_url": game.external_url if has_access else None})
