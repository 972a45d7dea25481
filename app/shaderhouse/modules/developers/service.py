from __future__ import annotations

import json
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.models import User
from app.shaderhouse.modules.developers.eligibility import check_indie_eligibility
from app.shaderhouse.modules.developers.models import DeveloperProfile
from app.shaderhouse.modules.notifications.service import notify_admins
from app.shaderhouse.utils import clean_str, is_http_url, iso, utcnow

DEVELOPER_TYPES = ("INDIE", "STUDIO")
FUNDING_SOURCES = ("SELF", "CROWDFUND", "ANGEL", "VC", "MAJOR_PUBLISHER")
COMPANY_TYPES = ("NONE", "SOLE_PROP", "LLC", "CORP")
VERIFICATION_STATUSES = ("PENDING", "APPROVED", "REJECTED", "APPEALING")


def validate_profile_payload(payload: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    if not isinstance(payload, dict):
        return {}, ["Developer profile must be an object."]

    developer_type = clean_str(payload.get("developer_type")).upper() or "INDIE"
    if developer_type not in DEVELOPER_TYPES:
        errors.append("developer_type must be INDIE or STUDIO.")

    team_size = payload.get("team_size")
    if isinstance(team_size, bool) or not isinstance(team_size, int) or not 0 <= team_size <= 500:
        errors.append("team_size must be an integer between 0 and 500.")
        team_size = 0

    has_publisher = payload.get("has_publisher")
    owns_ip = payload.get("owns_ip")
    if not isinstance(has_publisher, bool):
        errors.append("has_publisher must be true or false.")
    if not isinstance(owns_ip, bool):
        errors.append("owns_ip must be true or false.")

    funding = payload.get("funding_sources")
    if not isinstance(funding, list) or not funding:
        errors.append("Select at least one funding source.")
        funding = []
    else:
        funding = [str(f).upper() for f in funding]
        bad = [f for f in funding if f not in FUNDING_SOURCES]
        if bad:
            errors.append(f"Unknown funding source: {', '.join(bad)}")
        funding = list(dict.fromkeys(funding))

    company_type = clean_str(payload.get("company_type")).upper() or "NONE"
    if company_type not in COMPANY_TYPES:
        errors.append("company_type must be one of NONE, SOLE_PROP, LLC, CORP.")

    links = payload.get("evidence_links")
    if not isinstance(links, list) or not 1 <= len(links) <= 5:
        errors.append("Provide between 1 and 5 evidence links.")
        links = []
    elif not all(is_http_url(link) for link in links):
        errors.append("Evidence links must be valid http(s) URLs.")

    attest = bool(payload.get("attest_indie"))
    if developer_type == "INDIE" and not attest:
        errors.append("You must attest that you meet the indie criteria.")

    website = clean_str(payload.get("website")) or None
    if website and not is_http_url(website):
        errors.append("website must be a valid http(s) URL.")

    clean = {
        "developer_type": developer_type,
        "team_size": team_size,
        "has_publisher": bool(has_publisher),
        "owns_ip": bool(owns_ip),
        "funding_sources": funding,
        "company_type": company_type,
        "evidence_links": [link.strip() for link in links if isinstance(link, str)],
        "attest_indie": attest,
        "studio_name": clean_str(payload.get("studio_name"))[:200] or None,
        "website": website,
    }
    return clean, errors


def get_profile(s: Session, user_id: int) -> DeveloperProfile | None:
    return s.query(DeveloperProfile).filter(DeveloperProfile.user_id == user_id).one_or_none()


def save_profile(s: Session, user: User, data: dict[str, Any]) -> tuple[DeveloperProfile, dict[str, Any]]:
    """
    Create or update the profile and re-run the eligibility check.
    A rejected profile moves to APPEALING, anything else back to PENDING review.
    """
    result = check_indie_eligibility(data)
    profile = get_profile(s, user.id)
    is_new = profile is None
    if profile is None:
        profile = DeveloperProfile(user_id=user.id)
        s.add(profile)

    profile.studio_name = data.get("studio_name")
    profile.website = data.get("website")
    profile.developer_type = data["developer_type"]
    profile.team_size = data["team_size"]
    profile.has_publisher = data["has_publisher"]
    profile.owns_ip = data["owns_ip"]
    profile.funding_sources_json = json.dumps(data["funding_sources"])
    profile.company_type = data["company_type"]
    profile.evidence_links_json = json.dumps(data["evidence_links"])
    profile.attest_indie = data["attest_indie"]
    profile.is_indie_eligible = result.is_eligible
    profile.eligibility_reasons_json = json.dumps(result.reasons)
    profile.verification_status = "APPEALING" if profile.verification_status == "REJECTED" else "PENDING"
    profile.updated_at = utcnow()

    record_event(
        s,
        actor=user,
        action="developer_profile.create" if is_new else "developer_profile.update",
        entity_type="DeveloperProfile",
        entity_id=str(user.id),
        metadata={"is_indie_eligible": result.is_eligible, "status": profile.verification_status},
    )
    notify_admins(
        s,
        title="Developer profile awaiting review",
        message=f"{user.name} submitted a developer profile ({profile.verification_status}).",
        link="/admin/indie-verification",
        metadata={"user_id": user.id},
    )
    return profile, result.to_dict()


def serialize_profile(p: DeveloperProfile, *, private: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "user_id": p.user_id,
        "studio_name": p.studio_name,
        "website": p.website,
        "developer_type": p.developer_type,
        "team_size": p.team_size,
        "is_indie_eligible": p.is_indie_eligible,
        "verification_status": p.verification_status,
    }
    if private:
        out.update(
            {
                "has_publisher": p.has_publisher,
                "owns_ip": p.owns_ip,
                "funding_sources": json.loads(p.funding_sources_json or "[]"),
                "company_type": p.company_type,
                "evidence_links": json.loads(p.evidence_links_json or "[]"),
                "attest_indie": p.attest_indie,
                "eligibility_reasons": json.loads(p.eligibility_reasons_json or "[]"),
                "rejection_reason": p.rejection_reason,
                "reviewed_at": iso(p.reviewed_at),
                "payouts_enabled": p.payouts_enabled,
                "has_stripe_account": bool(p.stripe_account_id),
                "updated_at": iso(p.updated_at),
            }
        )
    return out


def list_developers(s: Session, *, q: str = "", limit: int = 50) -> list[dict[str, Any]]:
    from app.shaderhouse.modules.games.models import Game

    counts = (
        s.query(Game.developer_id, func.count(Game.id).label("game_count"))
        .filter(Game.is_published.is_(True))
        .group_by(Game.developer_id)
        .subquery()
    )
    query = (
        s.query(User, func.coalesce(counts.c.game_count, 0))
        .outerjoin(counts, counts.c.developer_id == User.id)
        .filter(User.role == "DEVELOPER", User.is_active.is_(True))
    )
    if q:
        like = f"%{q}%"
        query = query.filter(User.name.ilike(like) | User.display_name.ilike(like))
    rows = query.order_by(User.name.asc()).limit(limit).all()
    out = []
    for user, game_count in rows:
        profile = get_profile(s, user.id)
        out.append(
            {
                "id": user.id,
                "name": user.display_name or user.name,
                "bio": user.bio,
                "published_games": int(game_count),
                "profile": serialize_profile(profile) if profile else None,
            }
        )
    return out
