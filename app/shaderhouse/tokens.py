from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from app.shaderhouse.errors import ValidationFailed
from app.shaderhouse.models import User, VerificationToken
from app.shaderhouse.utils import utcnow

EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
PASSWORD_RESET = "PASSWORD_RESET"
EMAIL_CHANGE = "EMAIL_CHANGE"

TOKEN_TTL = {
    EMAIL_VERIFICATION: timedelta(hours=24),
    PASSWORD_RESET: timedelta(hours=1),
    EMAIL_CHANGE: timedelta(hours=24),
}


def _hash(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def issue_token(s: Session, user: User, token_type: str, *, new_email: str | None = None) -> str:
    """Create a fresh token, replacing any earlier token of the same type. Returns the raw token."""
    s.query(VerificationToken).filter(
        VerificationToken.user_id == user.id,
        VerificationToken.type == token_type,
    ).delete(synchronize_session=False)
    raw = secrets.token_urlsafe(32)
    s.add(
        VerificationToken(
            user_id=user.id,
            token_hash=_hash(raw),
            type=token_type,
            new_email=new_email,
            expires_at=utcnow() + TOKEN_TTL[token_type],
        )
    )
    return raw


def _consume(s: Session, raw: str, token_type: str) -> tuple[User, VerificationToken]:
    if not raw or not isinstance(raw, str):
        raise ValidationFailed("Invalid or expired token")
    row = s.query(VerificationToken).filter(VerificationToken.token_hash == _hash(raw.strip())).one_or_none()
    if row is None or row.type != token_type:
        raise ValidationFailed("Invalid or expired token")
    if row.expires_at < utcnow():
        s.delete(row)
        s.commit()
        raise ValidationFailed("Invalid or expired token")
    user = s.get(User, row.user_id)
    s.delete(row)
    if user is None:
        raise ValidationFailed("Invalid or expired token")
    return user, row


def consume_token(s: Session, raw: str, token_type: str) -> User:
    user, _row = _consume(s, raw, token_type)
    return user


def consume_email_change(s: Session, raw: str) -> tuple[User, str]:
    """Returns the user and the address they asked to switch to."""
    user, row = _consume(s, raw, EMAIL_CHANGE)
    if not row.new_email:
        raise ValidationFailed("Invalid or expired token")
    return user, row.new_email
