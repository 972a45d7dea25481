from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300


class StripeError(RuntimeError):
    pass


class StripeRateLimited(StripeError):
    pass


class StripeSignatureError(StripeError):
    pass


def _flatten(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Stripe form encoding: nested dicts/lists become a[b][0]=c."""
    out: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            out.extend(_flatten(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    out.extend(_flatten(item, f"{name}[{i}]"))
                else:
                    out.append((f"{name}[{i}]", str(item)))
        elif isinstance(value, bool):
            out.append((name, "true" if value else "false"))
        else:
            out.append((name, str(value)))
    return out


@dataclass(frozen=True)
class StripeClient:
    secret_key: str
    base_url: str = "https://api.stripe.com/v1"
    timeout_seconds: int = 30

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        retries: int = 3,
    ) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        data: bytes | None = None
        if params and method == "GET":
            url += "?" + urllib.parse.urlencode(_flatten(params))
        elif params:
            data = urllib.parse.urlencode(_flatten(params)).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            req = urllib.request.Request(url, data=data, method=method)
            req.add_header("Authorization", f"Bearer {self.secret_key}")
            req.add_header("Accept", "application/json")
            if data is not None:
                req.add_header("Content-Type", "application/x-www-form-urlencoded")
            try:
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    # rate limit; brief backoff
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = StripeRateLimited("Rate limited (429)")
                    continue
                body = e.read().decode("utf-8", errors="ignore")
                raise StripeError(f"HTTP {e.code} from Stripe ({path}): {body[:300]}") from e
            except urllib.error.URLError as e:
                raise StripeError(f"Stripe request failed ({path}): {e.reason}") from e
            try:
                return json.loads(raw.decode("utf-8"))
            except ValueError as e:
                raise StripeError(f"Invalid JSON from Stripe ({path})") from e
        raise StripeError(f"Stripe request failed after retries: {last_err}")

    def create_checkout_session(self, params: dict[str, Any]) -> dict[str, Any]:
        return self.request_json("POST", "/checkout/sessions", params=params)

    def cancel_subscription_at_period_end(self, subscription_id: str) -> dict[str, Any]:
        return self.request_json(
            "POST",
            f"/subscriptions/{urllib.parse.quote(subscription_id)}",
            params={"cancel_at_period_end": True},
        )

    def create_express_account(self, *, email: str, metadata: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request_json(
            "POST",
            "/accounts",
            params={
                "type": "express",
                "email": email,
                "capabilities": {"card_payments": {"requested": True}, "transfers": {"requested": True}},
                "metadata": metadata or {},
            },
        )

    def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> dict[str, Any]:
        return self.request_json(
            "POST",
            "/account_links",
            params={
                "account": account_id,
                "refresh_url": refresh_url,
                "return_url": return_url,
                "type": "account_onboarding",
            },
        )

    def retrieve_account(self, account_id: str) -> dict[str, Any]:
        return self.request_json("GET", f"/accounts/{urllib.parse.quote(account_id)}")

    def create_login_link(self, account_id: str) -> dict[str, Any]:
        return self.request_json("POST", f"/accounts/{urllib.parse.quote(account_id)}/login_links")


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def construct_event(
    payload: bytes,
    sig_header: str | None,
    secret: str,
    *,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
    now: float | None = None,
) -> dict[str, Any]:
    """
    Verify a `Stripe-Signature` header (t=...,v1=...) and return the parsed event.
    """
    if not sig_header:
        raise StripeSignatureError("Missing Stripe-Signature header")

    timestamp: int | None = None
    signatures: list[str] = []
    for part in sig_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise StripeSignatureError("Malformed signature timestamp") from None
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise StripeSignatureError("Malformed Stripe-Signature header")

    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise StripeSignatureError("Signature mismatch")

    current = time.time() if now is None else now
    if tolerance and abs(current - timestamp) > tolerance:
        raise StripeSignatureError("Signature timestamp outside tolerance")

    try:
        event = json.loads(payload.decode("utf-8"))
    except ValueError as e:
        raise StripeSignatureError("Invalid JSON payload") from e
    if not isinstance(event, dict) or "type" not in event:
        raise StripeSignatureError("Invalid event payload")
    return event


def stripe_client_from_config(config: Any) -> StripeClient | None:
    key = config.get("STRIPE_SECRET_KEY") or ""
    if not key:
        return None
    return StripeClient(secret_key=key)
