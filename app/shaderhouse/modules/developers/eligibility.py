from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

INDIE_MAX_TEAM_SIZE = 10

INDIE_POLICY = {
    "title": "What makes you 'Indie'?",
    "criteria": [
        f"Team size of {INDIE_MAX_TEAM_SIZE} or fewer",
        "No major publisher with funding/control (distribution partnerships are OK)",
        "You own your IP, or share it only among your team",
        "No corporate parent company",
    ],
    "note": "Having a studio name, sole proprietorship, or small LLC is common and allowed for indie developers.",
}


@dataclass
class EligibilityResult:
    is_eligible: bool
    reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"is_eligible": self.is_eligible, "reasons": self.reasons, "warnings": self.warnings}


def check_indie_eligibility(data: dict[str, Any]) -> EligibilityResult:
    """
    Reasons make a developer ineligible; warnings are informational only.
    Expects team_size, has_publisher, owns_ip, company_type and funding_sources.
    """
    reasons: list[str] = []
    warnings: list[str] = []

    team_size = int(data.get("team_size") or 0)
    funding = set(data.get("funding_sources") or [])

    if team_size > INDIE_MAX_TEAM_SIZE:
        reasons.append(f"Team size ({team_size}) exceeds indie limit of {INDIE_MAX_TEAM_SIZE}")
        warnings.append("Your team size may make you ineligible for Indie perks. You can still continue as a Studio.")

    if data.get("has_publisher"):
        reasons.append("Has a major publisher with funding/control")
        warnings.append(
            "Having a major publisher may make you ineligible for Indie perks. You can still continue as a Studio."
        )

    if not data.get("owns_ip"):
        reasons.append("Does not own IP for main title")

    if data.get("company_type") == "CORP":
        warnings.append("Corporate structure detected. Ensure you don't have a parent company to maintain indie status.")

    if "MAJOR_PUBLISHER" in funding:
        reasons.append("Received funding from major publisher")

    if "VC" in funding and team_size > INDIE_MAX_TEAM_SIZE:
        warnings.append("VC funding combined with large team size may indicate non-indie status.")

    return EligibilityResult(is_eligible=not reasons, reasons=reasons, warnings=warnings)
