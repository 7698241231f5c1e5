"""Per-institution policy table for lookback windows and fetch pacing"""

from dataclasses import dataclass
from typing import Dict, Optional
from cardcycle_gateway.domain.models import LookbackMode
from cardcycle_gateway.config import settings


@dataclass(frozen=True)
class InstitutionPolicy:
    """How far back to look and how gently to page through an issuer's history"""

    key: str
    preview_lookback_months: int
    full_lookback_months: int
    cycle_length_override: Optional[int] = None
    inter_request_delay: float = 0.0
    backoff_multiplier: float = 1.0

    def lookback_months(self, mode: LookbackMode) -> int:
        if mode is LookbackMode.PREVIEW:
            return self.preview_lookback_months
        return self.full_lookback_months


DEFAULT_POLICY = InstitutionPolicy(
    key="default",
    preview_lookback_months=settings.preview_lookback_months,
    full_lookback_months=settings.full_lookback_months,
    inter_request_delay=settings.fetch_inter_request_delay,
)

# Issuers that throttle historical queries only get the short window,
# for preview and backfill alike.
_SHORT_WINDOW = settings.preview_lookback_months

INSTITUTION_POLICIES: Dict[str, InstitutionPolicy] = {
    "ins_128026": InstitutionPolicy(
        key="capital_one",
        preview_lookback_months=_SHORT_WINDOW,
        full_lookback_months=_SHORT_WINDOW,
        inter_request_delay=1.0,
        backoff_multiplier=2.0,
    ),
    "ins_54": InstitutionPolicy(
        key="robinhood",
        preview_lookback_months=_SHORT_WINDOW,
        full_lookback_months=_SHORT_WINDOW,
        inter_request_delay=1.0,
        backoff_multiplier=2.0,
    ),
}


def normalize_institution_id(institution_id: str | None) -> str:
    return (institution_id or "").strip().lower()


def resolve_policy(institution_id: str | None) -> InstitutionPolicy:
    """Look up an institution's policy, falling back to the default"""
    return INSTITUTION_POLICIES.get(normalize_institution_id(institution_id), DEFAULT_POLICY)
