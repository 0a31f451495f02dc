"""Pre-loop intent classification of user messages."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..llm.json_parser import extract_json_object

LOGGER = logging.getLogger(__name__)

STANDARD_LOGIN_SKILL = "standard-login"

_LOGIN_RE = re.compile(r"\b(log\s*in|login|sign\s*in|authenticate)\b")
_DELEGATED_AUTH_RE = re.compile(
    r"\b(oauth|sso|single\s*sign\s*on|google|github|facebook|apple|microsoft|passkey|magic\s*link)\b"
)
_FINANCIAL_AUTH_RE = re.compile(
    r"\b(bank|banking|wire\s*transfer|payment\s*authorization|financial\s*authorization)\b"
)


class IntentVerdict(str, enum.Enum):
    USE_SKILL = "use_skill"
    PROCEED = "proceed"
    REFUSE = "refuse"


@dataclass(frozen=True)
class IntentClassification:
    """Router decision taken before the action loop starts."""

    verdict: IntentVerdict
    reasoning: str
    skill_name: Optional[str] = None

    @property
    def refused(self) -> bool:
        return self.verdict is IntentVerdict.REFUSE


def proceed(reasoning: str) -> IntentClassification:
    return IntentClassification(IntentVerdict.PROCEED, reasoning)


def wants_standard_login(message: str) -> bool:
    """Password logins go to ``standard-login``; delegated or financial auth does not."""

    lowered = message.lower()
    return (
        _LOGIN_RE.search(lowered) is not None
        and _DELEGATED_AUTH_RE.search(lowered) is None
        and _FINANCIAL_AUTH_RE.search(lowered) is None
    )


def parse_intent(raw: str, message: str) -> IntentClassification:
    """Turn classifier output into a decision; unreadable output proceeds."""

    try:
        payload = extract_json_object(raw)
    except ValueError as exc:
        LOGGER.debug("Unreadable classifier output: %s", exc)
        return proceed("Could not parse classifier output, defaulting to proceed.")

    if wants_standard_login(message):
        return IntentClassification(
            IntentVerdict.USE_SKILL,
            "Login intent detected; normalized to standard-login.",
            STANDARD_LOGIN_SKILL,
        )

    try:
        verdict = IntentVerdict(payload.get("action"))
    except ValueError:
        return proceed("Could not parse classifier output, defaulting to proceed.")
    skill_name = payload.get("skill_name")
    return IntentClassification(
        verdict,
        str(payload.get("reasoning") or "Classifier returned no reasoning."),
        skill_name if isinstance(skill_name, str) else None,
    )
