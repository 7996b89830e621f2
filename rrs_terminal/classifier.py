"""
Failure classification for destroyBlock reverts.

The contract only tells us what went wrong through its revert strings,
so this is a table of substrings checked in order. First match wins.
"""

import re
from enum import Enum

DISPLAY_LIMIT = 200

REVERT_REASON_RE = re.compile(r'reverted with reason[:\s]+"?([^"]+)"?', re.IGNORECASE)


class FailureKind(Enum):
    ALREADY_PROCESSED = "already_processed"
    CAPABILITY_EXPIRED = "capability_expired"
    CAPABILITY_EXHAUSTED = "capability_exhausted"
    BUDGET_EXHAUSTED = "budget_exhausted"
    NOT_AUTHORIZED = "not_authorized"
    INVALID_SIGNATURE = "invalid_signature"
    RESOURCE_DEPLETED = "resource_depleted"
    INVALID_TARGET = "invalid_target"
    FEE_TOO_LOW = "fee_too_low"
    GENERIC_REVERT = "generic_revert"
    REVERTED_ON_CHAIN = "reverted_on_chain"
    UNKNOWN = "unknown"

    @property
    def refreshes_capability(self) -> bool:
        """The cached capability is no longer usable after this failure."""
        return self in _CAPABILITY_KINDS

    @property
    def ends_session(self) -> bool:
        return self is FailureKind.RESOURCE_DEPLETED


_CAPABILITY_KINDS = {
    FailureKind.CAPABILITY_EXPIRED,
    FailureKind.CAPABILITY_EXHAUSTED,
    FailureKind.BUDGET_EXHAUSTED,
    FailureKind.INVALID_SIGNATURE,
}

# (substrings, kind, display message). Order matters.
FAILURE_TABLE = [
    (("already destroyed", "tile already"), FailureKind.ALREADY_PROCESSED, "Already destroyed"),
    (("capability expired",), FailureKind.CAPABILITY_EXPIRED, "Capability expired"),
    (("capability exhausted",), FailureKind.CAPABILITY_EXHAUSTED, "Capability exhausted (on-chain)"),
    (("budget too low", "budget"), FailureKind.BUDGET_EXHAUSTED, "Capability budget exhausted"),
    (("not authorized",), FailureKind.NOT_AUTHORIZED, "Not authorized for license"),
    (("invalid capability signature",), FailureKind.INVALID_SIGNATURE, "Invalid capability signature"),
    (("battery depleted", "shift ended"), FailureKind.RESOURCE_DEPLETED, "Battery depleted - shift ended"),
    (("invalid container",), FailureKind.INVALID_TARGET, "Invalid container ID"),
    (("invalid tile",), FailureKind.INVALID_TARGET, "Invalid tile ID"),
    (("jackpot fee",), FailureKind.FEE_TOO_LOW, "Jackpot fee too low"),
]

CAPABILITY_HINTS = ("capability", "budget", "exhausted")


def _match(message):
    lower = message.lower()
    for needles, kind, text in FAILURE_TABLE:
        if any(needle in lower for needle in needles):
            return kind, text

    match = REVERT_REASON_RE.search(message)
    if match:
        reason = match.group(1).strip()
        if "already" in reason.lower():
            return FailureKind.ALREADY_PROCESSED, reason
        return FailureKind.GENERIC_REVERT, reason

    return FailureKind.UNKNOWN, truncate(message)


def classify_failure(message: str) -> FailureKind:
    """Map a raw revert / RPC error message to a FailureKind."""
    return _match(message or "")[0]


def describe_failure(message: str) -> str:
    """Short human readable text for the same message."""
    return _match(message or "")[1]


def looks_capability_related(message: str) -> bool:
    """Loose check used for unexpected exceptions that never went through the table."""
    lower = (message or "").lower()
    return any(hint in lower for hint in CAPABILITY_HINTS)


def truncate(message: str, limit=DISPLAY_LIMIT) -> str:
    return message if len(message) <= limit else message[:limit] + "..."
