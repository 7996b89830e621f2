import pytest

from rrs_terminal.classifier import (
    FailureKind,
    classify_failure,
    describe_failure,
    looks_capability_related,
)


@pytest.mark.parametrize("message, kind", [
    ("execution reverted: Already destroyed", FailureKind.ALREADY_PROCESSED),
    ("Tile already mined", FailureKind.ALREADY_PROCESSED),
    ("execution reverted: Capability expired", FailureKind.CAPABILITY_EXPIRED),
    ("execution reverted: Capability exhausted", FailureKind.CAPABILITY_EXHAUSTED),
    ("execution reverted: Capability budget too low", FailureKind.BUDGET_EXHAUSTED),
    ("out of budget", FailureKind.BUDGET_EXHAUSTED),
    ("execution reverted: Not authorized", FailureKind.NOT_AUTHORIZED),
    ("execution reverted: Invalid capability signature", FailureKind.INVALID_SIGNATURE),
    ("execution reverted: Battery depleted - shift ended", FailureKind.RESOURCE_DEPLETED),
    ("Shift ended", FailureKind.RESOURCE_DEPLETED),
    ("execution reverted: Invalid container", FailureKind.INVALID_TARGET),
    ("execution reverted: Invalid tile", FailureKind.INVALID_TARGET),
    ("execution reverted: Jackpot fee too low", FailureKind.FEE_TOO_LOW),
    ("connection reset by peer", FailureKind.UNKNOWN),
])
def test_table(message, kind):
    assert classify_failure(message) is kind


def test_case_insensitive():
    assert classify_failure("ALREADY DESTROYED") is FailureKind.ALREADY_PROCESSED
    assert classify_failure("cApAbIlItY eXpIrEd") is FailureKind.CAPABILITY_EXPIRED


def test_already_destroyed_wins_over_capability_expired():
    message = "Capability expired; also block already destroyed"
    assert classify_failure(message) is FailureKind.ALREADY_PROCESSED


def test_specific_capability_rules_win_over_generic_budget():
    assert classify_failure("capability exhausted: budget 0") is FailureKind.CAPABILITY_EXHAUSTED
    assert classify_failure("capability expired, budget left 3") is FailureKind.CAPABILITY_EXPIRED


def test_budget_wins_over_battery():
    assert classify_failure("budget check before battery depleted") is FailureKind.BUDGET_EXHAUSTED


def test_generic_revert_reason_extracted():
    message = 'Transaction reverted with reason "Layer locked"'
    assert classify_failure(message) is FailureKind.GENERIC_REVERT
    assert describe_failure(message) == "Layer locked"


def test_generic_revert_with_already_reason():
    message = 'reverted with reason: "Block was already taken"'
    assert classify_failure(message) is FailureKind.ALREADY_PROCESSED
    assert describe_failure(message) == "Block was already taken"


def test_unknown_message_truncated_for_display():
    message = "x" * 500
    assert classify_failure(message) is FailureKind.UNKNOWN
    text = describe_failure(message)
    assert text.startswith("x" * 200)
    assert len(text) <= 203


def test_empty_message_is_unknown():
    assert classify_failure("") is FailureKind.UNKNOWN
    assert classify_failure(None) is FailureKind.UNKNOWN


def test_kind_recovery_flags():
    refresh = {k for k in FailureKind if k.refreshes_capability}
    assert refresh == {
        FailureKind.CAPABILITY_EXPIRED,
        FailureKind.CAPABILITY_EXHAUSTED,
        FailureKind.BUDGET_EXHAUSTED,
        FailureKind.INVALID_SIGNATURE,
    }
    assert [k for k in FailureKind if k.ends_session] == [FailureKind.RESOURCE_DEPLETED]


def test_looks_capability_related():
    assert looks_capability_related("Capability request failed: 500 - boom")
    assert looks_capability_related("budget")
    assert looks_capability_related("Nonce EXHAUSTED")
    assert not looks_capability_related("connection refused")
