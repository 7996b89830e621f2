import pytest
from unittest.mock import MagicMock

from rrs_terminal.models import Capability, CapabilityBundle, LicenseStatus

SESSION_ADDRESS = "0x1111111111111111111111111111111111111111"
OWNER_ADDRESS = "0x2222222222222222222222222222222222222222"


class FakeClock:
    def __init__(self, now=1000):
        self.now = now

    def __call__(self):
        return self.now


def capability_payload(budget=10, issued_at=1000, expires_at=1600, nonce=7, wallet=SESSION_ADDRESS):
    """JSON body as returned by POST /capability (numbers as strings, like the service)."""
    return {
        "capability": {
            "wallet": wallet,
            "allowedModes": 1,
            "nonce": str(nonce),
            "issuedAt": str(issued_at),
            "expiresAt": str(expires_at),
            "budget": budget,
        },
        "signature": "0x" + "ab" * 65,
    }


def make_bundle(budget=10, issued_at=1000, expires_at=1600, nonce=7):
    return CapabilityBundle(
        capability=Capability(
            wallet=SESSION_ADDRESS,
            allowed_modes=1,
            nonce=nonce,
            issued_at=issued_at,
            expires_at=expires_at,
            budget=budget,
        ),
        signature="0x" + "ab" * 65,
    )


def http_response(status=200, json_body=None, text="", reason="OK"):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = reason
    resp.text = text
    resp.json.return_value = json_body
    return resp


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chain():
    """ContractClient double with a healthy license."""
    client = MagicMock()
    client.address = SESSION_ADDRESS
    client.get_balance.return_value = 10 ** 17
    client.is_authorized.return_value = True
    client.get_license_status.return_value = LicenseStatus(
        tier=1, level=2, max_battery=500, current_battery=400, total_destroyed=1234
    )
    client.get_owner.return_value = OWNER_ADDRESS
    client.get_cube_balance.return_value = 0
    client.get_unprocessed_cube_balance.return_value = 0
    client.get_fee_per_block.return_value = 1000
    client.submit_destroy.return_value = "0xdeadbeef"
    client.wait_for_receipt.return_value = True
    return client
