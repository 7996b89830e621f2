"""
Capability Cache
================
Holds the one capability this process is mining with, plus a local
count of how much of its budget we have already spent.

The local counter is advisory. The contract enforces the real limit, so
whenever the chain rejects a token the caller must `invalidate()` and
the next `acquire()` goes back to the capability service.
"""

import time
import logging
from dataclasses import dataclass

import requests

from . import config as cfg
from .models import CAP_MODE_MINE, CapabilityBundle

logger = logging.getLogger("Capability")

EXPIRY_MARGIN_SECONDS = 30


class CapabilityError(Exception):
    """The capability service refused to issue a token."""

    def __init__(self, status_code, body):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Capability request failed: {status_code} - {body}")


@dataclass
class CachedCapability:
    bundle: CapabilityBundle
    remaining_budget: int
    fetched_at: float


class CapabilityCache:
    """
    Single-entry cache scoped to one (wallet, drone) session.

    Args:
        endpoint: Base URL of the capability service (POST {endpoint}/capability).
        wallet: Session wallet address the capability is issued to.
        drone_id: License / drone token id.
        allowed_modes: Capability mode bitflags to request.
        clock: Returns the current unix time in seconds.
    """

    def __init__(self, endpoint, wallet, drone_id, allowed_modes=CAP_MODE_MINE,
                 clock=time.time, timeout=None):
        self.endpoint = endpoint.rstrip("/")
        self.wallet = wallet
        self.drone_id = drone_id
        self.allowed_modes = allowed_modes
        self.clock = clock
        self.timeout = cfg.REQUEST_TIMEOUT if timeout is None else timeout
        self._entry = None

    def _is_valid(self, cost):
        if self._entry is None:
            return False

        now = int(self.clock())
        if now >= self._entry.bundle.capability.expires_at - EXPIRY_MARGIN_SECONDS:
            return False

        return self._entry.remaining_budget >= cost

    def needs_refresh(self, cost=1) -> bool:
        """True when the next `acquire(cost)` will hit the network."""
        return not self._is_valid(cost)

    def remaining_budget(self) -> int:
        return self._entry.remaining_budget if self._entry else 0

    def acquire(self, cost=1) -> CapabilityBundle:
        """Return a capability good for an operation costing `cost` budget units."""
        if self._is_valid(cost):
            self._entry.remaining_budget -= cost
            return self._entry.bundle

        bundle = self.fetch()
        cap = bundle.capability
        logger.info(
            f"🔑 Fresh capability: budget={cap.budget}, nonce={cap.nonce_hex}, "
            f"ttl={cap.expires_at - cap.issued_at}s"
        )

        self._entry = CachedCapability(
            bundle=bundle,
            remaining_budget=cap.budget - cost,
            fetched_at=self.clock(),
        )
        return bundle

    def invalidate(self):
        """Drop the cached capability so the next acquire refetches."""
        if self._entry:
            logger.info(
                f"🧹 Clearing capability cache: nonce={self._entry.bundle.capability.nonce_hex}, "
                f"had {self._entry.remaining_budget} local budget"
            )
        self._entry = None

    def fetch(self) -> CapabilityBundle:
        """Request a new capability from the service. Raises CapabilityError on non-2xx."""
        url = f"{self.endpoint}/capability"
        payload = {
            "wallet": self.wallet,
            "allowedModes": self.allowed_modes,
            "droneId": str(self.drone_id),
        }

        resp = requests.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        if not resp.ok:
            raise CapabilityError(resp.status_code, resp.text)

        return CapabilityBundle.from_response(resp.json())
