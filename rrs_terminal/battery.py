"""
Battery Tracker: local estimate of the license battery, resynced from chain.
"""

import time
import logging

logger = logging.getLogger("Battery")


class BatteryTracker:
    RESYNC_EVERY = 25  # successful destroys between chain reads

    def __init__(self, client, drone_id, current=0, maximum=0):
        self.client = client
        self.drone_id = drone_id
        self.current = max(current, 0)
        self.maximum = maximum
        self.last_resync = time.time()

    def decrement_on_success(self):
        """Each destroyed block costs 1 battery. Never goes below 0 locally."""
        if self.current > 0:
            self.current -= 1

    def should_resync(self, success_count) -> bool:
        return success_count > 0 and success_count % self.RESYNC_EVERY == 0

    def resync_from_chain(self):
        """Replace the estimate with the on-chain value. Returns (current, max)."""
        status = self.client.get_license_status(self.drone_id)
        self.current = status.current_battery
        self.maximum = status.max_battery
        self.last_resync = time.time()
        logger.debug(f"🔋 Resynced: {self.current}/{self.maximum}")
        return self.current, self.maximum

    def checkpoint(self, success_count) -> bool:
        """Resync on the checkpoint. A failed read keeps the stale estimate."""
        if not self.should_resync(success_count):
            return False
        try:
            self.resync_from_chain()
            return True
        except Exception as e:
            logger.warning(f"⚠️ Battery resync failed, keeping estimate {self.current}: {e}")
            return False

    @property
    def percent(self) -> float:
        if self.maximum <= 0:
            return 0.0
        return min(self.current / self.maximum * 100, 100.0)

    def get_stats(self):
        return {
            "current": self.current,
            "max": self.maximum,
            "percent": round(self.percent),
            "last_resync": self.last_resync,
        }
