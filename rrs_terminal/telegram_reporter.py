"""
Telegram alerts for a mining session.

Silent unless TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID are set.
"""

import os
import logging

import requests

from .events import EventSink
from .models import format_duration

logger = logging.getLogger("Telegram")

API_URL = "https://api.telegram.org/bot{token}/sendMessage"
MESSAGE_LIMIT = 4096


class TelegramReporter(EventSink):
    STATUS_EVERY = 100  # destroyed blocks between status messages

    def __init__(self, bot_token=None, chat_id=None, drone_id=None, timeout=10):
        self.bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN")
        self.chat_id = chat_id or os.getenv("TELEGRAM_CHAT_ID")
        self.drone_id = drone_id
        self.timeout = timeout
        self.enabled = bool(self.bot_token and self.chat_id)
        self._destroyed = 0

        if not self.enabled:
            logger.info("📵 Telegram not configured (optional)")

    def send(self, text) -> bool:
        if not self.enabled:
            return False

        try:
            resp = requests.post(
                API_URL.format(token=self.bot_token),
                json={"chat_id": self.chat_id, "text": text[:MESSAGE_LIMIT], "parse_mode": "Markdown"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"⚠️ Telegram unreachable: {e}")
            return False

        if not resp.ok:
            logger.warning(f"⚠️ Telegram rejected message: {resp.status_code}")
        return resp.ok

    def session_started(self, battery, max_battery):
        self.send(f"🟢 *Drone #{self.drone_id} online*\nBattery {battery}/{max_battery}")

    # --- EventSink hooks ---

    def on_destroyed(self, container_id, block_id, tx_hash):
        self._destroyed += 1

    def on_stats_updated(self, stats):
        if self._destroyed < self.STATUS_EVERY:
            return
        self._destroyed = 0
        self.send(
            f"⛏ *Drone #{self.drone_id} status*\n\n"
            f"🧱 Destroyed: {stats.blocks_destroyed:,}\n"
            f"⏭ Already processed: {stats.blocks_already_destroyed:,}\n"
            f"❌ Failures: {stats.errors:,}\n"
            f"⏱ Runtime: {format_duration(stats.elapsed())} ({stats.rate():.2f} blocks/sec)\n"
            f"🔑 Cap refreshes: {stats.capability_refreshes:,}"
        )

    def on_resource_depleted(self):
        self.send(
            f"🔴 *Drone #{self.drone_id} shift ended*\n"
            "Battery depleted. Return to megacorp.global to queue for the next shift."
        )
