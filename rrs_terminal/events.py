"""
Event sinks for the mining loop.

The miner calls these hooks; sinks decide what to show or send.
`EventSink` itself does nothing, so subclasses override only what they need.
"""

import logging

from web3 import Web3

from .models import format_location

logger = logging.getLogger("Dashboard")


class EventSink:
    def on_destroyed(self, container_id, block_id, tx_hash):
        pass

    def on_already_processed(self, container_id, block_id):
        pass

    def on_error(self, message):
        pass

    def on_capability_refresh(self, budget):
        pass

    def on_resource_depleted(self):
        pass

    def on_stats_updated(self, stats):
        pass


class CompositeEventSink(EventSink):
    """Fans every event out to several sinks. A failing sink never breaks the others."""

    def __init__(self, sinks):
        self.sinks = list(sinks)

    def _emit(self, name, *args):
        for sink in self.sinks:
            try:
                getattr(sink, name)(*args)
            except Exception as e:
                logger.warning(f"⚠️ {type(sink).__name__}.{name} failed: {e}")

    def on_destroyed(self, container_id, block_id, tx_hash):
        self._emit("on_destroyed", container_id, block_id, tx_hash)

    def on_already_processed(self, container_id, block_id):
        self._emit("on_already_processed", container_id, block_id)

    def on_error(self, message):
        self._emit("on_error", message)

    def on_capability_refresh(self, budget):
        self._emit("on_capability_refresh", budget)

    def on_resource_depleted(self):
        self._emit("on_resource_depleted")

    def on_stats_updated(self, stats):
        self._emit("on_stats_updated", stats)


def battery_bar(current, maximum, width=20):
    pct = min(current / maximum, 1.0) if maximum > 0 else 0.0
    filled = round(pct * width)
    return "█" * filled + "░" * (width - filled)


class ConsoleDashboard(EventSink):
    """Logs a compact status block every `every` iterations."""

    def __init__(self, every=10):
        self.every = every
        self.miner = None
        self._updates = 0

    def attach(self, miner):
        self.miner = miner

    def on_capability_refresh(self, budget):
        logger.info(f"🔑 Capability refreshed (budget {budget})")

    def on_stats_updated(self, stats):
        self._updates += 1
        if self.miner is None or self._updates % self.every:
            return
        self.render()

    def render(self):
        m = self.miner
        stats = m.stats
        eth = float(Web3.from_wei(m.last_balance, "ether"))
        earned = float(Web3.from_wei(m.last_unprocessed_cube, "ether"))
        inscribed = float(Web3.from_wei(m.last_cube_balance, "ether"))
        location = format_location(m.current_container, m.current_block)

        logger.info(
            f"📊 BPS {stats.rate():.1f}/s | Blocks {stats.blocks_destroyed:,} | ETH {eth:.4f} | "
            f"$CUBE earned {earned:.2f} / inscribed {inscribed:.2f}"
        )
        logger.info(f"📍 {location} | {m.grid_row()}")
        logger.info(
            f"🔋 [{battery_bar(m.battery.current, m.battery.maximum)}] "
            f"{m.battery.current}/{m.battery.maximum}"
        )
        if m.last_error and stats.errors > 0:
            err = m.last_error if len(m.last_error) <= 60 else m.last_error[:60] + "..."
            logger.info(f"❌ Last error: {err}")
