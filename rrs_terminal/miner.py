"""
Mining Loop
===========
Drives the reclamation shift: pick a random block, get a capability,
destroy the block, update stats and battery, repeat.

Iterations are strictly sequential and one iteration never takes the
session down. The loop ends only when the battery runs out (the chain
says so) or `stop()` is called.

Precondition: one Miner per process (the CLI enforces this with a PID file).
"""

import os
import time
import random
import logging
import threading
from enum import Enum
from dataclasses import dataclass

from . import config as cfg
from .classifier import looks_capability_related
from .events import CompositeEventSink, EventSink
from .executor import TransactionExecutor
from .models import MiningStats, RuntimeState, random_target, format_duration

logger = logging.getLogger("Miner")

STATE_SAVE_EVERY = 10      # successful destroys between runtime state writes
BALANCE_REFRESH_EVERY = 5  # attempts (destroyed + errors) between balance reads

GRID_SIZE = 10
GRID_EMPTY = "░"
GRID_MINING = "◆"
GRID_SUCCESS = "▪"
GRID_FAIL = "×"
GRID_SKIP = "·"


class MinerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class SetupError(Exception):
    """Pre-loop validation failed; mining must not start."""


@dataclass
class SetupResult:
    fee_per_block: int
    balance: int
    cube_balance: int
    unprocessed_cube: int
    owner_address: str
    current_battery: int
    max_battery: int


def validate_mining_setup(config, client, capabilities) -> SetupResult:
    """
    Check that the session can mine at all: gas funds, drone authorization,
    battery left, and a working capability endpoint.
    """
    try:
        logger.info("🔐 Verifying operator credentials...")
        balance = client.get_balance()
        if balance == 0:
            raise SetupError(f"Session wallet {client.address} has no ETH. Fund it with ETH for gas.")

        logger.info(f"🪪 Validating drone #{config.drone_id} license...")
        if not client.is_authorized(config.drone_id, client.address):
            raise SetupError(
                f"Session wallet {client.address} is not authorized for drone #{config.drone_id}. "
                "Set session key on drone first."
            )

        status = client.get_license_status(config.drone_id)
        if status.current_battery == 0:
            raise SetupError("License battery depleted. Wait for next shift.")

        # CUBE rewards go to the drone owner, not the session wallet
        owner = client.get_owner(config.drone_id)
        cube_balance = client.get_cube_balance(owner)
        unprocessed = client.get_unprocessed_cube_balance(owner)
        fee = client.get_fee_per_block()

        logger.info("🧬 Performing identity validation...")
        capabilities.acquire(0)
    except SetupError:
        raise
    except Exception as e:
        raise SetupError(str(e)) from e
    finally:
        # Mining starts with a fresh capability
        capabilities.invalidate()

    logger.info("✅ Mining authorization verified")
    return SetupResult(
        fee_per_block=fee,
        balance=balance,
        cube_balance=cube_balance,
        unprocessed_cube=unprocessed,
        owner_address=owner,
        current_battery=status.current_battery,
        max_battery=status.max_battery,
    )


@dataclass
class ShutdownReport:
    depleted: bool
    stats: MiningStats
    runtime: str
    rate: float


class Miner:
    """
    Args:
        drone_id: License / drone token id being mined with.
        client: ContractClient (chain reads + writes).
        capabilities: CapabilityCache owned by this session.
        battery: BatteryTracker for the license.
        fee_per_block: Jackpot fee in wei sent with every destroy.
        executor: TransactionExecutor; built from `client` when omitted.
        events: EventSink receiving loop notifications.
        state_store: RuntimeStateStore for `status`; None disables persistence.
        mine_delay: Seconds to wait between iterations.
    """

    def __init__(self, drone_id, client, capabilities, battery, fee_per_block=0,
                 executor=None, owner_address="", events=None, state_store=None,
                 mine_delay=None, rng=random, balance=0,
                 cube_balance=0, unprocessed_cube=0):
        self.drone_id = drone_id
        self.client = client
        self.capabilities = capabilities
        self.battery = battery
        self.fee_per_block = fee_per_block
        self.executor = executor or TransactionExecutor(client)
        self.owner_address = owner_address
        # A failing sink must never break an iteration
        self.events = CompositeEventSink([events]) if events is not None else EventSink()
        self.state_store = state_store
        self.mine_delay = cfg.MINE_DELAY_MS / 1000 if mine_delay is None else mine_delay
        self.rng = rng

        self.state = MinerState.IDLE
        self.depleted = False
        self.stats = MiningStats()
        self.last_error = ""

        self.last_balance = balance
        self.last_cube_balance = cube_balance
        self.last_unprocessed_cube = unprocessed_cube
        self._balance_refreshed_at = 0

        self.current_container = 0
        self.current_block = 0
        self.grid = [GRID_EMPTY] * (GRID_SIZE * GRID_SIZE)
        self.grid_index = 0

        self._stop_event = threading.Event()

    @classmethod
    def from_setup(cls, drone_id, client, capabilities, battery, setup: SetupResult, **kwargs):
        return cls(
            drone_id,
            client,
            capabilities,
            battery,
            fee_per_block=setup.fee_per_block,
            owner_address=setup.owner_address,
            balance=setup.balance,
            cube_balance=setup.cube_balance,
            unprocessed_cube=setup.unprocessed_cube,
            **kwargs,
        )

    @property
    def running(self) -> bool:
        return self.state is MinerState.RUNNING

    # --- LOOP ---

    def run(self) -> ShutdownReport:
        """Mine until the battery is depleted or stop() is called."""
        if self.state is not MinerState.IDLE:
            raise RuntimeError(f"Miner cannot start from state {self.state.value}")

        self.state = MinerState.RUNNING
        self.stats = MiningStats()
        self._save_state()

        logger.info(
            f"🚀 Mining session started: drone #{self.drone_id}, "
            f"session {self.client.address}, owner {self.owner_address}"
        )

        try:
            while self.state is MinerState.RUNNING:
                self.mine_once()
                if self.state is MinerState.RUNNING:
                    self._stop_event.wait(self.mine_delay)
        finally:
            self.state = MinerState.STOPPED

        return self.report()

    def stop(self):
        """Ask the loop to exit after the current iteration."""
        if self.state is MinerState.RUNNING:
            self.state = MinerState.STOPPING
        elif self.state is MinerState.IDLE:
            self.state = MinerState.STOPPED
        self._stop_event.set()

    def mine_once(self):
        """One iteration. Never raises."""
        container_id, block_id = random_target(self.rng)
        self.current_container = container_id
        self.current_block = block_id
        self.grid[self.grid_index] = GRID_MINING

        nonce_hex = None
        try:
            was_refresh = self.capabilities.needs_refresh(1)
            bundle = self.capabilities.acquire(1)
            nonce_hex = bundle.capability.nonce_hex

            if was_refresh:
                self.stats.capability_refreshes += 1
                self.events.on_capability_refresh(bundle.capability.budget)

            result = self.executor.destroy(
                self.drone_id, container_id, block_id, bundle, self.fee_per_block
            )

            if result.success:
                self._on_destroyed(container_id, block_id, result.tx_hash)
            elif result.already_processed:
                self.stats.blocks_already_destroyed += 1
                self.grid[self.grid_index] = GRID_SKIP
                self.events.on_already_processed(container_id, block_id)
            else:
                self._on_failure(container_id, block_id, result, nonce_hex)

        except Exception as e:
            message = str(e) or type(e).__name__
            self._record_error(message)
            logger.error(
                f"🔥 Block destruction exception: container={container_id} "
                f"block={block_id} error={message}"
            )
            self.events.on_error(message)
            if looks_capability_related(message):
                self.capabilities.invalidate()

        self._advance_grid()
        self._refresh_balances()
        self.events.on_stats_updated(self.stats)

    def _on_destroyed(self, container_id, block_id, tx_hash):
        self.stats.blocks_destroyed += 1
        self.grid[self.grid_index] = GRID_SUCCESS

        self.battery.decrement_on_success()
        self.battery.checkpoint(self.stats.blocks_destroyed)

        if self.stats.blocks_destroyed % STATE_SAVE_EVERY == 0:
            self._save_state()

        self.events.on_destroyed(container_id, block_id, tx_hash)

    def _on_failure(self, container_id, block_id, result, nonce_hex):
        error = result.error or "Unknown error"
        self._record_error(error)
        logger.error(
            f"❌ Block destruction failed: container={container_id} block={block_id} "
            f"error={error} nonce={nonce_hex}"
        )
        self.events.on_error(error)

        kind = result.kind
        if kind is not None and kind.refreshes_capability:
            logger.warning(
                f"⚠️ Capability error - clearing cache (local budget "
                f"{self.capabilities.remaining_budget()}, destroyed {self.stats.blocks_destroyed})"
            )
            self.capabilities.invalidate()

        if kind is not None and kind.ends_session:
            logger.info("🔋 Battery depleted - shift ended")
            self.depleted = True
            if self.state is MinerState.RUNNING:
                self.state = MinerState.STOPPING
            self.events.on_resource_depleted()

    def _record_error(self, message):
        self.stats.errors += 1
        self.grid[self.grid_index] = GRID_FAIL
        self.last_error = message

    def _advance_grid(self):
        self.grid_index += 1
        if self.grid_index >= len(self.grid):
            self.grid_index = 0
            self.grid = [GRID_EMPTY] * (GRID_SIZE * GRID_SIZE)

    def grid_row(self) -> str:
        return "".join(self.grid)

    def _refresh_balances(self):
        attempts = self.stats.blocks_destroyed + self.stats.errors
        if attempts == 0 or attempts % BALANCE_REFRESH_EVERY or attempts == self._balance_refreshed_at:
            return
        self._balance_refreshed_at = attempts

        try:
            self.last_balance = self.client.get_balance()
            self.last_unprocessed_cube = self.client.get_unprocessed_cube_balance(self.owner_address)
            self.last_cube_balance = self.client.get_cube_balance(self.owner_address)
        except Exception as e:
            logger.debug(f"Balance refresh failed: {e}")

    def _save_state(self):
        if self.state_store is None:
            return
        try:
            self.state_store.save(RuntimeState(
                pid=os.getpid(),
                start_time=self.stats.start_time,
                stats=self.stats,
            ))
        except OSError as e:
            logger.warning(f"⚠️ Could not write runtime state: {e}")

    # --- REPORT ---

    def report(self) -> ShutdownReport:
        now = time.time()
        runtime = format_duration(self.stats.elapsed(now))
        rate = self.stats.rate(now)

        logger.info(
            f"{'Shift ended - battery depleted' if self.depleted else 'Mining session stopped'}: "
            f"destroyed={self.stats.blocks_destroyed} "
            f"already={self.stats.blocks_already_destroyed} "
            f"errors={self.stats.errors} runtime={runtime} bps={rate:.2f}"
        )
        return ShutdownReport(depleted=self.depleted, stats=self.stats, runtime=runtime, rate=rate)
