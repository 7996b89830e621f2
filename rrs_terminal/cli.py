"""
RRS Terminal: MegaCube reclamation miner
========================================
Usage:
    rrs-terminal config --generate --drone-id 42
    rrs-terminal config --import-key 0x...        # auto-detects the drone
    rrs-terminal start
    rrs-terminal status
    rrs-terminal stop
"""

import os
import sys
import time
import signal
import logging
import argparse
from pathlib import Path

from eth_account import Account

from . import config as cfg
from . import __version__
from .battery import BatteryTracker
from .capability import CapabilityCache
from .contract import ContractClient
from .events import CompositeEventSink, ConsoleDashboard
from .miner import Miner, SetupError, validate_mining_setup
from .models import format_duration
from .network import NetworkConfigCache
from .telegram_reporter import TelegramReporter

logger = logging.getLogger("RRS")


def setup_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(name)-12s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    # Errors also go to ~/.megacube/rrs.log
    try:
        cfg.LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(cfg.LOG_PATH)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"))
        logging.getLogger().addHandler(handler)
    except OSError as e:
        logger.warning(f"⚠️ File logging disabled: {e}")


def print_stats_box(title, rows):
    width = max([len(label) for label, _ in rows] + [len(title)]) + 2
    print(f"\n  ┌─ {title}")
    for label, value in rows:
        print(f"  │ {label:<{width}}{value}")
    print("  └" + "─" * (width + 12))


def print_shutdown_report(report):
    print()
    if report.depleted:
        print("  ⚠  OPERATOR LICENSE BATTERY DEPLETED")
        print("  Reclamation shift complete.")
        print()
        print("  Your shift has ended. Return to megacorp.global")
        print("  to join the queue for your next shift.")
    else:
        print("  ⏹  Reclamation Operations Suspended")

    stats = report.stats
    print_stats_box("Shift Summary", [
        ("Blocks Destroyed", f"{stats.blocks_destroyed:,}"),
        ("Already Processed", f"{stats.blocks_already_destroyed:,}"),
        ("Failures", f"{stats.errors:,}"),
        ("Shift Duration", report.runtime),
        ("Efficiency", f"{report.rate:.2f} blocks/sec"),
        ("Cap Refreshes", f"{stats.capability_refreshes:,}"),
    ])

    if stats.errors > 0:
        print(f"\n  Errors logged to: {cfg.LOG_PATH}")


# --- COMMANDS ---

def cmd_start(args):
    existing = cfg.read_pid_file()
    if existing and cfg.is_process_running(existing):
        print(f"❌ Mining is already running (PID: {existing})")
        print('   Use "rrs-terminal stop" to stop it first')
        return 1

    try:
        config = cfg.load_config()
    except (ValueError, OSError) as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    try:
        network = NetworkConfigCache().get()
    except (ConnectionError, ValueError, OSError) as e:
        print(f"❌ Failed to fetch network config: {e}")
        return 1
    logger.info(f"🌐 Connected to {network.name} (chain {network.chain_id})")

    try:
        client = ContractClient.from_network(network, config.session_key)
    except (ValueError, TypeError) as e:
        print(f"❌ Failed to load config: invalid session key ({e})")
        return 1
    capabilities = CapabilityCache(network.capability_endpoint, client.address, config.drone_id)

    try:
        setup = validate_mining_setup(config, client, capabilities)
    except SetupError as e:
        print(f"❌ {e}")
        return 1

    print_stats_box("Operator", [
        ("Session Wallet", client.address),
        ("License ID", f"#{config.drone_id}"),
        ("Battery", f"{setup.current_battery}/{setup.max_battery}"),
        ("Fee / Block", f"{setup.fee_per_block} wei"),
    ])

    state_store = cfg.RuntimeStateStore()
    try:
        cfg.write_pid_file(os.getpid())
        state_store.clear()

        dashboard = ConsoleDashboard()
        telegram = TelegramReporter(drone_id=config.drone_id)
        battery = BatteryTracker(client, config.drone_id, setup.current_battery, setup.max_battery)
        miner = Miner.from_setup(
            config.drone_id,
            client,
            capabilities,
            battery,
            setup,
            events=CompositeEventSink([dashboard, telegram]),
            state_store=state_store,
        )
        dashboard.attach(miner)

        def shutdown(signum, frame):
            logger.info("🛑 Shutdown requested")
            miner.stop()

        signal.signal(signal.SIGINT, shutdown)
        signal.signal(signal.SIGTERM, shutdown)

        telegram.session_started(setup.current_battery, setup.max_battery)
        report = miner.run()
    finally:
        state_store.clear()
        cfg.remove_pid_file()

    print_shutdown_report(report)
    return 0


def cmd_stop(args):
    pid = cfg.read_pid_file()
    if not pid:
        print("⚠️  No mining process found")
        print("   Mining may have already stopped")
        return 0

    if not cfg.is_process_running(pid):
        print("⚠️  Mining process not running (stale PID file)")
        cfg.remove_pid_file()
        print("   Cleaned up stale PID file")
        return 0

    print(f"⏳ Stopping mining process (PID: {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)

        # Up to 5 seconds for a graceful exit
        for _ in range(50):
            if not cfg.is_process_running(pid):
                break
            time.sleep(0.1)

        if cfg.is_process_running(pid):
            print("   Process not responding, forcing stop...")
            os.kill(pid, signal.SIGKILL)
            cfg.remove_pid_file()
    except ProcessLookupError:
        print("⚠️  Process already stopped")
        cfg.remove_pid_file()
        return 0
    except PermissionError as e:
        print(f"❌ Failed to stop process: {e}")
        return 1

    print("✅ Mining stopped")
    return 0


def cmd_status(args):
    if not cfg.config_exists():
        print("⚠️  No configuration found")
        print('   Run "rrs-terminal config" to set up')
        return 0

    try:
        config = cfg.load_config()
    except (ValueError, OSError) as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    print_stats_box("Configuration", [
        ("Config File", str(cfg.CONFIG_PATH)),
        ("Drone ID", f"#{config.drone_id}"),
        ("Session Key", config.masked_key),
    ])

    pid = cfg.read_pid_file()
    if not (pid and cfg.is_process_running(pid)):
        print("\n  ○ Mining Stopped")
        return 0

    print(f"\n  ● Mining Active (PID: {pid})")
    state = cfg.RuntimeStateStore().load()
    if state:
        stats = state.stats
        print_stats_box("Current Session", [
            ("Runtime", format_duration(time.time() - state.start_time)),
            ("Blocks Destroyed", f"{stats.blocks_destroyed:,}"),
            ("Already Destroyed", f"{stats.blocks_already_destroyed:,}"),
            ("Errors", f"{stats.errors:,}"),
            ("Rate", f"{stats.rate():.2f} blocks/sec"),
            ("Cap Refreshes", f"{stats.capability_refreshes:,}"),
        ])
    return 0


def detect_drone(session_address):
    """Find the drone whose session key is `session_address`. Returns an id or None."""
    network = NetworkConfigCache().get()
    # Read-only scan; a throwaway key is enough to build the client
    client = ContractClient.from_network(network, Account.create().key)

    print(f"🔍 Searching for drones authorized for {session_address}...")
    drones = client.find_drones_for_session_key(session_address)
    if not drones:
        print("❌ No drones found for this session key.")
        print("   Make sure you:")
        print("     1. Have a Demolition Drone NFT")
        print("     2. Set this address as its session key on megacorp.global")
        return None
    if len(drones) > 1:
        print(f"   Found {len(drones)} drones: {', '.join(f'#{d}' for d in drones)}")
        print(f"   Using #{drones[0]} (pass --drone-id to choose another)")
    return drones[0]


def cmd_config(args):
    if args.generate:
        acct = Account.create()
        session_key = "0x" + acct.key.hex().removeprefix("0x")
        print("\nNEW SESSION WALLET CREATED")
        print(f"Address:     {acct.address}")
        print(f"Private Key: {session_key}")
        print("-" * 60)
        print("Action Required: Fund this address with ETH for gas and set it")
        print("as the session key on your drone before starting.")
        print("-" * 60)
    elif args.import_key:
        try:
            session_key = cfg.normalize_session_key(args.import_key)
            acct = Account.from_key(session_key)
        except (ValueError, TypeError) as e:
            print(f"❌ Invalid Private Key: {e}")
            return 1
    else:
        try:
            config = cfg.load_config()
        except (ValueError, OSError) as e:
            print(f"❌ {e}")
            print("   Pass --generate or --import-key to create a config.")
            return 1
        session_key = config.session_key
        acct = Account.from_key(session_key)

    drone_id = args.drone_id
    if drone_id is None:
        try:
            drone_id = detect_drone(acct.address)
        except (ConnectionError, ValueError, OSError) as e:
            print(f"❌ Drone detection failed: {e}")
            return 1
        if drone_id is None:
            return 1

    config = cfg.Config(session_key=session_key, drone_id=drone_id)
    cfg.save_config(config)

    print_stats_box("Configuration Saved", [
        ("Session Wallet", acct.address),
        ("Drone ID", f"#{drone_id}"),
        ("Config File", str(cfg.CONFIG_PATH)),
    ])
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="rrs-terminal", description="MegaCube reclamation miner")
    parser.add_argument("--env", "-e", default=".env", help="Path to .env file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("start", help="Start mining").set_defaults(func=cmd_start)
    sub.add_parser("stop", help="Stop mining").set_defaults(func=cmd_stop)
    sub.add_parser("status", help="Show mining status").set_defaults(func=cmd_status)

    p_config = sub.add_parser("config", help="Set up session key and drone")
    keys = p_config.add_mutually_exclusive_group()
    keys.add_argument("--generate", action="store_true", help="Create a new session wallet")
    keys.add_argument("--import-key", type=str, default=None, help="Use an existing session key")
    p_config.add_argument("--drone-id", type=int, default=None, help="Drone token id (auto-detected if omitted)")
    p_config.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    # Settings and paths are re-read from the environment after this
    cfg.load_env(Path(args.env).resolve())

    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
