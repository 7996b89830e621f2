"""
RRS Terminal
============
Autonomous reclamation miner for the MegaCube.

Usage:
    from rrs_terminal import Miner, CapabilityCache, TransactionExecutor
"""

from .battery import BatteryTracker
from .capability import CapabilityCache, CapabilityError
from .executor import TransactionExecutor
from .miner import Miner, MinerState, SetupError

__version__ = "1.0.0"
__all__ = [
    "BatteryTracker",
    "CapabilityCache",
    "CapabilityError",
    "Miner",
    "MinerState",
    "SetupError",
    "TransactionExecutor",
]
