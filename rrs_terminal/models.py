"""
Shared data types and MegaCube game constants.
"""

import random
import time
from dataclasses import dataclass, field, asdict
from typing import Optional

# Capability modes (bitflags)
CAP_MODE_MINE = 0x01
CAP_MODE_SPEND = 0x02
CAP_MODE_INSCRIBE = 0x04

# Game constants
CONTAINERS_PER_LAYER = 1_572_864
TILES_PER_CONTAINER = 1024

# Hierarchy: Face (6) -> Sector (256/face) -> Region (256/sector) -> Container (4/region)
SECTORS_PER_FACE = 256
REGIONS_PER_SECTOR = 256
CONTAINERS_PER_REGION = 4

FACE_NAMES = ["TOP", "BOTTOM", "NORTH", "SOUTH", "EAST", "WEST"]

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class Capability:
    """Capability struct as verified by the MegaCube contract."""
    wallet: str
    allowed_modes: int
    nonce: int
    issued_at: int     # seconds
    expires_at: int    # seconds, exclusive
    budget: int

    def as_tuple(self):
        """ABI tuple order: (wallet, allowedModes, nonce, issuedAt, expiresAt, budget)."""
        return (
            self.wallet,
            self.allowed_modes,
            self.nonce,
            self.issued_at,
            self.expires_at,
            self.budget,
        )

    @property
    def nonce_hex(self) -> str:
        return f"0x{self.nonce:016x}"


@dataclass(frozen=True)
class CapabilityBundle:
    capability: Capability
    signature: str

    @classmethod
    def from_response(cls, data: dict) -> "CapabilityBundle":
        """Parse the capability endpoint JSON. Numeric fields may arrive as strings."""
        cap = data["capability"]
        return cls(
            capability=Capability(
                wallet=cap["wallet"],
                allowed_modes=int(cap["allowedModes"]),
                nonce=int(cap["nonce"]),
                issued_at=int(cap["issuedAt"]),
                expires_at=int(cap["expiresAt"]),
                budget=int(cap["budget"]),
            ),
            signature=data["signature"],
        )


@dataclass
class LicenseStatus:
    tier: int
    level: int
    max_battery: int
    current_battery: int
    total_destroyed: int


@dataclass
class DestroyResult:
    success: bool
    tx_hash: Optional[str] = None
    already_processed: bool = False
    error: Optional[str] = None
    kind: Optional[object] = None  # FailureKind when the attempt failed


@dataclass
class MiningStats:
    blocks_destroyed: int = 0
    blocks_already_destroyed: int = 0
    errors: int = 0
    capability_refreshes: int = 0
    start_time: float = field(default_factory=time.time)

    def to_dict(self):
        return {
            "blocksDestroyed": self.blocks_destroyed,
            "blocksAlreadyDestroyed": self.blocks_already_destroyed,
            "errors": self.errors,
            "startTime": self.start_time,
            "capabilityRefreshes": self.capability_refreshes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MiningStats":
        return cls(
            blocks_destroyed=data.get("blocksDestroyed", 0),
            blocks_already_destroyed=data.get("blocksAlreadyDestroyed", 0),
            errors=data.get("errors", 0),
            capability_refreshes=data.get("capabilityRefreshes", 0),
            start_time=data.get("startTime", 0),
        )

    def elapsed(self, now=None) -> float:
        now = time.time() if now is None else now
        return max(now - self.start_time, 0.0)

    def rate(self, now=None) -> float:
        """Blocks destroyed per second."""
        elapsed = self.elapsed(now)
        return self.blocks_destroyed / elapsed if elapsed > 0 else 0.0


@dataclass
class RuntimeState:
    pid: int
    start_time: float
    stats: MiningStats

    def to_dict(self):
        return {"pid": self.pid, "startTime": self.start_time, "stats": self.stats.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "RuntimeState":
        return cls(
            pid=int(data["pid"]),
            start_time=data["startTime"],
            stats=MiningStats.from_dict(data.get("stats", {})),
        )


@dataclass(frozen=True)
class Location:
    face: int
    sector: int
    region: int
    container: int

    def to_container_id(self) -> int:
        return ((self.face * SECTORS_PER_FACE + self.sector) * REGIONS_PER_SECTOR
                + self.region) * CONTAINERS_PER_REGION + self.container

    def as_dict(self):
        return asdict(self)


def decompose_container(container_id: int) -> Location:
    """Split a container id into its display hierarchy."""
    container = container_id % CONTAINERS_PER_REGION
    rest = container_id // CONTAINERS_PER_REGION

    region = rest % REGIONS_PER_SECTOR
    rest //= REGIONS_PER_SECTOR

    sector = rest % SECTORS_PER_FACE
    face = rest // SECTORS_PER_FACE

    return Location(face=face, sector=sector, region=region, container=container)


def format_location(container_id: int, block_id: int) -> str:
    """e.g. 'NORTH/12/200/3:517'"""
    loc = decompose_container(container_id)
    face = FACE_NAMES[loc.face] if loc.face < len(FACE_NAMES) else f"F{loc.face}"
    return f"{face}/{loc.sector}/{loc.region}/{loc.container}:{block_id}"


def random_target(rng=random):
    """Independent uniform draws for container and block."""
    return rng.randrange(CONTAINERS_PER_LAYER), rng.randrange(TILES_PER_CONTAINER)


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    minutes, hours = seconds // 60, seconds // 3600
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
