"""
Chain client for the MegaCube, OperatorLicense and CUBED contracts.
"""

import logging
import concurrent.futures

from eth_account import Account
from web3 import Web3

from . import config as cfg
from .models import LicenseStatus, ZERO_ADDRESS

logger = logging.getLogger("Contract")

DESTROY_GAS_LIMIT = 500_000
RECEIPT_TIMEOUT_SECONDS = 30
DISCOVERY_BATCH_SIZE = 50
DISCOVERY_MAX_IDS = 5000

CAPABILITY_TUPLE = {
    "name": "cap",
    "type": "tuple",
    "components": [
        {"name": "wallet", "type": "address"},
        {"name": "allowedModes", "type": "uint8"},
        {"name": "nonce", "type": "uint64"},
        {"name": "issuedAt", "type": "uint64"},
        {"name": "expiresAt", "type": "uint64"},
        {"name": "budget", "type": "uint16"},
    ],
}

MEGACUBE_ABI = [
    {
        "name": "destroyBlock",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {"name": "licenseId", "type": "uint256"},
            {"name": "containerId", "type": "uint256"},
            {"name": "blockId", "type": "uint256"},
            CAPABILITY_TUPLE,
            {"name": "signature", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "name": "jackpotFeePerBlockWei",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "getUnprocessedBalance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "wallet", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Minimal ABI for 'balanceOf'
CUBED_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    }
]

LICENSE_ABI = [
    {
        "name": "isAuthorizedFor",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "tokenId", "type": "uint256"},
            {"name": "operator", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "ownerOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "totalSupply",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "getSessionKey",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "getLicense",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [
            {
                "name": "license",
                "type": "tuple",
                "components": [
                    {"name": "tier", "type": "uint8"},
                    {"name": "level", "type": "uint8"},
                    {"name": "maxBattery", "type": "uint32"},
                    {"name": "currentBattery", "type": "uint32"},
                    {"name": "totalBlocksDestroyed", "type": "uint64"},
                    {"name": "cubedEarned", "type": "uint64"},
                    {"name": "shiftStartedTs", "type": "uint64"},
                    {"name": "lastDepletedTs", "type": "uint64"},
                    {"name": "upgradeInProgress", "type": "bool"},
                    {"name": "upgradeTargetLevel", "type": "uint8"},
                    {"name": "upgradeBlocksAtStart", "type": "uint64"},
                ],
            }
        ],
    },
]


class ContractClient:
    """
    Read/write access to the game contracts for one session wallet.

    Usage:
        client = ContractClient.from_network(network_config, session_key)
        status = client.get_license_status(42)
    """

    def __init__(self, w3, account, chain_id, megacube_address, license_address, cubed_address=""):
        self.w3 = w3
        self.account = account
        self.address = account.address
        self.chain_id = chain_id

        self.megacube = w3.eth.contract(address=Web3.to_checksum_address(megacube_address), abi=MEGACUBE_ABI)
        self.license = w3.eth.contract(address=Web3.to_checksum_address(license_address), abi=LICENSE_ABI)
        self.cubed = (
            w3.eth.contract(address=Web3.to_checksum_address(cubed_address), abi=CUBED_ABI)
            if cubed_address else None
        )

    @classmethod
    def from_network(cls, network_config, session_key, timeout=None):
        timeout = cfg.REQUEST_TIMEOUT if timeout is None else timeout
        w3 = Web3(Web3.HTTPProvider(network_config.rpc_url, request_kwargs={"timeout": timeout}))
        return cls(
            w3,
            Account.from_key(session_key),
            network_config.chain_id,
            network_config.megacube_address,
            network_config.license_address,
            network_config.cubed_address,
        )

    # --- READS ---

    def get_balance(self, address=None) -> int:
        """Native gas balance in wei (session wallet by default)."""
        return self.w3.eth.get_balance(Web3.to_checksum_address(address or self.address))

    def is_authorized(self, drone_id, wallet) -> bool:
        return self.license.functions.isAuthorizedFor(drone_id, Web3.to_checksum_address(wallet)).call()

    def get_license_status(self, drone_id) -> LicenseStatus:
        lic = self.license.functions.getLicense(drone_id).call()
        return LicenseStatus(
            tier=lic[0],
            level=lic[1],
            max_battery=lic[2],
            current_battery=lic[3],
            total_destroyed=lic[4],
        )

    def get_owner(self, drone_id) -> str:
        return self.license.functions.ownerOf(drone_id).call()

    def get_fee_per_block(self) -> int:
        """Jackpot fee per block in wei. 0 when the lookup fails."""
        try:
            return self.megacube.functions.jackpotFeePerBlockWei().call()
        except Exception as e:
            logger.warning(f"⚠️ Fee lookup failed, assuming 0: {e}")
            return 0

    def get_cube_balance(self, wallet=None) -> int:
        """Inscribed CUBE balance."""
        if self.cubed is None:
            return 0
        try:
            return self.cubed.functions.balanceOf(Web3.to_checksum_address(wallet or self.address)).call()
        except Exception:
            return 0

    def get_unprocessed_cube_balance(self, wallet=None) -> int:
        """CUBE earned but not yet inscribed."""
        try:
            return self.megacube.functions.getUnprocessedBalance(
                Web3.to_checksum_address(wallet or self.address)
            ).call()
        except Exception:
            return 0

    # --- DESTROY ---

    def _destroy_call(self, license_id, container_id, block_id, bundle):
        return self.megacube.functions.destroyBlock(
            license_id,
            container_id,
            block_id,
            bundle.capability.as_tuple(),
            Web3.to_bytes(hexstr=bundle.signature),
        )

    def simulate_destroy(self, license_id, container_id, block_id, bundle, fee):
        """eth_call the destroy. Raises with the revert reason if it would fail."""
        self._destroy_call(license_id, container_id, block_id, bundle).call(
            {"from": self.address, "value": fee}
        )

    def submit_destroy(self, license_id, container_id, block_id, bundle, fee, gas=DESTROY_GAS_LIMIT) -> str:
        """Sign and broadcast the destroy. Returns the 0x transaction hash."""
        tx = self._destroy_call(license_id, container_id, block_id, bundle).build_transaction({
            "from": self.address,
            "value": fee,
            "gas": gas,
            "nonce": self.w3.eth.get_transaction_count(self.address, "pending"),
            "chainId": self.chain_id,
        })

        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash, timeout=RECEIPT_TIMEOUT_SECONDS) -> bool:
        """True if the transaction succeeded."""
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        return receipt["status"] == 1

    # --- DISCOVERY ---

    def _session_key_of(self, token_id):
        try:
            return token_id, self.license.functions.getSessionKey(token_id).call()
        except Exception:
            return token_id, None

    def find_drones_for_session_key(self, session_address, batch_size=DISCOVERY_BATCH_SIZE):
        """
        Scan license ids for drones whose session key is `session_address`.

        Lookups run concurrently inside a batch; each batch completes
        before the next one starts.
        """
        try:
            total_supply = self.license.functions.totalSupply().call()
        except Exception:
            total_supply = 1000

        max_to_check = min(total_supply + 10, DISCOVERY_MAX_IDS)
        wanted = session_address.lower()
        found = []

        with concurrent.futures.ThreadPoolExecutor(max_workers=batch_size) as pool:
            for start in range(0, max_to_check, batch_size):
                ids = range(start, min(start + batch_size, max_to_check))
                for token_id, session_key in pool.map(self._session_key_of, ids):
                    if session_key and session_key != ZERO_ADDRESS and session_key.lower() == wanted:
                        found.append(token_id)

        logger.info(f"🔍 Scanned {max_to_check} licenses, {len(found)} match {session_address}")
        return found
