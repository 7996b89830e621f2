"""
Transaction Executor: simulate, then submit, one destroyBlock.
"""

import logging

from .classifier import FailureKind, classify_failure, describe_failure, truncate
from .contract import DESTROY_GAS_LIMIT, RECEIPT_TIMEOUT_SECONDS
from .models import DestroyResult

logger = logging.getLogger("Executor")


def _failed(message):
    kind = classify_failure(message)
    return DestroyResult(
        success=False,
        already_processed=kind is FailureKind.ALREADY_PROCESSED,
        error=describe_failure(message),
        kind=kind,
    )


class TransactionExecutor:
    """
    Runs a destroyBlock against the chain client.

    A failed simulation is classified and returned without ever
    broadcasting. No retries happen here; the miner decides what to do
    with the outcome.
    """

    def __init__(self, client, gas=DESTROY_GAS_LIMIT, receipt_timeout=RECEIPT_TIMEOUT_SECONDS):
        self.client = client
        self.gas = gas
        self.receipt_timeout = receipt_timeout

    def destroy(self, license_id, container_id, block_id, bundle, fee) -> DestroyResult:
        # 1. Dry run
        try:
            self.client.simulate_destroy(license_id, container_id, block_id, bundle, fee)
        except Exception as sim_error:
            message = str(sim_error)
            logger.debug(f"[Sim] Raw error: {truncate(message)}")
            return _failed(message)

        # 2. Real submission
        tx_hash = None
        try:
            tx_hash = self.client.submit_destroy(
                license_id, container_id, block_id, bundle, fee, gas=self.gas
            )
            succeeded = self.client.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            result = _failed(str(e))
            result.tx_hash = tx_hash
            return result

        if succeeded:
            return DestroyResult(success=True, tx_hash=tx_hash)

        return DestroyResult(
            success=False,
            tx_hash=tx_hash,
            error="Transaction reverted on-chain",
            kind=FailureKind.REVERTED_ON_CHAIN,
        )
