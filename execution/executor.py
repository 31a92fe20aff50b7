"""
execution/executor.py - Submit, track and cancel arbitrage transactions.

SUBMISSION FLOW (TransactionStateMachine):
    BUILT -> GAS_PRICED -> SIGNED -> SUBMITTED
    then, from polling: CONFIRMED | REVERTED, or TIMED_OUT from the waiter

Degraded or structurally invalid transactions are refused before anything
is priced, signed or sent. Reverts and timeouts are reported, never
retried here.

Cancellation replaces a pending transaction with a zero-value self-transfer
at the same nonce, every fee field raised by CANCEL_GAS_BUMP_PCT.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from chains.providers import RPCProvider
from core.constants import (
    CANCEL_GAS_BUMP_PCT,
    CANCEL_GAS_LIMIT,
    TX_POLL_INTERVAL_SECONDS,
)
from core.exceptions import (
    ArbyError,
    ErrorCode,
    ExecutionError,
    TransactionTimeoutError,
)
from core.logging import get_logger, log_error, log_transaction
from core.math import bump_by_percent, parse_hex_int
from core.models import ArbitrageTransaction, TransactionResult
from execution.gas import GasOptimizer, GasPrice
from execution.mev_share import MevShareClient
from execution.signer import TransactionSigner
from execution.state_machine import TransactionStateMachine, TxState
from execution.validation import validate_transaction

logger = get_logger(__name__)

_FEE_FIELDS = ("gasPrice", "maxFeePerGas", "maxPriorityFeePerGas")


@dataclass
class ExecutionHandle:
    """A submitted transaction and the state machine that tracked it there."""
    tx_hash: str
    machine: TransactionStateMachine
    route: str

    @property
    def state(self) -> TxState:
        return self.machine.state


def _advance(
    machine: Optional[TransactionStateMachine],
    new_state: TxState,
    reason: str = "",
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    if machine is None or machine.state == new_state:
        return
    if not machine.can_transition_to(new_state):
        logger.warning(
            f"Ignoring {machine.state.value} -> {new_state.value} for {machine.tx_hash}",
            extra={"context": {"opportunity_id": machine.opportunity_id}},
        )
        return
    machine.transition_to(new_state, reason=reason, metadata=metadata)


def build_cancellation_request(
    original: Dict[str, Any],
    chain_id: int,
    bump_pct: int = CANCEL_GAS_BUMP_PCT,
) -> Dict[str, Any]:
    """
    Replacement for a pending transaction, as an unsigned dict.

    Args:
        original: Transaction as returned by eth_getTransactionByHash
        chain_id: Chain to sign for
        bump_pct: Percent added to every fee field present on the original
    """
    sender = original["from"]
    request: Dict[str, Any] = {
        "from": sender,
        "to": sender,
        "value": 0,
        "data": "0x",
        "nonce": parse_hex_int(original["nonce"]),
        "gas": CANCEL_GAS_LIMIT,
        "chainId": chain_id,
    }

    if original.get("maxFeePerGas") is not None:
        request["type"] = 2
        request["maxFeePerGas"] = bump_by_percent(parse_hex_int(original["maxFeePerGas"]), bump_pct)
        request["maxPriorityFeePerGas"] = bump_by_percent(
            parse_hex_int(original.get("maxPriorityFeePerGas")), bump_pct
        )
    else:
        request["gasPrice"] = bump_by_percent(parse_hex_int(original.get("gasPrice")), bump_pct)
    return request


class TransactionExecutor:
    """
    Signs and submits built transactions and tracks them on-chain.

    Holds no per-transaction state: each call is independent, so different
    transactions can be driven concurrently.
    """

    def __init__(
        self,
        provider: RPCProvider,
        gas_optimizer: GasOptimizer,
        chain_id: int,
        signer: Optional[TransactionSigner] = None,
        mev_share: Optional[MevShareClient] = None,
        poll_interval: float = TX_POLL_INTERVAL_SECONDS,
        gas_bump_pct: int = CANCEL_GAS_BUMP_PCT,
    ):
        self.provider = provider
        self.gas_optimizer = gas_optimizer
        self.chain_id = chain_id
        self.signer = signer
        self.mev_share = mev_share
        self.poll_interval = poll_interval
        self.gas_bump_pct = gas_bump_pct

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def _require_signer(self) -> TransactionSigner:
        if self.signer is None:
            raise ExecutionError(
                code=ErrorCode.EXEC_NO_SIGNER,
                message="No signing key configured",
            )
        return self.signer

    def _populate(self, tx: ArbitrageTransaction, nonce: int, gas_price: GasPrice) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "to": tx.to_address,
            "data": tx.payload,
            "value": tx.request.get("value", 0),
            "gas": tx.gas_limit,
            "nonce": nonce,
            "chainId": self.chain_id,
        }
        if gas_price.is_eip1559:
            request["type"] = 2
            request["maxFeePerGas"] = gas_price.max_fee_per_gas
            request["maxPriorityFeePerGas"] = gas_price.max_priority_fee_per_gas
        else:
            request["gasPrice"] = gas_price.gas_price_wei
        return request

    async def execute_transaction(self, tx: ArbitrageTransaction) -> ExecutionHandle:
        """
        Price, sign and submit tx. Returns a handle holding the transaction
        hash and its state machine (SUBMITTED) once the network or the
        private relay accepts it. On failure the machine's record rides in
        the error details under "transaction".

        Raises:
            ExecutionError: Degraded transaction, no signer, or submission failed
            ValidationError: Structurally invalid transaction
        """
        if tx.degraded:
            raise ExecutionError(
                code=ErrorCode.EXEC_DEGRADED_TX,
                message="Refusing to submit a degraded transaction",
                details={"opportunity_id": tx.opportunity_id, "reason": tx.degraded_reason},
            )
        validate_transaction(tx)
        signer = self._require_signer()

        machine = TransactionStateMachine(opportunity_id=tx.opportunity_id)
        try:
            gas_price = await self.gas_optimizer.get_optimal_gas_price()
            nonce = await self.provider.get_transaction_count(signer.address, "pending")
            request = self._populate(tx, nonce, gas_price)
            machine.transition_to(TxState.GAS_PRICED, metadata={"nonce": nonce})

            signed = signer.sign(request)
            machine.tx_hash = signed.tx_hash
            machine.transition_to(TxState.SIGNED)

            if tx.use_private_channel and self.mev_share is not None and self.mev_share.enabled:
                tx_hash = await self.mev_share.send_private_transaction(signed.raw_hex)
                route = "mev_share"
            else:
                tx_hash = await self.provider.send_raw_transaction(signed.raw_hex)
                route = "public"
        except ArbyError as e:
            machine.fail(str(e))
            log_error(logger, e.code.value, f"Submission failed for {tx.opportunity_id}: {e.message}")
            if isinstance(e, ExecutionError):
                e.details["transaction"] = machine.to_dict()
                raise
            raise ExecutionError(
                code=ErrorCode.EXEC_SUBMIT_FAILED,
                message=f"Submission failed: {e.message}",
                details={
                    "opportunity_id": tx.opportunity_id,
                    "cause": e.code.value,
                    "transaction": machine.to_dict(),
                },
            )

        machine.tx_hash = tx_hash or signed.tx_hash
        machine.transition_to(TxState.SUBMITTED, metadata={"route": route})
        log_transaction(
            logger,
            machine.tx_hash,
            machine.state.value,
            opportunity_id=tx.opportunity_id,
            route=route,
            nonce=nonce,
        )
        return ExecutionHandle(tx_hash=machine.tx_hash, machine=machine, route=route)

    # =========================================================================
    # STATUS
    # =========================================================================

    async def get_transaction_status(self, tx_hash: str) -> TransactionResult:
        """
        Current on-chain status. A missing receipt means pending.

        Raises:
            InfraError: If the node cannot be reached
        """
        receipt = await self.provider.get_transaction_receipt(tx_hash)
        if receipt is None:
            return TransactionResult(
                tx_hash=tx_hash,
                state=TxState.SUBMITTED.value,
                error="Transaction pending",
            )

        gas_used = parse_hex_int(receipt.get("gasUsed"))
        effective_price = parse_hex_int(receipt.get("effectiveGasPrice"))
        success = parse_hex_int(receipt.get("status")) != 0

        return TransactionResult(
            tx_hash=tx_hash,
            state=(TxState.CONFIRMED if success else TxState.REVERTED).value,
            success=success,
            block_number=parse_hex_int(receipt.get("blockNumber")) if receipt.get("blockNumber") else None,
            gas_used=gas_used,
            actual_cost_wei=gas_used * effective_price,
            error=None if success else "Transaction reverted",
        )

    async def wait_for_transaction(
        self,
        tx_hash: str,
        timeout_seconds: float,
        machine: Optional[TransactionStateMachine] = None,
    ) -> TransactionResult:
        """
        Poll until the transaction is mined.

        When machine is given it is moved to CONFIRMED, REVERTED or
        TIMED_OUT to match the outcome.

        Raises:
            TransactionTimeoutError: Once timeout_seconds have elapsed without
                a mined receipt. The transaction itself stays pending.
        """
        start = time.monotonic()
        deadline = start + timeout_seconds

        while True:
            result = await self.get_transaction_status(tx_hash)
            if not result.is_pending:
                _advance(
                    machine,
                    TxState(result.state),
                    reason=result.error or "",
                    metadata={"block_number": result.block_number, "gas_used": result.gas_used},
                )
                log_transaction(logger, tx_hash, result.state, gas_used=result.gas_used)
                return result

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval, remaining))

        logger.warning(
            f"Timed out waiting for {tx_hash}",
            extra={"context": {"tx_hash": tx_hash, "elapsed_s": round(time.monotonic() - start, 3)}},
        )
        _advance(machine, TxState.TIMED_OUT, reason=f"No receipt after {timeout_seconds}s")
        raise TransactionTimeoutError(tx_hash, timeout_seconds)

    # =========================================================================
    # CANCELLATION
    # =========================================================================

    async def cancel_transaction(
        self,
        tx_hash: str,
        machine: Optional[TransactionStateMachine] = None,
    ) -> str:
        """
        Replace a pending transaction with a higher-fee self-transfer.

        Returns the replacement's hash. Which of the two lands is for the
        caller to find out. A given machine is moved to CANCELLED.

        Raises:
            ExecutionError: Unknown tx, already mined, no signer, or signer
                is not the original sender
        """
        signer = self._require_signer()

        original = await self.provider.get_transaction(tx_hash)
        if original is None:
            raise ExecutionError(
                code=ErrorCode.EXEC_TX_NOT_FOUND,
                message=f"Transaction {tx_hash} not found",
            )
        if original.get("blockNumber"):
            raise ExecutionError(
                code=ErrorCode.EXEC_NOT_PENDING,
                message=f"Transaction {tx_hash} is already mined",
                details={"block_number": original.get("blockNumber")},
            )
        if str(original.get("from", "")).lower() != signer.address.lower():
            raise ExecutionError(
                code=ErrorCode.EXEC_SENDER_MISMATCH,
                message="Signer is not the sender of the original transaction",
                details={"sender": original.get("from"), "signer": signer.address},
            )

        request = build_cancellation_request(original, self.chain_id, self.gas_bump_pct)
        signed = signer.sign(request)
        replacement = await self.provider.send_raw_transaction(signed.raw_hex) or signed.tx_hash
        _advance(machine, TxState.CANCELLED, metadata={"replacement": replacement, "nonce": request["nonce"]})

        log_transaction(
            logger,
            replacement,
            TxState.CANCELLED.value,
            replaces=tx_hash,
            nonce=request["nonce"],
        )
        return replacement
