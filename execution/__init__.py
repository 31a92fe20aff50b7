# PATH: execution/__init__.py
"""
Transaction lifecycle layer.

- state_machine: BUILT -> ... -> CONFIRMED/REVERTED/TIMED_OUT/CANCELLED
- gas: gas price strategies
- contracts: arbitrage contract and flash-loan encoding
- builder: opportunity -> unsent transaction (with degraded mode)
- validation: pre-submission structural checks
- signer: local eth-account signing
- executor: submit / track / cancel
- mev_share: private order-flow relay client
"""

from execution.builder import TransactionBuilder
from execution.contracts import AaveFlashLoan, ArbitrageContract
from execution.executor import ExecutionHandle, TransactionExecutor, build_cancellation_request
from execution.gas import GasEstimate, GasOptimizer, GasPrice
from execution.mev_share import BundleStats, MevShareClient, PrivacyHints
from execution.signer import SignedTransaction, TransactionSigner
from execution.state_machine import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    StateTransition,
    TransactionStateMachine,
    TxState,
)
from execution.validation import validate_transaction

__all__ = [
    # State machine
    "TxState",
    "TransactionStateMachine",
    "StateTransition",
    "InvalidTransitionError",
    "VALID_TRANSITIONS",
    # Gas
    "GasEstimate",
    "GasOptimizer",
    "GasPrice",
    # Build
    "AaveFlashLoan",
    "ArbitrageContract",
    "TransactionBuilder",
    "validate_transaction",
    # Submit
    "SignedTransaction",
    "TransactionSigner",
    "ExecutionHandle",
    "TransactionExecutor",
    "build_cancellation_request",
    # Private relay
    "BundleStats",
    "MevShareClient",
    "PrivacyHints",
]
