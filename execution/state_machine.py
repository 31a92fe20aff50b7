# PATH: execution/state_machine.py
"""
Transaction lifecycle state machine.

TRANSACTION STATE CONTRACT:
===========================

States (TxState):
  BUILT       → opportunity turned into a transaction request
  GAS_PRICED  → gas price fixed for this submission
  SIGNED      → signed with the wallet key
  SUBMITTED   → accepted by the public mempool or the private relay
  CONFIRMED   → mined with a success status
  REVERTED    → mined with a failure status
  TIMED_OUT   → caller stopped waiting (still pending on-chain)
  CANCELLED   → same-nonce replacement submitted
  FAILED      → could not be priced, signed or submitted

Transitions:
  BUILT       → GAS_PRICED  (price)
  GAS_PRICED  → SIGNED      (sign)
  SIGNED      → SUBMITTED   (submit)
  SUBMITTED   → CONFIRMED | REVERTED | TIMED_OUT | CANCELLED
  TIMED_OUT   → CONFIRMED | REVERTED | CANCELLED (late observation)
  BUILT, GAS_PRICED, SIGNED → FAILED

===========================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class TxState(str, Enum):
    """Transaction lifecycle states."""
    BUILT = "BUILT"
    GAS_PRICED = "GAS_PRICED"
    SIGNED = "SIGNED"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    REVERTED = "REVERTED"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


VALID_TRANSITIONS: Dict[TxState, List[TxState]] = {
    TxState.BUILT: [TxState.GAS_PRICED, TxState.FAILED],
    TxState.GAS_PRICED: [TxState.SIGNED, TxState.FAILED],
    TxState.SIGNED: [TxState.SUBMITTED, TxState.FAILED],
    TxState.SUBMITTED: [TxState.CONFIRMED, TxState.REVERTED, TxState.TIMED_OUT, TxState.CANCELLED],
    TxState.TIMED_OUT: [TxState.CONFIRMED, TxState.REVERTED, TxState.CANCELLED],
    TxState.CONFIRMED: [],  # Terminal state
    TxState.REVERTED: [],  # Terminal state
    TxState.CANCELLED: [],  # Terminal state
    TxState.FAILED: [],  # Terminal state
}

TERMINAL_STATES = frozenset(s for s, nxt in VALID_TRANSITIONS.items() if not nxt)


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: TxState
    to_state: TxState
    timestamp: str = ""
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


@dataclass
class TransactionStateMachine:
    """
    State of one transaction through build, submit and confirmation.

    Tracks current state and transition history.
    """
    opportunity_id: str
    state: TxState = TxState.BUILT
    tx_hash: Optional[str] = None
    history: List[StateTransition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can_transition_to(self, new_state: TxState) -> bool:
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition_to(
        self,
        new_state: TxState,
        reason: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StateTransition:
        """
        Move to new_state.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in VALID_TRANSITIONS.get(self.state, [])]}"
            )

        transition = StateTransition(
            from_state=self.state,
            to_state=new_state,
            reason=reason,
            metadata=metadata or {},
        )
        self.history.append(transition)
        self.state = new_state
        return transition

    def fail(self, reason: str) -> Optional[StateTransition]:
        """Move to FAILED if allowed from here; otherwise leave state alone."""
        if self.can_transition_to(TxState.FAILED):
            return self.transition_to(TxState.FAILED, reason=reason)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunity_id": self.opportunity_id,
            "state": self.state.value,
            "tx_hash": self.tx_hash,
            "history": [
                {
                    "from": t.from_state.value,
                    "to": t.to_state.value,
                    "timestamp": t.timestamp,
                    "reason": t.reason,
                }
                for t in self.history
            ],
        }
