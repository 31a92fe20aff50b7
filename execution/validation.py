"""
execution/validation.py - Structural checks run before any submission.
"""

import re

from chains.abi import is_valid_address
from core.exceptions import ValidationError
from core.models import ArbitrageTransaction

# 0x + 4-byte selector + whole bytes of arguments
_PAYLOAD_RE = re.compile(r"^0x[0-9a-fA-F]{8}(?:[0-9a-fA-F]{2})*$")


def is_well_formed_payload(payload: str) -> bool:
    return isinstance(payload, str) and bool(_PAYLOAD_RE.match(payload))


def validate_transaction(tx: ArbitrageTransaction) -> None:
    """
    Check recipient, gas limit and payload shape.

    Raises:
        ValidationError: On the first violated rule
    """
    if not tx.to_address or not is_valid_address(tx.to_address):
        raise ValidationError(
            "Transaction recipient is missing or invalid",
            details={"opportunity_id": tx.opportunity_id, "to": tx.to_address},
        )
    if tx.gas_limit <= 0:
        raise ValidationError(
            "Transaction gas limit must be positive",
            details={"opportunity_id": tx.opportunity_id, "gas_limit": tx.gas_limit},
        )
    if not is_well_formed_payload(tx.payload):
        raise ValidationError(
            "Transaction payload is not well-formed call data",
            details={"opportunity_id": tx.opportunity_id, "payload": tx.payload[:18]},
        )
