"""
execution/signer.py - Local transaction signing with eth-account.

The private key never leaves this object; only the address, raw signed
bytes and hash are exposed.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_account import Account

from chains.abi import checksum
from core.exceptions import ErrorCode, ExecutionError


@dataclass(frozen=True)
class SignedTransaction:
    raw_hex: str
    tx_hash: str


class TransactionSigner:
    """Signs transaction dicts with a single wallet key."""

    def __init__(self, private_key: str):
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ExecutionError(
                code=ErrorCode.EXEC_NO_SIGNER,
                message=f"Invalid private key: {type(e).__name__}",
            )

    @classmethod
    def from_env(cls, var: str = "ETHEREUM_PRIVATE_KEY") -> Optional["TransactionSigner"]:
        """Signer from the environment, or None when the variable is unset."""
        key = os.environ.get(var)
        return cls(key) if key else None

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, tx: Dict[str, Any]) -> SignedTransaction:
        """Sign a fully populated transaction dict (nonce, gas, fees, chainId)."""
        fields = {k: v for k, v in tx.items() if k != "from"}
        if "to" in fields and fields["to"]:
            fields["to"] = checksum(fields["to"])
        signed = self._account.sign_transaction(fields)
        return SignedTransaction(
            raw_hex="0x" + bytes(signed.raw_transaction).hex(),
            tx_hash="0x" + bytes(signed.hash).hex(),
        )
