"""
execution/contracts.py - Contract-call and flash-loan capabilities.

ArbitrageContract encodes calls to the deployed arbitrage executor and wraps
them into unsent transaction requests. AaveFlashLoan sizes and encodes Aave
V2 flash loans. Neither touches the network.
"""

from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from eth_abi.exceptions import EncodingError

from chains.abi import checksum, encode_call, is_valid_address
from core.constants import AAVE_FLASH_LOAN_FEE_BPS
from core.exceptions import ArbyError, ErrorCode, ValidationError
from core.math import bps_of, denormalize_from_decimals
from core.models import TrackedAsset


# executeArbitrage(assets, amounts, modes, tokenPath, dexPath, slippageBps)
ARBITRAGE_FUNCTIONS: Dict[str, str] = {
    "executeArbitrage": "executeArbitrage(address[],uint256[],uint256[],address[],string[],uint256)",
    "authorizeCaller": "authorizeCaller(address)",
    "unauthorizeCaller": "unauthorizeCaller(address)",
}

FLASH_LOAN_SIGNATURE = "flashLoan(address,address[],uint256[],uint256[],address,bytes,uint16)"


class ArbitrageContract:
    """Deployed arbitrage executor."""

    def __init__(self, address: str):
        if not is_valid_address(address):
            raise ValidationError(
                "Invalid arbitrage contract address",
                details={"address": address},
            )
        self.address = checksum(address)

    def encode_call(self, function: str, args: Sequence[Any]) -> str:
        """
        ABI-encode a call to one of the executor's functions.

        Raises:
            ArbyError: CONTRACT_UNKNOWN_FUNCTION or CONTRACT_ENCODING_FAILED
        """
        signature = ARBITRAGE_FUNCTIONS.get(function)
        if signature is None:
            raise ArbyError(
                code=ErrorCode.CONTRACT_UNKNOWN_FUNCTION,
                message=f"Unknown contract function: {function}",
                details={"known": sorted(ARBITRAGE_FUNCTIONS)},
            )
        try:
            return encode_call(signature, args)
        except (EncodingError, TypeError, ValueError) as e:
            raise ArbyError(
                code=ErrorCode.CONTRACT_ENCODING_FAILED,
                message=f"Failed to encode {function}: {e}",
            )

    def build_request(self, payload: str, sender: Optional[str] = None) -> Dict[str, Any]:
        """Unsent transaction request calling the executor with payload."""
        request: Dict[str, Any] = {"to": self.address, "data": payload, "value": 0}
        if sender:
            request["from"] = checksum(sender)
        return request


class AaveFlashLoan:
    """Aave V2 lending pool flash loans."""

    def __init__(self, lending_pool: str, max_borrow_amount: Decimal):
        self.lending_pool = checksum(lending_pool)
        self.max_borrow_amount = max_borrow_amount

    def fee(self, token: TrackedAsset, amount: int) -> int:
        """Premium owed on `amount` (smallest units). 0.09% on Aave V2."""
        return bps_of(amount, AAVE_FLASH_LOAN_FEE_BPS)

    def max_borrowable(self, token: TrackedAsset) -> int:
        """Configured borrow cap in the token's smallest units."""
        return denormalize_from_decimals(self.max_borrow_amount, token.decimals)

    def build_loan_transaction(
        self,
        tokens: Sequence[str],
        amounts: Sequence[int],
        modes: Sequence[int],
        receiver: str,
        extra_data: bytes = b"",
        on_behalf_of: Optional[str] = None,
        referral_code: int = 0,
    ) -> Dict[str, Any]:
        """
        Unsent flashLoan() request against the lending pool.

        Raises:
            ValidationError: If tokens, amounts and modes differ in length
        """
        if not (len(tokens) == len(amounts) == len(modes)):
            raise ValidationError(
                "tokens, amounts and modes must have equal length",
                details={"tokens": len(tokens), "amounts": len(amounts), "modes": len(modes)},
            )

        payload = encode_call(
            FLASH_LOAN_SIGNATURE,
            [
                checksum(receiver),
                [checksum(t) for t in tokens],
                list(amounts),
                list(modes),
                checksum(on_behalf_of or receiver),
                extra_data,
                referral_code,
            ],
        )
        return {"to": self.lending_pool, "data": payload, "value": 0}
