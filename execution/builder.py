"""
execution/builder.py - Opportunity -> unsent arbitrage transaction.

BUILD FLOW:
1. token path from the opportunity, venue path = [source, target]
2. flash-loan principal = gross profit x 2 whole units of the first token,
   capped by the lending pool's borrow limit; mode 0 (no debt)
3. slippage tolerance % -> basis points
4. executeArbitrage(...) payload through the contract capability
5. gas limit via eth_estimateGas (falls back to the configured limit)
6. gas price via GasOptimizer

Without a deployed contract, or when encoding fails, the builder still
returns a transaction, flagged degraded, with a placeholder payload sent to
the wallet itself. The executor refuses degraded transactions.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from eth_abi import encode

from chains.providers import RPCProvider
from core.constants import (
    DEFAULT_GAS_LIMIT,
    FLASH_LOAN_MODE_NO_DEBT,
    FLASH_LOAN_PRINCIPAL_MULTIPLIER,
    PLACEHOLDER_SELECTOR,
)
from core.exceptions import ArbyError
from core.logging import get_logger
from core.math import denormalize_from_decimals, percent_to_bps
from core.models import ArbitrageOpportunity, ArbitrageTransaction, TrackedAsset
from execution.contracts import AaveFlashLoan, ArbitrageContract
from execution.gas import GasOptimizer

logger = get_logger(__name__)


def placeholder_payload(tokens: List[str], amounts: List[int], venues: List[str]) -> str:
    """Placeholder selector followed by the encoded path arguments."""
    body = encode(["address[]", "uint256[]", "string[]"], [tokens, amounts, venues])
    return PLACEHOLDER_SELECTOR + body.hex()


class TransactionBuilder:
    """Builds arbitrage transactions for selected opportunities."""

    def __init__(
        self,
        provider: RPCProvider,
        gas_optimizer: GasOptimizer,
        wallet_address: str,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        slippage_tolerance: Decimal = Decimal("0.5"),
        use_private_channel: bool = False,
        contract: Optional[ArbitrageContract] = None,
        flash_loan: Optional[AaveFlashLoan] = None,
    ):
        self.provider = provider
        self.gas_optimizer = gas_optimizer
        self.wallet_address = wallet_address
        self.gas_limit = gas_limit
        self.slippage_bps = percent_to_bps(slippage_tolerance)
        self.use_private_channel = use_private_channel
        self.contract = contract
        self.flash_loan = flash_loan

    def flash_loan_principal(self, opportunity: ArbitrageOpportunity, loan_token: TrackedAsset) -> int:
        """Loan size in the loan token's smallest units."""
        principal = denormalize_from_decimals(
            opportunity.gross_profit_usd * FLASH_LOAN_PRINCIPAL_MULTIPLIER,
            loan_token.decimals,
        )
        if self.flash_loan is not None:
            principal = min(principal, self.flash_loan.max_borrowable(loan_token))
        return principal

    async def build_transaction(self, opportunity: ArbitrageOpportunity) -> ArbitrageTransaction:
        """
        Build an unsent transaction for opportunity.

        Raises:
            ExecutionError: If no gas price can be determined
        """
        loan_token = opportunity.path[0]
        token_path = [asset.address for asset in opportunity.path]
        venue_path = [opportunity.source_venue.value, opportunity.target_venue.value]

        principal = self.flash_loan_principal(opportunity, loan_token)
        amounts = [principal]
        modes = [FLASH_LOAN_MODE_NO_DEBT]

        request: Optional[Dict[str, Any]] = None
        payload = ""
        degraded_reason: Optional[str] = None

        if self.contract is None:
            degraded_reason = "No arbitrage contract configured"
        else:
            try:
                payload = self.contract.encode_call(
                    "executeArbitrage",
                    [[loan_token.address], amounts, modes, token_path, venue_path, self.slippage_bps],
                )
                request = self.contract.build_request(payload, sender=self.wallet_address)
            except ArbyError as e:
                degraded_reason = f"Encoding failed: {e.message}"

        if degraded_reason is not None:
            logger.warning(
                f"Building degraded transaction for {opportunity.id}",
                extra={"context": {"opportunity_id": opportunity.id, "reason": degraded_reason}},
            )
            payload = placeholder_payload(token_path, amounts, venue_path)
            request = {
                "from": self.wallet_address,
                "to": self.wallet_address,
                "data": payload,
                "value": 0,
            }
            gas_limit = self.gas_limit
        else:
            gas_limit = await self._estimate_gas(request)

        request["gas"] = gas_limit
        gas_price = await self.gas_optimizer.get_optimal_gas_price()

        tx = ArbitrageTransaction(
            opportunity_id=opportunity.id,
            request=request,
            payload=payload,
            gas_limit=gas_limit,
            gas_price_wei=gas_price.gas_price_wei,
            total_cost_wei=gas_limit * gas_price.gas_price_wei,
            expected_profit_usd=opportunity.net_profit_usd,
            token_path=tuple(token_path),
            venue_path=tuple(venue_path),
            use_private_channel=self.use_private_channel,
            degraded=degraded_reason is not None,
            degraded_reason=degraded_reason,
        )
        logger.info(
            f"Built transaction for {opportunity.id}",
            extra={"context": tx.to_dict()},
        )
        return tx

    async def _estimate_gas(self, request: Dict[str, Any]) -> int:
        rpc_request = {k: hex(v) if isinstance(v, int) else v for k, v in request.items()}
        try:
            return await self.provider.estimate_gas(rpc_request)
        except ArbyError as e:
            logger.debug(
                "Gas estimation failed, using configured limit",
                extra={"context": {"error": str(e), "gas_limit": self.gas_limit}},
            )
            return self.gas_limit
