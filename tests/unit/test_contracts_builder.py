"""
tests/unit/test_contracts_builder.py - Contract encoding, flash loans and the transaction builder.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import decode

from chains.abi import hex_to_bytes, selector
from core.constants import GasStrategy, VenueKind
from core.exceptions import ArbyError, ErrorCode, InfraError, ValidationError
from core.models import ArbitrageOpportunity
from execution.builder import TransactionBuilder, placeholder_payload
from execution.contracts import (
    ARBITRAGE_FUNCTIONS,
    FLASH_LOAN_SIGNATURE,
    AaveFlashLoan,
    ArbitrageContract,
)
from execution.gas import GasOptimizer

WALLET = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
POOL = "0x7d2768dE32b0b80b7a3454c06BdAc94A69DDc7A9"
GWEI = 10**9


@pytest.fixture
def opportunity(weth, usdc):
    return ArbitrageOpportunity(
        id="WETH_USDC_uniswap_v2_sushiswap",
        source_venue=VenueKind.UNISWAP_V2,
        target_venue=VenueKind.SUSHISWAP,
        path=(weth, usdc, weth),
        gross_profit_usd=Decimal("10"),
        principal_usd=Decimal("1000"),
        gas_cost_usd=Decimal("0.005"),
        net_profit_usd=Decimal("9.995"),
        confidence=0.8,
    )


def _provider(estimate=210_000):
    provider = MagicMock()
    if isinstance(estimate, Exception):
        provider.estimate_gas = AsyncMock(side_effect=estimate)
    else:
        provider.estimate_gas = AsyncMock(return_value=estimate)
    return provider


def _builder(provider, contract=True, max_borrow="100", **kwargs):
    return TransactionBuilder(
        provider,
        GasOptimizer(provider, strategy=GasStrategy.FIXED, max_gas_price_gwei=Decimal("50")),
        wallet_address=WALLET,
        contract=ArbitrageContract(CONTRACT) if contract else None,
        flash_loan=AaveFlashLoan(POOL, Decimal(max_borrow)),
        **kwargs,
    )


class TestArbitrageContract:
    def test_invalid_address(self):
        with pytest.raises(ValidationError):
            ArbitrageContract("0xnope")

    def test_encode_authorize(self):
        data = ArbitrageContract(CONTRACT).encode_call("authorizeCaller", [WALLET])
        assert data.startswith(selector(ARBITRAGE_FUNCTIONS["authorizeCaller"]))

    def test_unknown_function(self):
        with pytest.raises(ArbyError) as exc_info:
            ArbitrageContract(CONTRACT).encode_call("selfDestruct", [])
        assert exc_info.value.code == ErrorCode.CONTRACT_UNKNOWN_FUNCTION

    def test_bad_arguments(self):
        with pytest.raises(ArbyError) as exc_info:
            ArbitrageContract(CONTRACT).encode_call("authorizeCaller", ["not-an-address"])
        assert exc_info.value.code == ErrorCode.CONTRACT_ENCODING_FAILED

    def test_build_request(self):
        request = ArbitrageContract(CONTRACT.lower()).build_request("0x12345678", sender=WALLET.lower())
        assert request == {"to": CONTRACT, "data": "0x12345678", "value": 0, "from": WALLET}


class TestAaveFlashLoan:
    def test_fee_is_nine_bps(self, weth):
        assert AaveFlashLoan(POOL, Decimal("100")).fee(weth, 10_000) == 9

    def test_max_borrowable_in_smallest_units(self, usdc):
        assert AaveFlashLoan(POOL, Decimal("100")).max_borrowable(usdc) == 100 * 10**6

    def test_loan_transaction(self, weth):
        tx = AaveFlashLoan(POOL, Decimal("100")).build_loan_transaction(
            [weth.address], [10**18], [0], receiver=CONTRACT,
        )
        assert tx["to"] == POOL
        assert tx["data"].startswith(selector(FLASH_LOAN_SIGNATURE))

    def test_length_mismatch(self, weth):
        with pytest.raises(ValidationError):
            AaveFlashLoan(POOL, Decimal("100")).build_loan_transaction([weth.address], [1, 2], [0], receiver=CONTRACT)


class TestTransactionBuilder:
    @pytest.mark.asyncio
    async def test_encodes_execute_arbitrage(self, opportunity, weth, usdc):
        provider = _provider()
        tx = await _builder(provider).build_transaction(opportunity)

        assert not tx.degraded
        assert tx.to_address == CONTRACT
        assert tx.gas_limit == 210_000
        assert tx.gas_price_wei == 50 * GWEI
        assert tx.total_cost_wei == 210_000 * 50 * GWEI
        assert tx.expected_profit_usd == Decimal("9.995")
        assert tx.venue_path == ("uniswap_v2", "sushiswap")

        signature = ARBITRAGE_FUNCTIONS["executeArbitrage"]
        assert tx.payload.startswith(selector(signature))
        assets, amounts, modes, token_path, venues, slippage = decode(
            ["address[]", "uint256[]", "uint256[]", "address[]", "string[]", "uint256"],
            hex_to_bytes(tx.payload)[4:],
        )
        assert [a.lower() for a in assets] == [weth.key]
        assert amounts == (20 * 10**18,)
        assert modes == (0,)
        assert [a.lower() for a in token_path] == [weth.key, usdc.key, weth.key]
        assert venues == ("uniswap_v2", "sushiswap")
        assert slippage == 50

        estimate_request = provider.estimate_gas.call_args.args[0]
        assert estimate_request["value"] == "0x0"

    @pytest.mark.asyncio
    async def test_principal_capped_by_borrow_limit(self, opportunity, weth):
        builder = _builder(_provider(), max_borrow="5")
        assert builder.flash_loan_principal(opportunity, weth) == 5 * 10**18

    @pytest.mark.asyncio
    async def test_estimate_failure_uses_configured_limit(self, opportunity):
        provider = _provider(InfraError(code=ErrorCode.INFRA_RPC_ERROR, message="down"))
        tx = await _builder(provider, gas_limit=400_000).build_transaction(opportunity)
        assert tx.gas_limit == 400_000

    @pytest.mark.asyncio
    async def test_no_contract_builds_degraded(self, opportunity, weth, usdc):
        provider = _provider()
        tx = await _builder(provider, contract=False).build_transaction(opportunity)

        assert tx.degraded
        assert tx.degraded_reason == "No arbitrage contract configured"
        assert tx.to_address == WALLET
        assert tx.gas_limit == 500_000
        assert tx.payload.startswith("0x12345678")
        assert tx.payload == placeholder_payload(
            [weth.address, usdc.address, weth.address], [20 * 10**18], ["uniswap_v2", "sushiswap"]
        )
        provider.estimate_gas.assert_not_called()

    @pytest.mark.asyncio
    async def test_private_channel_flag(self, opportunity):
        tx = await _builder(_provider(), use_private_channel=True).build_transaction(opportunity)
        assert tx.use_private_channel
