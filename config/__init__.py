# PATH: config/__init__.py
"""
Configuration loading for ARBY-MEV.

Settings come from a YAML file (see config/config.sample.yaml); secrets come
from the environment (.env supported via python-dotenv):

    ETHEREUM_PRIVATE_KEY   signing key, optional (detect-only without it)
    MEV_SHARE_API_KEY      private relay key
    ETHEREUM_RPC_URL       overrides ethereum.rpc_url
    ETHEREUM_WS_URL        overrides ethereum.ws_url
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from core.constants import (
    DEFAULT_GAS_LIMIT,
    DEFAULT_MAX_PRICE_DEVIATION_PCT,
    DEFAULT_MIN_PRICE_SOURCES,
    DEFAULT_POLLING_INTERVAL_MS,
    DEFAULT_PRICE_FRESHNESS_SECONDS,
    GasStrategy,
    VenueKind,
)
from core.exceptions import ConfigError
from core.math import safe_decimal
from core.retry import RetryPolicy
from chains.abi import is_valid_address


CONFIG_DIR = Path(__file__).parent
SAMPLE_CONFIG = CONFIG_DIR / "config.sample.yaml"


def load_yaml(path: Path | str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Absolute path, or a file name inside the config directory

    Returns:
        Parsed YAML as dict
    """
    filepath = Path(path)
    if not filepath.is_absolute() and not filepath.exists():
        filepath = CONFIG_DIR / filepath
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# =============================================================================
# SECTIONS
# =============================================================================

@dataclass
class EthereumConfig:
    rpc_url: str = "http://localhost:8545"
    ws_url: str = "ws://localhost:8546"
    use_websocket: bool = True
    polling_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS
    chain_id: int = 1
    wallet_address: str = ""
    fallback_rpc_urls: List[str] = field(default_factory=list)
    private_key: Optional[str] = field(default=None, repr=False)

    @property
    def rpc_urls(self) -> List[str]:
        return [self.rpc_url, *self.fallback_rpc_urls]


@dataclass
class MevShareConfig:
    api_url: str = "https://mev-share.flashbots.net"
    enabled: bool = False
    max_validator_tip: Decimal = Decimal("2")
    api_key: Optional[str] = field(default=None, repr=False)


@dataclass
class FlashLoanConfig:
    aave_lending_pool: str = "0x7d2768dE32b0b80b7a3454c06BdAc94A69DDc7A9"
    max_borrow_amount: Decimal = Decimal("100")


@dataclass
class TokenConfig:
    symbol: str
    address: str
    decimals: int


@dataclass
class CurvePoolConfig:
    address: str
    coins: List[str] = field(default_factory=list)


@dataclass
class VenueConfig:
    kind: VenueKind
    enabled: bool = True
    router: str = ""
    factory: str = ""
    quoter: str = ""
    pools: List[CurvePoolConfig] = field(default_factory=list)


@dataclass
class ArbitrageConfig:
    min_profit_threshold: Decimal = Decimal("50")
    max_hops: int = 3
    slippage_tolerance: Decimal = Decimal("0.5")
    contract_address: str = ""


@dataclass
class GasConfig:
    strategy: GasStrategy = GasStrategy.EIP1559
    max_gas_price: Decimal = Decimal("100")
    base_fee_multiplier: Decimal = Decimal("1.2")
    priority_fee: Decimal = Decimal("2")
    gas_limit: int = DEFAULT_GAS_LIMIT


@dataclass
class SecurityConfig:
    transaction_timeout: int = 60
    min_price_sources: int = DEFAULT_MIN_PRICE_SOURCES
    max_price_deviation: Decimal = DEFAULT_MAX_PRICE_DEVIATION_PCT
    enforce_min_price_sources: bool = True


@dataclass
class PricingConfig:
    numeraire: str = "WETH"
    usd_stable: str = "USDC"
    freshness_seconds: int = DEFAULT_PRICE_FRESHNESS_SECONDS
    coingecko_enabled: bool = True
    coingecko_api_url: str = "https://api.coingecko.com/api/v3"
    coingecko_platform: str = "ethereum"


@dataclass
class RetryConfig:
    max_attempts: int = 3
    initial_backoff: float = 0.5
    max_backoff: float = 8.0

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_backoff=self.initial_backoff,
            max_backoff=self.max_backoff,
        )


@dataclass
class BotConfig:
    """Full bot configuration."""
    ethereum: EthereumConfig = field(default_factory=EthereumConfig)
    mev_share: MevShareConfig = field(default_factory=MevShareConfig)
    flash_loan: FlashLoanConfig = field(default_factory=FlashLoanConfig)
    tokens: List[TokenConfig] = field(default_factory=list)
    venues: List[VenueConfig] = field(default_factory=list)
    arbitrage: ArbitrageConfig = field(default_factory=ArbitrageConfig)
    gas: GasConfig = field(default_factory=GasConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    test_mode: bool = False
    execution_enabled: bool = False

    def token(self, symbol: str) -> TokenConfig | None:
        return next((t for t in self.tokens if t.symbol == symbol), None)

    def validate(self) -> None:
        """
        Check internal consistency.

        Raises:
            ConfigError: On the first problem found
        """
        if not self.ethereum.rpc_url:
            raise ConfigError("ethereum.rpc_url is required")
        if self.ethereum.polling_interval_ms <= 0:
            raise ConfigError("ethereum.polling_interval_ms must be positive")
        if self.ethereum.wallet_address and not is_valid_address(self.ethereum.wallet_address):
            raise ConfigError(
                "ethereum.wallet_address is not a valid address",
                details={"wallet_address": self.ethereum.wallet_address},
            )

        if len(self.tokens) < 2:
            raise ConfigError("At least two tokens must be configured")
        for token in self.tokens:
            if not is_valid_address(token.address):
                raise ConfigError(
                    f"Token {token.symbol} has an invalid address",
                    details={"address": token.address},
                )
            if not 0 <= token.decimals <= 36:
                raise ConfigError(f"Token {token.symbol} has invalid decimals")
        if self.token(self.pricing.numeraire) is None:
            raise ConfigError(
                f"Numeraire {self.pricing.numeraire} is not a configured token",
            )

        if not 1 <= self.arbitrage.max_hops <= 3:
            raise ConfigError("arbitrage.max_hops must be between 1 and 3")
        if self.arbitrage.min_profit_threshold < 0:
            raise ConfigError("arbitrage.min_profit_threshold must be >= 0")
        if self.arbitrage.slippage_tolerance < 0:
            raise ConfigError("arbitrage.slippage_tolerance must be >= 0")

        if self.gas.max_gas_price <= 0:
            raise ConfigError("gas.max_gas_price must be positive")
        if self.gas.gas_limit <= 0:
            raise ConfigError("gas.gas_limit must be positive")
        if self.gas.base_fee_multiplier <= 0:
            raise ConfigError("gas.base_fee_multiplier must be positive")

        if self.security.min_price_sources < 1:
            raise ConfigError("security.min_price_sources must be >= 1")
        if self.security.max_price_deviation < 0:
            raise ConfigError("security.max_price_deviation must be >= 0")
        if self.security.transaction_timeout <= 0:
            raise ConfigError("security.transaction_timeout must be positive")


# =============================================================================
# PARSING
# =============================================================================

def _parse_venue(data: Dict[str, Any]) -> VenueConfig:
    kind_value = data.get("kind", "")
    try:
        kind = VenueKind(kind_value)
    except ValueError:
        raise ConfigError(f"Unknown venue kind: {kind_value!r}")

    return VenueConfig(
        kind=kind,
        enabled=bool(data.get("enabled", True)),
        router=data.get("router", ""),
        factory=data.get("factory", ""),
        quoter=data.get("quoter", ""),
        pools=[
            CurvePoolConfig(address=p["address"], coins=list(p.get("coins", [])))
            for p in data.get("pools", [])
        ],
    )


def _parse_gas_strategy(value: str) -> GasStrategy:
    try:
        return GasStrategy(str(value).lower())
    except ValueError:
        raise ConfigError(f"Unknown gas strategy: {value!r}")


def parse_config(data: Dict[str, Any]) -> BotConfig:
    """Build a BotConfig from a parsed YAML mapping (no env overrides)."""
    eth = data.get("ethereum", {})
    mev = data.get("mev_share", {})
    loan = data.get("flash_loan", {})
    arb = data.get("arbitrage", {})
    gas = data.get("gas", {})
    sec = data.get("security", {})
    pricing = data.get("pricing", {})
    coingecko = pricing.get("coingecko", {})
    retry = data.get("retry", {})

    return BotConfig(
        ethereum=EthereumConfig(
            rpc_url=eth.get("rpc_url", "http://localhost:8545"),
            ws_url=eth.get("ws_url", "ws://localhost:8546"),
            use_websocket=bool(eth.get("use_websocket", True)),
            polling_interval_ms=int(eth.get("polling_interval_ms", DEFAULT_POLLING_INTERVAL_MS)),
            chain_id=int(eth.get("chain_id", 1)),
            wallet_address=eth.get("wallet_address", ""),
            fallback_rpc_urls=list(eth.get("fallback_rpc_urls", [])),
        ),
        mev_share=MevShareConfig(
            api_url=mev.get("api_url", "https://mev-share.flashbots.net"),
            enabled=bool(mev.get("enabled", False)),
            max_validator_tip=safe_decimal(mev.get("max_validator_tip", 2)),
        ),
        flash_loan=FlashLoanConfig(
            aave_lending_pool=loan.get("aave_lending_pool", FlashLoanConfig.aave_lending_pool),
            max_borrow_amount=safe_decimal(loan.get("max_borrow_amount", 100)),
        ),
        tokens=[
            TokenConfig(symbol=t["symbol"], address=t["address"], decimals=int(t["decimals"]))
            for t in data.get("tokens", [])
        ],
        venues=[_parse_venue(v) for v in data.get("venues", [])],
        arbitrage=ArbitrageConfig(
            min_profit_threshold=safe_decimal(arb.get("min_profit_threshold", 50)),
            max_hops=int(arb.get("max_hops", 3)),
            slippage_tolerance=safe_decimal(arb.get("slippage_tolerance", "0.5")),
            contract_address=arb.get("contract_address", ""),
        ),
        gas=GasConfig(
            strategy=_parse_gas_strategy(gas.get("strategy", "eip1559")),
            max_gas_price=safe_decimal(gas.get("max_gas_price", 100)),
            base_fee_multiplier=safe_decimal(gas.get("base_fee_multiplier", "1.2")),
            priority_fee=safe_decimal(gas.get("priority_fee", 2)),
            gas_limit=int(gas.get("gas_limit", DEFAULT_GAS_LIMIT)),
        ),
        security=SecurityConfig(
            transaction_timeout=int(sec.get("transaction_timeout", 60)),
            min_price_sources=int(sec.get("min_price_sources", DEFAULT_MIN_PRICE_SOURCES)),
            max_price_deviation=safe_decimal(sec.get("max_price_deviation", DEFAULT_MAX_PRICE_DEVIATION_PCT)),
            enforce_min_price_sources=bool(sec.get("enforce_min_price_sources", True)),
        ),
        pricing=PricingConfig(
            numeraire=pricing.get("numeraire", "WETH"),
            usd_stable=pricing.get("usd_stable", "USDC"),
            freshness_seconds=int(pricing.get("freshness_seconds", DEFAULT_PRICE_FRESHNESS_SECONDS)),
            coingecko_enabled=bool(coingecko.get("enabled", True)),
            coingecko_api_url=coingecko.get("api_url", "https://api.coingecko.com/api/v3"),
            coingecko_platform=coingecko.get("platform", "ethereum"),
        ),
        retry=RetryConfig(
            max_attempts=int(retry.get("max_attempts", 3)),
            initial_backoff=float(retry.get("initial_backoff", 0.5)),
            max_backoff=float(retry.get("max_backoff", 8.0)),
        ),
        test_mode=bool(data.get("test_mode", False)),
        execution_enabled=bool(data.get("execution_enabled", False)),
    )


def apply_env_overrides(config: BotConfig, env: Optional[Dict[str, str]] = None) -> BotConfig:
    """Fill secrets and endpoint overrides from the environment."""
    env = dict(os.environ) if env is None else env

    config.ethereum.private_key = env.get("ETHEREUM_PRIVATE_KEY") or None
    config.mev_share.api_key = env.get("MEV_SHARE_API_KEY") or None
    if env.get("ETHEREUM_RPC_URL"):
        config.ethereum.rpc_url = env["ETHEREUM_RPC_URL"]
    if env.get("ETHEREUM_WS_URL"):
        config.ethereum.ws_url = env["ETHEREUM_WS_URL"]
    return config


def load_config(path: Path | str | None = None, use_env: bool = True) -> BotConfig:
    """
    Load, override from environment, and validate.

    Args:
        path: YAML file (default: config/config.sample.yaml)
        use_env: Read .env and process environment for secrets

    Raises:
        ConfigError: If the resulting configuration is invalid
    """
    data = load_yaml(path or SAMPLE_CONFIG)
    config = parse_config(data)

    if use_env:
        load_dotenv()
        apply_env_overrides(config)

    config.validate()
    return config
