"""
Flight Oracle Relay Configuration Module

Central configuration management with environment variable support.
The configuration object is built once at startup and handed to the
RelayService explicitly.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from web3 import Web3


class Environment(Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class LedgerConfig:
    """Ledger node and application contract configuration."""
    url: str = "http://127.0.0.1:8545"
    app_address: str = ""
    abi_path: Optional[str] = None

    # Fixed transaction parameters, no fee estimation
    gas_price_wei: int = 100_000_000_000
    gas_limit: int = 2_500_000

    # Event polling and receipt waiting
    poll_interval_seconds: float = 2.0
    receipt_timeout_seconds: float = 120.0

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("RELAY_LEDGER_URL", "http://127.0.0.1:8545"),
            app_address=os.getenv("RELAY_APP_ADDRESS", ""),
            abi_path=os.getenv("RELAY_ABI_PATH"),
            gas_price_wei=int(os.getenv("RELAY_GAS_PRICE_WEI", "100000000000")),
            gas_limit=int(os.getenv("RELAY_GAS_LIMIT", "2500000")),
            poll_interval_seconds=float(os.getenv("RELAY_POLL_INTERVAL_SECONDS", "2.0")),
            receipt_timeout_seconds=float(os.getenv("RELAY_RECEIPT_TIMEOUT_SECONDS", "120")),
        )


@dataclass
class OracleConfig:
    """Oracle pool configuration."""
    # Stake sent with registerOracle
    registration_fee_ether: Decimal = Decimal("10")

    # 0 = register every identity the ledger exposes
    oracle_count: int = 0

    # Seed for status code draws (None = nondeterministic)
    random_seed: Optional[int] = None

    @property
    def stake_wei(self) -> int:
        """Registration stake in wei."""
        return int(Web3.to_wei(self.registration_fee_ether, "ether"))

    @classmethod
    def from_env(cls) -> "OracleConfig":
        """Load configuration from environment variables."""
        seed = os.getenv("RELAY_RANDOM_SEED")
        return cls(
            registration_fee_ether=Decimal(os.getenv("RELAY_REGISTRATION_FEE_ETHER", "10")),
            oracle_count=int(os.getenv("RELAY_ORACLE_COUNT", "0")),
            random_seed=int(seed) if seed else None,
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load configuration from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class RelayConfig:
    """Master configuration for the oracle relay."""
    environment: Environment = Environment.DEVELOPMENT

    # Sub-configurations
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load all configuration from environment variables."""
        env_str = os.getenv("ENVIRONMENT", "development").lower()
        try:
            environment = Environment(env_str)
        except ValueError:
            environment = Environment.DEVELOPMENT

        return cls(
            environment=environment,
            ledger=LedgerConfig.from_env(),
            oracle=OracleConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def validate(self) -> Dict[str, Any]:
        """
        Validate configuration and return any warnings/errors.

        Returns:
            Dictionary with 'valid' boolean and 'messages' list
        """
        messages = []
        valid = True

        if not self.ledger.app_address:
            messages.append("ERROR: Application contract address not configured")
            valid = False
        elif not Web3.is_address(self.ledger.app_address):
            messages.append(f"ERROR: Invalid contract address: {self.ledger.app_address}")
            valid = False

        if self.ledger.abi_path and not os.path.isfile(self.ledger.abi_path):
            messages.append(f"ERROR: ABI file not found: {self.ledger.abi_path}")
            valid = False

        if self.ledger.gas_limit <= 0 or self.ledger.gas_price_wei <= 0:
            messages.append("ERROR: Gas price and gas limit must be positive")
            valid = False

        if self.oracle.registration_fee_ether <= 0:
            messages.append("WARNING: Registration fee is zero, the contract will reject oracles")

        if self.oracle.oracle_count < 0:
            messages.append("ERROR: Oracle count cannot be negative")
            valid = False

        if self.environment == Environment.PRODUCTION:
            if "127.0.0.1" in self.ledger.url or "localhost" in self.ledger.url:
                messages.append("WARNING: Using a local ledger node in production")

        return {"valid": valid, "messages": messages}


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure root logging from a LoggingConfig."""
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=config.format)
