"""
Gravity Harness TOML Configuration Loader

Loads every section of a scenario config.toml with environment variable
overrides. Each [section] is a dataclass with from_dict / apply_env.

Environment variable mapping:
    [chain] cosmos_rest_url       → GRAVITY_HARNESS_COSMOS_REST_URL
    [chain] ethereum_rpc_url      → GRAVITY_HARNESS_ETHEREUM_RPC_URL
    [timing] poll_interval        → GRAVITY_HARNESS_POLL_INTERVAL
    [timing] recovery_deadline    → GRAVITY_HARNESS_RECOVERY_DEADLINE
    [scenario] validator_count    → GRAVITY_HARNESS_VALIDATOR_COUNT
    [scenario] minority_indices   → GRAVITY_HARNESS_MINORITY (comma separated)
    [logging] level               → GRAVITY_HARNESS_LOG_LEVEL
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import (
    ADDRESS_PREFIX,
    DEFAULT_FEE_AMOUNT,
    DEFAULT_GAS_LIMIT,
    FEE_DENOM,
    GOVERNANCE_VOTE_QUORUM,
    HALT_DEADLINE,
    HALT_OBSERVATION_WINDOW,
    HONEST_VALIDATOR_INDEX,
    LIVENESS_DEADLINE,
    ONE_ETH,
    OPERATION_TIMEOUT,
    POLL_INTERVAL,
    POST_RECOVERY_SETTLE,
    PROPOSAL_DEPOSIT,
    RECOVERY_DEADLINE,
    STAKING_TOKEN,
    STARTING_STAKE_PER_VALIDATOR,
    TOTAL_TIMEOUT,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "GRAVITY_HARNESS_"


def _env(name: str) -> Optional[str]:
    return os.environ.get(ENV_PREFIX + name)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ChainConfig:
    """[chain] section."""
    cosmos_rest_url: str = "http://localhost:1317"
    ethereum_rpc_url: str = "http://localhost:8545"
    address_prefix: str = ADDRESS_PREFIX
    staking_denom: str = STAKING_TOKEN
    fee_denom: str = FEE_DENOM
    fee_amount: int = DEFAULT_FEE_AMOUNT
    gas_limit: int = DEFAULT_GAS_LIMIT
    gravity_address: str = ""
    erc20_address: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainConfig":
        return cls(
            cosmos_rest_url=data.get("cosmos_rest_url", "http://localhost:1317"),
            ethereum_rpc_url=data.get("ethereum_rpc_url", "http://localhost:8545"),
            address_prefix=data.get("address_prefix", ADDRESS_PREFIX),
            staking_denom=data.get("staking_denom", STAKING_TOKEN),
            fee_denom=data.get("fee_denom", FEE_DENOM),
            fee_amount=int(data.get("fee_amount", DEFAULT_FEE_AMOUNT)),
            gas_limit=int(data.get("gas_limit", DEFAULT_GAS_LIMIT)),
            gravity_address=data.get("gravity_address", ""),
            erc20_address=data.get("erc20_address", ""),
        )

    def apply_env(self) -> None:
        if v := _env("COSMOS_REST_URL"):
            self.cosmos_rest_url = v
        if v := _env("ETHEREUM_RPC_URL"):
            self.ethereum_rpc_url = v
        if v := _env("ADDRESS_PREFIX"):
            self.address_prefix = v
        if v := _env("GRAVITY_ADDRESS"):
            self.gravity_address = v
        if v := _env("ERC20_ADDRESS"):
            self.erc20_address = v


@dataclass
class TimingConfig:
    """[timing] section. All values in seconds."""
    operation_timeout: float = OPERATION_TIMEOUT
    total_timeout: float = TOTAL_TIMEOUT
    poll_interval: float = POLL_INTERVAL
    halt_deadline: float = HALT_DEADLINE
    halt_observation_window: float = HALT_OBSERVATION_WINDOW
    recovery_deadline: float = RECOVERY_DEADLINE
    liveness_deadline: float = LIVENESS_DEADLINE
    post_recovery_settle: float = POST_RECOVERY_SETTLE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimingConfig":
        return cls(
            operation_timeout=float(data.get("operation_timeout", OPERATION_TIMEOUT)),
            total_timeout=float(data.get("total_timeout", TOTAL_TIMEOUT)),
            poll_interval=float(data.get("poll_interval", POLL_INTERVAL)),
            halt_deadline=float(data.get("halt_deadline", HALT_DEADLINE)),
            halt_observation_window=float(data.get("halt_observation_window", HALT_OBSERVATION_WINDOW)),
            recovery_deadline=float(data.get("recovery_deadline", RECOVERY_DEADLINE)),
            liveness_deadline=float(data.get("liveness_deadline", LIVENESS_DEADLINE)),
            post_recovery_settle=float(data.get("post_recovery_settle", POST_RECOVERY_SETTLE)),
        )

    def apply_env(self) -> None:
        for name in (
            "operation_timeout",
            "total_timeout",
            "poll_interval",
            "halt_deadline",
            "halt_observation_window",
            "recovery_deadline",
            "liveness_deadline",
            "post_recovery_settle",
        ):
            if v := _env(name.upper()):
                setattr(self, name, float(v))

    def validate(self) -> None:
        for name, value in vars(self).items():
            if value < 0:
                raise ConfigurationError(f"timing.{name} must be >= 0, got {value}")
        if self.poll_interval <= 0:
            raise ConfigurationError("timing.poll_interval must be > 0")


@dataclass
class ScenarioSectionConfig:
    """[scenario] section."""
    validator_count: int = 3
    minority_indices: List[int] = field(default_factory=lambda: [1, 2])
    redistribute_stake: bool = True
    starting_stake_per_validator: int = STARTING_STAKE_PER_VALIDATOR
    baseline_deposit: bool = True
    deposit_amount: int = ONE_ETH // 100
    false_claim_amount: int = ONE_ETH
    proposal_deposit: int = PROPOSAL_DEPOSIT
    vote_quorum: float = GOVERNANCE_VOTE_QUORUM

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScenarioSectionConfig":
        return cls(
            validator_count=int(data.get("validator_count", 3)),
            minority_indices=[int(i) for i in data.get("minority_indices", [1, 2])],
            redistribute_stake=bool(data.get("redistribute_stake", True)),
            starting_stake_per_validator=int(
                data.get("starting_stake_per_validator", STARTING_STAKE_PER_VALIDATOR)
            ),
            baseline_deposit=bool(data.get("baseline_deposit", True)),
            deposit_amount=int(data.get("deposit_amount", ONE_ETH // 100)),
            false_claim_amount=int(data.get("false_claim_amount", ONE_ETH)),
            proposal_deposit=int(data.get("proposal_deposit", PROPOSAL_DEPOSIT)),
            vote_quorum=float(data.get("vote_quorum", GOVERNANCE_VOTE_QUORUM)),
        )

    def apply_env(self) -> None:
        if v := _env("VALIDATOR_COUNT"):
            self.validator_count = int(v)
        if v := _env("MINORITY"):
            self.minority_indices = [int(i) for i in v.split(",") if i.strip()]
        if v := _env("REDISTRIBUTE_STAKE"):
            self.redistribute_stake = _env_bool(v)
        if v := _env("BASELINE_DEPOSIT"):
            self.baseline_deposit = _env_bool(v)

    def validate(self) -> None:
        if self.validator_count < 3:
            raise ConfigurationError("scenario.validator_count must be >= 3")
        if not self.minority_indices:
            raise ConfigurationError("scenario.minority_indices cannot be empty")
        if HONEST_VALIDATOR_INDEX in self.minority_indices:
            raise ConfigurationError(
                f"scenario.minority_indices cannot include the honest validator {HONEST_VALIDATOR_INDEX}"
            )
        if len(set(self.minority_indices)) >= self.validator_count:
            raise ConfigurationError("scenario.minority_indices must leave at least one honest validator")
        for index in self.minority_indices:
            if not 0 <= index < self.validator_count:
                raise ConfigurationError(f"scenario.minority_indices entry {index} out of range")
        if self.deposit_amount <= 0 or self.false_claim_amount <= 0:
            raise ConfigurationError("scenario deposit amounts must be positive")
        if not 0 < self.vote_quorum <= 1:
            raise ConfigurationError("scenario.vote_quorum must be in (0, 1]")


@dataclass
class LoggingConfig:
    """[logging] section."""
    level: str = "INFO"
    file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        return cls(level=data.get("level", "INFO"), file=data.get("file"))

    def apply_env(self) -> None:
        if v := _env("LOG_LEVEL"):
            self.level = v
        if v := _env("LOG_FILE"):
            self.file = v


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class HarnessConfig:
    """Complete scenario configuration."""
    chain: ChainConfig = field(default_factory=ChainConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    scenario: ScenarioSectionConfig = field(default_factory=ScenarioSectionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HarnessConfig":
        return cls(
            chain=ChainConfig.from_dict(data.get("chain", {})),
            timing=TimingConfig.from_dict(data.get("timing", {})),
            scenario=ScenarioSectionConfig.from_dict(data.get("scenario", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "HarnessConfig":
        """
        Load configuration from a TOML file.

        A missing file falls back to defaults (with env overrides).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.chain.apply_env()
        self.timing.apply_env()
        self.scenario.apply_env()
        self.logging.apply_env()

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if not self.chain.address_prefix:
            raise ConfigurationError("chain.address_prefix cannot be empty")
        if self.logging.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid logging.level: {self.logging.level}")
        self.timing.validate()
        self.scenario.validate()
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for reports and diagnostics)."""
        return {
            "chain": {
                "cosmos_rest_url": self.chain.cosmos_rest_url,
                "ethereum_rpc_url": self.chain.ethereum_rpc_url,
                "address_prefix": self.chain.address_prefix,
                "staking_denom": self.chain.staking_denom,
                "gravity_address": self.chain.gravity_address,
                "erc20_address": self.chain.erc20_address,
            },
            "timing": dict(vars(self.timing)),
            "scenario": {
                "validator_count": self.scenario.validator_count,
                "minority_indices": list(self.scenario.minority_indices),
                "redistribute_stake": self.scenario.redistribute_stake,
                "baseline_deposit": self.scenario.baseline_deposit,
                "vote_quorum": self.scenario.vote_quorum,
            },
            "logging": {"level": self.logging.level, "file": self.logging.file},
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> HarnessConfig:
    """
    Load harness configuration.

    Resolution order:
        1. Explicit *path* argument
        2. GRAVITY_HARNESS_CONFIG env var
        3. ./gravity-harness.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get(ENV_PREFIX + "CONFIG", "gravity-harness.toml")

    return HarnessConfig.from_file(path)
