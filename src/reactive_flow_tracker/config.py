#!/usr/bin/env python3
"""Configuration management for the Reactive flow tracker.

This module provides type-safe configuration dataclasses with validation.
Chain configurations live in a ``ChainRegistry`` that the tracker depends on
only through lookup, so tests and callers can inject their own chains.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import json
import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .errors import ConfigurationError

# Get logger for this module
logger = logging.getLogger(__name__)

DEFAULT_REACTIVE_RPC_URL = "https://kopli-rpc.rkt.ink"


def _validate_http_url(url: str, name: str) -> None:
    if not url:
        raise ConfigurationError(f"{name} is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"Invalid {name}: {url}. Expected an http or https URL"
        )


def _mask(secret: str) -> str:
    return "[SET]" if secret else "[NOT SET]"


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for one supported ledger.

    Attributes:
        chain_id: Numeric chain identifier
        name: Human readable chain name
        rpc_url: JSON-RPC endpoint of the chain
        explorer_url: Web front end of the block explorer
        explorer_api_url: Base URL of the explorer API
        explorer_api_key: API key sent with every explorer request
    """

    chain_id: int
    name: str
    rpc_url: str
    explorer_url: str
    explorer_api_url: str
    explorer_api_key: str = ""

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if isinstance(self.chain_id, bool) or not isinstance(self.chain_id, int) or self.chain_id <= 0:
            raise ConfigurationError(f"Chain ID must be a positive integer, got {self.chain_id!r}")
        if not self.name:
            raise ConfigurationError(f"Chain {self.chain_id} needs a name")
        _validate_http_url(self.explorer_api_url, f"explorer API URL for chain {self.chain_id}")
        if self.rpc_url:
            parsed = urlparse(self.rpc_url)
            if parsed.scheme not in ("http", "https", "ws", "wss"):
                raise ConfigurationError(
                    f"Invalid RPC URL scheme for chain {self.chain_id}: {parsed.scheme}. "
                    "Expected http, https, ws, or wss"
                )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChainConfig":
        """Build a chain configuration from a JSON object.

        ``explorerApiKeyEnv`` names an environment variable holding the key,
        so chain files never need to contain secrets.
        """
        try:
            api_key = data.get("explorerApiKey", "")
            if key_env := data.get("explorerApiKeyEnv"):
                api_key = os.environ.get(key_env, api_key)
            return cls(
                chain_id=int(data["id"]),
                name=data["name"],
                rpc_url=data.get("rpcUrl", ""),
                explorer_url=data.get("explorerUrl", ""),
                explorer_api_url=data["explorerApiUrl"],
                explorer_api_key=api_key,
            )
        except ConfigurationError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid chain configuration {data!r}: {e}") from e


# Public explorers known out of the box; API keys come from the environment.
KNOWN_CHAINS: tuple[dict[str, Any], ...] = (
    {
        "id": 1,
        "name": "Ethereum Mainnet",
        "rpcUrl": "https://ethereum.publicnode.com",
        "explorerUrl": "https://etherscan.io",
        "explorerApiUrl": "https://api.etherscan.io/api",
        "explorerApiKeyEnv": "ETHERSCAN_API_KEY",
    },
    {
        "id": 11155111,
        "name": "Ethereum Sepolia",
        "rpcUrl": "https://ethereum-sepolia.publicnode.com",
        "explorerUrl": "https://sepolia.etherscan.io",
        "explorerApiUrl": "https://api-sepolia.etherscan.io/api",
        "explorerApiKeyEnv": "ETHERSCAN_API_KEY",
    },
    {
        "id": 137,
        "name": "Polygon",
        "rpcUrl": "https://polygon-rpc.com",
        "explorerUrl": "https://polygonscan.com",
        "explorerApiUrl": "https://api.polygonscan.com/api",
        "explorerApiKeyEnv": "POLYGONSCAN_API_KEY",
    },
    {
        "id": 80002,
        "name": "Polygon Amoy",
        "rpcUrl": "https://rpc-amoy.polygon.technology",
        "explorerUrl": "https://amoy.polygonscan.com",
        "explorerApiUrl": "https://api-amoy.polygonscan.com/api",
        "explorerApiKeyEnv": "POLYGONSCAN_API_KEY",
    },
    {
        "id": 84532,
        "name": "Base Sepolia",
        "rpcUrl": "https://sepolia.base.org",
        "explorerUrl": "https://sepolia.basescan.org",
        "explorerApiUrl": "https://api-sepolia.basescan.org/api",
        "explorerApiKeyEnv": "BASESCAN_API_KEY",
    },
    {
        "id": 56,
        "name": "BNB Smart Chain",
        "rpcUrl": "https://bsc-dataseed.binance.org",
        "explorerUrl": "https://bscscan.com",
        "explorerApiUrl": "https://api.bscscan.com/api",
        "explorerApiKeyEnv": "BSCSCAN_API_KEY",
    },
)


class ChainRegistry:
    """Read-only lookup of chain configurations by chain ID."""

    def __init__(self, chains: Iterable[ChainConfig] = ()) -> None:
        self._chains: dict[int, ChainConfig] = {}
        for chain in chains:
            if chain.chain_id in self._chains:
                raise ConfigurationError(f"Duplicate configuration for chain {chain.chain_id}")
            self._chains[chain.chain_id] = chain

    def get(self, chain_id: int) -> ChainConfig:
        """Look up a chain.

        Raises:
            ConfigurationError: If the chain is not registered
        """
        try:
            return self._chains[chain_id]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported chain configuration: {chain_id}. "
                f"Supported chains: {', '.join(str(c) for c in sorted(self._chains))}"
            ) from None

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._chains

    def __iter__(self) -> Iterator[ChainConfig]:
        return iter(self._chains.values())

    def __len__(self) -> int:
        return len(self._chains)

    @classmethod
    def from_file(cls, path: str | Path) -> "ChainRegistry":
        """Load chains from a JSON file holding a list of chain objects."""
        try:
            with Path(path).open() as file:
                entries = json.load(file)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read chain configuration file {path}: {e}") from e

        if not isinstance(entries, list):
            raise ConfigurationError(f"Chain configuration file {path} must contain a JSON list")
        return cls(ChainConfig.from_dict(entry) for entry in entries)

    @classmethod
    def from_env(cls) -> "ChainRegistry":
        """Load chains from ``CHAIN_CONFIG_PATH`` or fall back to the known explorers."""
        if path := os.environ.get("CHAIN_CONFIG_PATH"):
            return cls.from_file(path)
        return cls(ChainConfig.from_dict(entry) for entry in KNOWN_CHAINS)


@dataclass(frozen=True, slots=True)
class ReactiveNetworkConfig:
    """Configuration for the Reactive Network RPC endpoint."""

    rpc_url: str = DEFAULT_REACTIVE_RPC_URL

    def __post_init__(self) -> None:
        _validate_http_url(self.rpc_url, "Reactive RPC URL (REACTIVE_RPC_URL)")


@dataclass(frozen=True, slots=True)
class TrackingConfig:
    """Settings for the reconciliation search, deadlines and retries."""
    search_window: int = 1000  # seconds either side of the origin timestamp
    batch_size: int = 100  # transactions per history batch
    stage_timeout: float = 30.0  # seconds per stage
    session_deadline: float = 120.0  # seconds for the whole flow
    request_timeout: float = 30.0  # HTTP request timeout in seconds
    retry_count: int = 3  # retry attempts for transient network errors
    retry_backoff: float = 0.5  # base delay in seconds between retries

    def __post_init__(self) -> None:
        """Validate tracking configuration."""
        if self.search_window <= 0:
            raise ConfigurationError(f"Search window must be positive, got {self.search_window}")
        if not 0 < self.batch_size <= 1000:
            raise ConfigurationError(f"Batch size must be between 1 and 1000, got {self.batch_size}")
        if self.stage_timeout <= 0:
            raise ConfigurationError(f"Stage timeout must be positive, got {self.stage_timeout}")
        if self.session_deadline < self.stage_timeout:
            raise ConfigurationError(
                f"Session deadline ({self.session_deadline}s) must not be shorter "
                f"than the stage timeout ({self.stage_timeout}s)"
            )
        if not 0 < self.request_timeout <= 120:
            raise ConfigurationError(f"Request timeout must be in (0, 120]s, got {self.request_timeout}")
        if not 0 <= self.retry_count <= 10:
            raise ConfigurationError(f"Retry count must be between 0 and 10, got {self.retry_count}")
        if self.retry_backoff < 0:
            raise ConfigurationError(f"Retry backoff must be non-negative, got {self.retry_backoff}")


def _env_number(name: str, default: str, cast: type) -> Any:
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    """Main configuration for the flow tracker.

    Attributes:
        chains: Registry of supported chains
        reactive: Reactive Network endpoint
        tracking: Search, deadline and retry settings
    """

    chains: ChainRegistry
    reactive: ReactiveNetworkConfig = field(default_factory=ReactiveNetworkConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """Load configuration from environment variables.

        Raises:
            ConfigurationError: If a variable is missing or invalid
        """
        chains = ChainRegistry.from_env()
        reactive = ReactiveNetworkConfig(
            rpc_url=os.environ.get("REACTIVE_RPC_URL", DEFAULT_REACTIVE_RPC_URL)
        )
        tracking = TrackingConfig(
            search_window=_env_number("SEARCH_WINDOW", "1000", int),
            batch_size=_env_number("SEARCH_BATCH_SIZE", "100", int),
            stage_timeout=_env_number("STAGE_TIMEOUT", "30", float),
            session_deadline=_env_number("SESSION_DEADLINE", "120", float),
            request_timeout=_env_number("REQUEST_TIMEOUT", "30", float),
            retry_count=_env_number("RETRY_COUNT", "3", int),
            retry_backoff=_env_number("RETRY_BACKOFF", "0.5", float),
        )
        return cls(chains=chains, reactive=reactive, tracking=tracking)

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Reactive Flow Tracker Configuration")
        logger.info("=" * 60)

        logger.info("Chains:")
        for chain in self.chains:
            logger.info(
                f"  {chain.chain_id}: {chain.name} "
                f"({chain.explorer_api_url}, key {_mask(chain.explorer_api_key)})"
            )

        logger.info("Reactive Network:")
        logger.info(f"  RPC URL: {self.reactive.rpc_url}")

        logger.info("Tracking Settings:")
        logger.info(f"  Search Window: +/-{self.tracking.search_window} seconds")
        logger.info(f"  Batch Size: {self.tracking.batch_size}")
        logger.info(f"  Stage Timeout: {self.tracking.stage_timeout} seconds")
        logger.info(f"  Session Deadline: {self.tracking.session_deadline} seconds")
        logger.info(f"  Request Timeout: {self.tracking.request_timeout} seconds")
        logger.info(f"  Retry Count: {self.tracking.retry_count}")
        logger.info(f"  Retry Backoff: {self.tracking.retry_backoff} seconds")
        logger.info("=" * 60)
