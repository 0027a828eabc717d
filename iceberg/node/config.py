"""
Iceberg Protocol Node Configuration
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Optional

from iceberg.constants import (
    CHAIN_ID_ARBITRUM,
    CHAIN_ID_LOCAL,
    DEFAULT_API_HOST,
    DEFAULT_API_PORT,
    DEFAULT_NATIVE_DENOMINATION,
    DEFAULT_SLIPPAGE_BPS,
    EVENT_SYNC_INTERVAL_SEC,
    MAX_BATCH_SIZE,
    MAX_SLIPPAGE_BPS,
    MERKLE_TREE_DEPTH,
    ONEINCH_API_BASE,
    ONEINCH_API_KEY_ENV,
    ONEINCH_TIMEOUT_SEC,
    SCAN_BACKOFF_BASE_SEC,
    SCAN_BACKOFF_MAX_SEC,
    SCAN_CHUNK_BLOCKS,
    SCAN_LOOKBACK_BLOCKS,
    SCAN_RETRY_COUNT,
    SCAN_TIMEOUT_SEC,
    SNARKJS_BINARY,
    SNARKJS_TIMEOUT_SEC,
    SUPPORTED_CHAINS,
    ZERO_ADDRESS,
)
from iceberg.core.types import Address
from iceberg.errors import IcebergError

logger = logging.getLogger(__name__)

AGGREGATOR_BACKENDS = ("mock", "oneinch")
PROVER_BACKENDS = ("native", "snarkjs")


@dataclass
class SwapConfigEntry:
    """Swap configuration registered by the owner at startup."""
    token_in: str = ZERO_ADDRESS
    fixed_amount: str = str(DEFAULT_NATIVE_DENOMINATION)


@dataclass
class LedgerConfig:
    """Pool identity and denominations."""
    chain_id: int = CHAIN_ID_ARBITRUM
    depth: int = MERKLE_TREE_DEPTH
    owner: str = ZERO_ADDRESS
    operator: str = ZERO_ADDRESS
    pool_address: str = ZERO_ADDRESS
    swap_configs: List[SwapConfigEntry] = field(default_factory=lambda: [SwapConfigEntry()])


@dataclass
class AggregatorConfig:
    """Swap aggregator configuration."""
    backend: str = "oneinch"
    api_key: str = ""
    base_url: str = ONEINCH_API_BASE
    timeout_sec: float = ONEINCH_TIMEOUT_SEC
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS

    def resolved_api_key(self) -> str:
        """Configured key, or $ONEINCH_API_KEY when left empty."""
        return self.api_key or os.environ.get(ONEINCH_API_KEY_ENV, "")


@dataclass
class ProverConfig:
    """Proof artifacts and backend."""
    backend: str = "native"
    artifact_dir: str = "./artifacts"
    generate_keys: bool = False
    snarkjs_binary: str = SNARKJS_BINARY
    timeout_sec: float = SNARKJS_TIMEOUT_SEC


@dataclass
class ScannerConfig:
    """Deposit event scan configuration."""
    chunk_blocks: int = SCAN_CHUNK_BLOCKS
    lookback_blocks: Optional[int] = SCAN_LOOKBACK_BLOCKS
    retries: int = SCAN_RETRY_COUNT
    backoff_base_sec: float = SCAN_BACKOFF_BASE_SEC
    backoff_max_sec: float = SCAN_BACKOFF_MAX_SEC
    timeout_sec: float = SCAN_TIMEOUT_SEC


@dataclass
class StorageConfig:
    """Storage configuration."""
    data_dir: str = "./data"
    events_db: str = "iceberg_events.db"
    persist_events: bool = True
    sync_interval_sec: float = EVENT_SYNC_INTERVAL_SEC


@dataclass
class APIConfig:
    """API server configuration."""
    enabled: bool = True
    host: str = DEFAULT_API_HOST
    port: int = DEFAULT_API_PORT
    max_batch_size: int = MAX_BATCH_SIZE


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class IcebergConfig:
    """
    Complete node configuration.

    All settings for running an Iceberg pool node.
    """
    name: str = "iceberg-node"

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    prover: ProverConfig = field(default_factory=ProverConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def data_path(self) -> Path:
        return Path(self.storage.data_dir)

    @property
    def events_db_path(self) -> Path:
        return self.data_path / self.storage.events_db

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        # Ledger validation
        if self.ledger.chain_id not in SUPPORTED_CHAINS and self.ledger.chain_id != CHAIN_ID_LOCAL:
            errors.append(f"Unsupported chain id: {self.ledger.chain_id}")
        if self.ledger.depth < 1 or self.ledger.depth > 32:
            errors.append(f"Invalid tree depth: {self.ledger.depth}")
        for role in ("owner", "operator", "pool_address"):
            try:
                Address.parse(getattr(self.ledger, role))
            except IcebergError:
                errors.append(f"Invalid {role} address: {getattr(self.ledger, role)!r}")
        for i, entry in enumerate(self.ledger.swap_configs):
            try:
                Address.parse(entry.token_in)
            except IcebergError:
                errors.append(f"swap_configs[{i}]: invalid token_in {entry.token_in!r}")
            if not str(entry.fixed_amount).isdigit() or int(entry.fixed_amount) == 0:
                errors.append(f"swap_configs[{i}]: fixed_amount must be a positive integer")

        # Aggregator validation
        if self.aggregator.backend not in AGGREGATOR_BACKENDS:
            errors.append(f"Unknown aggregator backend: {self.aggregator.backend}")
        if self.aggregator.backend == "oneinch" and not self.aggregator.resolved_api_key():
            errors.append(f"oneinch backend needs api_key or ${ONEINCH_API_KEY_ENV}")
        if self.aggregator.slippage_bps < 0 or self.aggregator.slippage_bps > MAX_SLIPPAGE_BPS:
            errors.append(f"slippage_bps must be in [0, {MAX_SLIPPAGE_BPS}]")

        # Prover validation
        if self.prover.backend not in PROVER_BACKENDS:
            errors.append(f"Unknown prover backend: {self.prover.backend}")
        if not self.prover.artifact_dir:
            errors.append("artifact_dir cannot be empty")

        # Scanner validation
        if self.scanner.retries < 1:
            errors.append("scanner retries must be at least 1")
        if self.scanner.chunk_blocks < 1:
            errors.append("scanner chunk_blocks must be at least 1")
        if self.scanner.timeout_sec <= 0:
            errors.append("scanner timeout_sec must be positive")

        # Storage validation
        if not self.storage.data_dir:
            errors.append("data_dir cannot be empty")
        if self.storage.sync_interval_sec <= 0:
            errors.append("sync_interval_sec must be positive")

        # API validation
        if self.api.enabled:
            if self.api.port < 1 or self.api.port > 65535:
                errors.append(f"Invalid API port: {self.api.port}")

        return errors

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return {
            "name": self.name,
            "ledger": asdict(self.ledger),
            "aggregator": asdict(self.aggregator),
            "prover": asdict(self.prover),
            "scanner": asdict(self.scanner),
            "storage": asdict(self.storage),
            "api": asdict(self.api),
            "log": asdict(self.log),
        }

    def save(self, path: str) -> None:
        """Save configuration to file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> "IcebergConfig":
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        config = cls(name=data.get("name", "iceberg-node"))

        if "ledger" in data:
            ledger = dict(data["ledger"])
            entries = ledger.pop("swap_configs", None)
            config.ledger = LedgerConfig(**ledger)
            if entries is not None:
                config.ledger.swap_configs = [SwapConfigEntry(**e) for e in entries]

        if "aggregator" in data:
            config.aggregator = AggregatorConfig(**data["aggregator"])

        if "prover" in data:
            config.prover = ProverConfig(**data["prover"])

        if "scanner" in data:
            config.scanner = ScannerConfig(**data["scanner"])

        if "storage" in data:
            config.storage = StorageConfig(**data["storage"])

        if "api" in data:
            config.api = APIConfig(**data["api"])

        if "log" in data:
            config.log = LogConfig(**data["log"])

        logger.info(f"Configuration loaded from {path}")
        return config

    @classmethod
    def default_arbitrum(cls) -> "IcebergConfig":
        """Arbitrum One pool quoting through 1inch."""
        return cls(name="iceberg-arbitrum")

    @classmethod
    def default_local(cls) -> "IcebergConfig":
        """Local pool with the mock aggregator and freshly generated keys."""
        config = cls(name="iceberg-local")

        config.ledger.chain_id = CHAIN_ID_LOCAL
        config.ledger.owner = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        config.ledger.operator = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        config.ledger.pool_address = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
        config.aggregator.backend = "mock"
        config.prover.generate_keys = True
        config.storage.data_dir = "./data-local"

        return config


def setup_logging(config: LogConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
    )
