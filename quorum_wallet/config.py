"""
Configuration management for the wallet.
"""
import json
import os
from typing import Optional
from dataclasses import dataclass, asdict

from .core import to_address


@dataclass
class WalletConfig:
    """Deployment parameters. Addresses are hex strings."""
    chain_id: int = 1
    quorum: int = 2
    signers: list = None
    owner: Optional[str] = None
    initial_balance: int = 0

    def __post_init__(self):
        if self.signers is None:
            self.signers = []

    def signer_addresses(self) -> list[bytes]:
        return [to_address(s) for s in self.signers]

    def owner_address(self) -> Optional[bytes]:
        return to_address(self.owner) if self.owner else None


@dataclass
class DatabaseConfig:
    """Database configuration."""
    path: str = "./wallet_data"
    write_buffer_size: int = 4 * 1024 * 1024  # 4MB
    max_open_files: int = 1000
    compression: Optional[str] = "snappy"


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    wallet: WalletConfig
    database: DatabaseConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            wallet=WalletConfig(),
            database=DatabaseConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            wallet=WalletConfig(**data.get('wallet', {})),
            database=DatabaseConfig(**data.get('database', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        return {
            'wallet': asdict(self.wallet),
            'database': asdict(self.database),
            'monitoring': asdict(self.monitoring)
        }
