"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass

from .constants import NATIVE_ASSET, TARGET_ASSET


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    """Application configuration."""

    # Operator identity
    owner_address: str = ""
    operator_token: str = ""

    # Assets and the stable burner seeded at startup
    target_asset: str = TARGET_ASSET
    target_handler: str = ""
    native_asset: str = NATIVE_ASSET

    # Keeper loop
    keeper_enabled: bool = True
    keeper_interval_s: int = 3600

    # Persistence
    sqlite_path: str = "data/reserves.db"
    sqlite_enabled: bool = True
    audit_log_dir: str = "audit"

    # Paper mode collaborators
    paper_markets_file: str = ""

    # Control plane
    control_host: str = "127.0.0.1"
    control_port: int = 9100

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load config from environment variables."""
        return cls(
            # Operator
            owner_address=os.getenv("OWNER_ADDRESS", ""),
            operator_token=os.getenv("OPERATOR_TOKEN", ""),

            # Assets
            target_asset=os.getenv("TARGET_ASSET", TARGET_ASSET),
            target_handler=os.getenv("TARGET_HANDLER", ""),
            native_asset=os.getenv("NATIVE_ASSET", NATIVE_ASSET),

            # Keeper
            keeper_enabled=_env_bool("KEEPER_ENABLED", "true"),
            keeper_interval_s=int(os.getenv("KEEPER_INTERVAL_S", "3600")),

            # Persistence
            sqlite_path=os.getenv("SQLITE_PATH", "data/reserves.db"),
            sqlite_enabled=_env_bool("SQLITE_ENABLED", "true"),
            audit_log_dir=os.getenv("AUDIT_LOG_DIR", "audit"),

            # Paper mode
            paper_markets_file=os.getenv("PAPER_MARKETS_FILE", ""),

            # Control plane
            control_host=os.getenv("CONTROL_HOST", "127.0.0.1"),
            control_port=int(os.getenv("CONTROL_PORT", "9100")),

            # Logging
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_env_file(cls, path: str) -> "AppConfig":
        """
        Load config from .env file, then environment variables.

        Environment variables override file values.
        """
        if os.path.exists(path):
            with open(path) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    if "=" in line:
                        key, value = line.split("=", 1)
                        key = key.strip()
                        value = value.strip().strip("'\"")
                        if key not in os.environ:
                            os.environ[key] = value

        return cls.from_env()

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.owner_address:
            errors.append("OWNER_ADDRESS is required")

        if not self.target_handler:
            errors.append("TARGET_HANDLER is required")

        if not self.target_asset:
            errors.append("TARGET_ASSET must not be empty")

        if self.keeper_interval_s < 1:
            errors.append("KEEPER_INTERVAL_S must be at least 1")

        if self.control_port < 1 or self.control_port > 65535:
            errors.append("CONTROL_PORT must be between 1 and 65535")

        if self.paper_markets_file and not os.path.exists(self.paper_markets_file):
            errors.append(f"PAPER_MARKETS_FILE not found: {self.paper_markets_file}")

        return errors
