# Keychain - Runtime Configuration
#
# Settings come from environment variables, optionally seeded from a
# .env file in the working directory (python-dotenv).
# Cryptographic parameters are NOT configurable here: the persisted
# record does not carry them, so changing them would orphan old files.

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

DEFAULT_KEYCHAIN_PATH = "data/keychain.json"
DEFAULT_AUDIT_DIR = "./audit_logs"
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8000


@dataclass(frozen=True)
class KeychainSettings:
    """Process-wide settings for the keychain service and CLI."""
    keychain_path: Path
    audit_log_dir: Path
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT

    @classmethod
    def from_env(cls) -> "KeychainSettings":
        """Build settings from CITADEL_* environment variables."""
        port = os.environ.get("CITADEL_KEYCHAIN_PORT", str(DEFAULT_API_PORT))
        try:
            api_port = int(port)
        except ValueError:
            raise ValueError(f"CITADEL_KEYCHAIN_PORT must be an integer; got {port!r}")

        return cls(
            keychain_path=Path(os.environ.get("CITADEL_KEYCHAIN_PATH", DEFAULT_KEYCHAIN_PATH)),
            audit_log_dir=Path(os.environ.get("CITADEL_AUDIT_DIR", DEFAULT_AUDIT_DIR)),
            api_host=os.environ.get("CITADEL_KEYCHAIN_HOST", DEFAULT_API_HOST),
            api_port=api_port,
        )


_settings: Optional[KeychainSettings] = None


def get_settings() -> KeychainSettings:
    """Get global settings (loaded once, .env first)."""
    global _settings
    if _settings is None:
        load_dotenv(find_dotenv(usecwd=True))
        _settings = KeychainSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the env."""
    global _settings
    _settings = None
