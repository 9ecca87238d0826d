"""
Configuration Management

Handles loading configuration from environment variables and config files.
The defaults match the wire constants both peers must agree on: port 1234,
1024-byte chunks and a half-second redial interval.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Iterator, Optional
import itertools
import json

from dotenv import load_dotenv


ENV_PREFIX = 'PAIRSHARE_'


def _optional_int(value: Optional[str]) -> Optional[int]:
    """Parse an optional positive limit; empty or 'none' means unbounded."""
    if value is None or value.strip().lower() in ('', 'none'):
        return None
    return int(value)


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often and how many times the receiver redials the sender.

    max_attempts=None keeps dialing until the process is killed.
    """
    interval: float = 0.5
    max_attempts: Optional[int] = None

    def attempts(self) -> Iterator[int]:
        """Yield 1-based attempt numbers until the policy is exhausted."""
        if self.max_attempts is None:
            return itertools.count(1)
        return iter(range(1, self.max_attempts + 1))


@dataclass
class Config:
    """
    Transfer Configuration.

    Configuration priority (highest to lowest):
    1. Command-line options
    2. Environment variables (PAIRSHARE_*)
    3. Config file (JSON)
    4. Default values
    """
    # Network
    host: str = '0.0.0.0'
    port: int = 1234
    connect_timeout: float = 10.0

    # Retry
    retry_interval: float = 0.5
    max_dial_attempts: Optional[int] = None  # None: dial until killed

    # Streaming
    chunk_size: int = 1024

    # Storage
    download_dir: Path = field(default_factory=lambda: Path('.'))
    max_name_probes: Optional[int] = None  # None: probe until a name is free

    # Progress
    show_progress: bool = True
    progress_interval: float = 0.5
    progress_bar_length: int = 40

    # Logging
    log_level: str = 'INFO'

    def retry_policy(self) -> RetryPolicy:
        """Build the dial retry policy from these settings."""
        return RetryPolicy(
            interval=self.retry_interval,
            max_attempts=self.max_dial_attempts,
        )

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        config = cls()
        for key, value in env_overrides().items():
            setattr(config, key, value)
        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)
        config.connect_timeout = data.get('connect_timeout', config.connect_timeout)

        # Retry
        config.retry_interval = data.get('retry_interval', config.retry_interval)
        config.max_dial_attempts = data.get('max_dial_attempts', config.max_dial_attempts)

        # Streaming
        config.chunk_size = data.get('chunk_size', config.chunk_size)

        # Storage
        if 'download_dir' in data:
            config.download_dir = Path(data['download_dir'])
        config.max_name_probes = data.get('max_name_probes', config.max_name_probes)

        # Progress
        config.show_progress = data.get('show_progress', config.show_progress)
        config.progress_interval = data.get('progress_interval', config.progress_interval)
        config.progress_bar_length = data.get(
            'progress_bar_length', config.progress_bar_length
        )

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'connect_timeout': self.connect_timeout,
            'retry_interval': self.retry_interval,
            'max_dial_attempts': self.max_dial_attempts,
            'chunk_size': self.chunk_size,
            'download_dir': str(self.download_dir),
            'max_name_probes': self.max_name_probes,
            'show_progress': self.show_progress,
            'progress_interval': self.progress_interval,
            'progress_bar_length': self.progress_bar_length,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == 'true'


# Config field -> parser for its PAIRSHARE_<FIELD> variable
_ENV_FIELDS = {
    # Network
    'host': str,
    'port': int,
    'connect_timeout': float,
    # Retry
    'retry_interval': float,
    'max_dial_attempts': _optional_int,
    # Streaming
    'chunk_size': int,
    # Storage
    'download_dir': Path,
    'max_name_probes': _optional_int,
    # Progress
    'show_progress': _parse_bool,
    'progress_interval': float,
    'progress_bar_length': int,
    # Logging
    'log_level': str,
}


def env_overrides() -> dict:
    """Fields set through PAIRSHARE_* variables (or a .env file), parsed."""
    load_dotenv()

    overrides = {}
    for key, parse in _ENV_FIELDS.items():
        value = os.getenv(ENV_PREFIX + key.upper())
        if value is not None:
            overrides[key] = parse(value)
    return overrides


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Any variable that is set wins, even when it equals the default
    for key, value in env_overrides().items():
        setattr(config, key, value)

    return config
