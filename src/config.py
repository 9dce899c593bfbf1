"""Configuration module for gh-helper.

This module provides configuration management for the application,
loading settings from a .gh-helper/config file (KEY=value format) with
fallback to environment variables.
"""

import math
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from src.logger import get_logger

logger = get_logger(__name__)

CONFIG_DIR = ".gh-helper"
CONFIG_FILE = "config"

DEFAULT_TIMEOUT = "5m"

# Timeout limits exported by the assistant's shell tool, in milliseconds
MAX_TIMEOUT_ENV = "BASH_MAX_TIMEOUT_MS"
DEFAULT_TIMEOUT_ENV = "BASH_DEFAULT_TIMEOUT_MS"

_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?|\.\d+)(ms|h|m|s)")


@dataclass
class Config:
    """Application configuration.

    Attributes:
        github_token: Token passed to gh; None uses gh auth login credentials
        repo: Default repository in 'owner/repo' format; None uses gh's current repo
        poll_interval: Seconds between status polls while waiting
        default_timeout: Wait timeout as a duration string (e.g. "5m", "90s")
        max_concurrency: Maximum simultaneous mutations in bulk operations
        max_consecutive_failures: Failed status fetches in a row before a wait aborts
        cache_dir: Directory holding review markers
        log_file: Optional rotating log file
        checks_complete_merge_states: mergeStateStatus values meaning "no checks configured"
    """

    github_token: str | None = None
    repo: str | None = None
    poll_interval: float = 30.0
    default_timeout: str = DEFAULT_TIMEOUT
    max_concurrency: int = 5
    max_consecutive_failures: int = 5
    cache_dir: str = field(default_factory=lambda: str(get_cache_dir()))
    log_file: str | None = None
    checks_complete_merge_states: list[str] = field(
        default_factory=lambda: ["CLEAN", "HAS_HOOKS"]
    )


def get_repository_root() -> Path | None:
    """Return the top-level directory of the current git worktree, if any."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    root = result.stdout.strip()
    return Path(root) if root else None


def get_cache_dir() -> Path:
    """Get the cache directory for the current repository.

    Each git worktree gets its own cache so parallel worktrees working on
    different PRs don't share review markers. Falls back to the current
    directory outside a repository.
    """
    root = get_repository_root() or Path(".")
    return root / ".cache"


def parse_duration(value: str) -> float:
    """Parse a duration string into seconds.

    Accepts durations such as "90s", "1.5m", "2m30s", "15m", "1h"
    and "250ms". A bare number is taken as seconds.

    Raises:
        ValueError: If the string is empty, malformed, or negative
    """
    text = value.strip().lower()
    if not text:
        raise ValueError("Empty duration")

    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(text) or pos == 0:
            raise ValueError(f"Invalid duration: {value!r} (examples: 90s, 1.5m, 2m30s)") from None

    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"Duration must be a finite, non-negative value: {value!r}")
    return seconds


def format_duration(seconds: float) -> str:
    """Format seconds the way users type them, e.g. 150 -> "2m30s"."""
    total = int(round(seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)


def _timeout_limit_from_env() -> float | None:
    for name in (MAX_TIMEOUT_ENV, DEFAULT_TIMEOUT_ENV):
        raw = os.environ.get(name)
        if not raw:
            continue
        try:
            millis = int(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {name}={raw!r}")
            continue
        if millis > 0:
            logger.debug(f"{name} detected: {millis}ms")
            return millis / 1000.0
    return None


def calculate_effective_timeout(requested: str) -> tuple[float, float, bool]:
    """Apply the shell tool's timeout limit to a requested wait timeout.

    When gh-helper runs under an assistant whose shell kills commands after
    BASH_MAX_TIMEOUT_MS (or BASH_DEFAULT_TIMEOUT_MS), waiting longer than that
    is pointless. The limit is reduced by a small margin so the command can
    report its status before being killed.

    Returns:
        Tuple of (effective_seconds, requested_seconds, was_capped)
    """
    requested_seconds = parse_duration(requested)
    limit = _timeout_limit_from_env()
    if limit is None:
        return requested_seconds, requested_seconds, False

    margin = min(10.0, limit / 10)
    ceiling = max(limit - margin, 0.0)
    if requested_seconds > ceiling:
        return ceiling, requested_seconds, True
    return requested_seconds, requested_seconds, False


def parse_config_file(config_path: Path) -> dict[str, str]:
    """Parse a KEY=value config file.

    Args:
        config_path: Path to the config file

    Returns:
        Dictionary of key-value pairs
    """
    config = {}
    with open(config_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (
                    value.startswith("'") and value.endswith("'")
                ):
                    value = value[1:-1]
                config[key] = value
    return config


def _parse_int(data: dict[str, str], key: str, default: int, minimum: int) -> int:
    raw = data.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{key} must be at least {minimum}, got {value}")
    return value


def _build_config(data: dict[str, str]) -> Config:
    """Build a Config from a flat mapping of setting names to strings.

    Raises:
        ValueError: If a value is malformed
    """
    repo = data.get("GH_HELPER_REPO") or None
    if repo and repo.count("/") != 1:
        raise ValueError(f"GH_HELPER_REPO must be in 'owner/repo' format, got {repo!r}")

    poll_raw = data.get("GH_HELPER_POLL_INTERVAL")
    poll_interval = parse_duration(poll_raw) if poll_raw else 30.0

    default_timeout = data.get("GH_HELPER_TIMEOUT") or DEFAULT_TIMEOUT
    parse_duration(default_timeout)

    merge_states_raw = data.get("CHECKS_COMPLETE_MERGE_STATES")
    if merge_states_raw:
        merge_states = [s.strip().upper() for s in merge_states_raw.split(",") if s.strip()]
    else:
        merge_states = ["CLEAN", "HAS_HOOKS"]

    return Config(
        github_token=data.get("GITHUB_TOKEN") or None,
        repo=repo,
        poll_interval=poll_interval,
        default_timeout=default_timeout,
        max_concurrency=_parse_int(data, "GH_HELPER_MAX_CONCURRENCY", 5, minimum=1),
        max_consecutive_failures=_parse_int(
            data, "GH_HELPER_MAX_CONSECUTIVE_FAILURES", 5, minimum=0
        ),
        cache_dir=data.get("GH_HELPER_CACHE_DIR") or str(get_cache_dir()),
        log_file=data.get("GH_HELPER_LOG_FILE") or None,
        checks_complete_merge_states=merge_states,
    )


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from a KEY=value config file.

    Environment variables fill in settings the file leaves out.

    Raises:
        ValueError: If a value is malformed
        FileNotFoundError: If the config file doesn't exist
    """
    data = {**os.environ, **parse_config_file(config_path)}
    return _build_config(data)


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Raises:
        ValueError: If a value is malformed
    """
    return _build_config(dict(os.environ))


def load_config() -> Config:
    """Load configuration from config file or environment variables.

    Priority:
    1. Config file at .gh-helper/config
    2. Environment variables

    Raises:
        ValueError: If a value is malformed
    """
    config_path = Path.cwd() / CONFIG_DIR / CONFIG_FILE

    if config_path.exists():
        logger.debug(f"Loading config from {config_path}")
        return load_config_from_file(config_path)
    return load_config_from_env()
