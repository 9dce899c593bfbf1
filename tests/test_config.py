"""Tests for the config module."""

import os
import subprocess
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from src.config import (
    Config,
    calculate_effective_timeout,
    format_duration,
    get_cache_dir,
    load_config,
    load_config_from_env,
    load_config_from_file,
    parse_config_file,
    parse_duration,
)


@pytest.fixture
def no_git():
    """Fixture making git rev-parse fail so the cache dir falls back to cwd."""
    with patch(
        "src.config.subprocess.run",
        side_effect=subprocess.CalledProcessError(128, ["git"]),
    ):
        yield


@pytest.mark.unit
class TestParseDuration:
    """Tests for parse_duration()."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("90s", 90.0),
            ("1.5m", 90.0),
            ("2m30s", 150.0),
            ("15m", 900.0),
            ("1h", 3600.0),
            ("1h30m", 5400.0),
            ("250ms", 0.25),
            ("45", 45.0),
            (" 5M ", 300.0),
            ("0s", 0.0),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "   ", "abc", "5x", "m5", "5m 30s", "-5s", "-1", "inf", "nan"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


@pytest.mark.unit
class TestFormatDuration:
    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "0s"), (45, "45s"), (60, "1m"), (150, "2m30s"), (3600, "1h"), (3725, "1h2m5s")],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


@pytest.mark.unit
class TestCalculateEffectiveTimeout:
    """Tests for calculate_effective_timeout()."""

    @patch.dict(os.environ, {}, clear=True)
    def test_no_limit(self):
        assert calculate_effective_timeout("5m") == (300.0, 300.0, False)

    @patch.dict(os.environ, {"BASH_MAX_TIMEOUT_MS": "120000"}, clear=True)
    def test_capped_with_margin(self):
        """Test that a long request is capped below the shell limit."""
        assert calculate_effective_timeout("15m") == (110.0, 900.0, True)

    @patch.dict(os.environ, {"BASH_MAX_TIMEOUT_MS": "20000"}, clear=True)
    def test_margin_is_ten_percent_for_short_limits(self):
        effective, _, capped = calculate_effective_timeout("1m")

        assert effective == pytest.approx(18.0)
        assert capped

    @patch.dict(os.environ, {"BASH_MAX_TIMEOUT_MS": "900000"}, clear=True)
    def test_short_request_not_capped(self):
        assert calculate_effective_timeout("90s") == (90.0, 90.0, False)

    @patch.dict(os.environ, {"BASH_DEFAULT_TIMEOUT_MS": "60000"}, clear=True)
    def test_default_timeout_env_is_fallback(self):
        assert calculate_effective_timeout("5m") == (pytest.approx(54.0), 300.0, True)

    @patch.dict(
        os.environ,
        {"BASH_MAX_TIMEOUT_MS": "not-a-number", "BASH_DEFAULT_TIMEOUT_MS": "60000"},
        clear=True,
    )
    def test_invalid_env_is_skipped(self):
        assert calculate_effective_timeout("5m")[0] == pytest.approx(54.0)


@pytest.mark.unit
class TestParseConfigFile:
    """Tests for parse_config_file()."""

    def test_parses_keys_comments_and_quotes(self):
        with tempfile.NamedTemporaryFile("w", suffix=".config", delete=False) as f:
            f.write('# comment\n\nGH_HELPER_REPO="owner/repo"\nGH_HELPER_TIMEOUT = 10m\nBAD LINE\n')
            path = Path(f.name)
        try:
            assert parse_config_file(path) == {
                "GH_HELPER_REPO": "owner/repo",
                "GH_HELPER_TIMEOUT": "10m",
            }
        finally:
            path.unlink()


@pytest.mark.unit
class TestLoadConfig:
    """Tests for loading configuration from env and file."""

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self, no_git):
        config = load_config_from_env()

        assert config == Config(cache_dir=str(Path(".") / ".cache"))
        assert config.poll_interval == 30.0
        assert config.default_timeout == "5m"
        assert config.max_concurrency == 5
        assert config.checks_complete_merge_states == ["CLEAN", "HAS_HOOKS"]

    @patch.dict(
        os.environ,
        {
            "GITHUB_TOKEN": "ghp_x",
            "GH_HELPER_REPO": "owner/repo",
            "GH_HELPER_POLL_INTERVAL": "10s",
            "GH_HELPER_TIMEOUT": "15m",
            "GH_HELPER_MAX_CONCURRENCY": "3",
            "GH_HELPER_MAX_CONSECUTIVE_FAILURES": "0",
            "GH_HELPER_CACHE_DIR": "/tmp/gh-cache",
            "GH_HELPER_LOG_FILE": "/tmp/gh.log",
            "CHECKS_COMPLETE_MERGE_STATES": "clean, unstable",
        },
        clear=True,
    )
    def test_env_values(self):
        config = load_config_from_env()

        assert config.github_token == "ghp_x"
        assert config.repo == "owner/repo"
        assert config.poll_interval == 10.0
        assert config.default_timeout == "15m"
        assert config.max_concurrency == 3
        assert config.max_consecutive_failures == 0
        assert config.cache_dir == "/tmp/gh-cache"
        assert config.log_file == "/tmp/gh.log"
        assert config.checks_complete_merge_states == ["CLEAN", "UNSTABLE"]

    @pytest.mark.parametrize(
        "env",
        [
            {"GH_HELPER_REPO": "no-slash"},
            {"GH_HELPER_MAX_CONCURRENCY": "0"},
            {"GH_HELPER_MAX_CONCURRENCY": "many"},
            {"GH_HELPER_MAX_CONSECUTIVE_FAILURES": "-1"},
            {"GH_HELPER_TIMEOUT": "soon"},
            {"GH_HELPER_POLL_INTERVAL": "-5s"},
        ],
    )
    def test_invalid_values_raise(self, env):
        with patch.dict(os.environ, {"GH_HELPER_CACHE_DIR": "/tmp/c", **env}, clear=True):
            with pytest.raises(ValueError):
                load_config_from_env()

    @patch.dict(os.environ, {"GH_HELPER_REPO": "env/repo", "GITHUB_TOKEN": "env-token"}, clear=True)
    def test_file_overrides_env(self, tmp_path):
        """Test that the config file wins and env fills in the rest."""
        config_path = tmp_path / "config"
        config_path.write_text("GH_HELPER_REPO=file/repo\nGH_HELPER_CACHE_DIR=/tmp/c\n")

        config = load_config_from_file(config_path)

        assert config.repo == "file/repo"
        assert config.github_token == "env-token"

    @patch.dict(os.environ, {"GH_HELPER_CACHE_DIR": "/tmp/c"}, clear=True)
    def test_load_config_prefers_file(self, tmp_path, monkeypatch):
        (tmp_path / ".gh-helper").mkdir()
        (tmp_path / ".gh-helper" / "config").write_text("GH_HELPER_TIMEOUT=20m\n")
        monkeypatch.chdir(tmp_path)

        assert load_config().default_timeout == "20m"

    @patch.dict(os.environ, {"GH_HELPER_CACHE_DIR": "/tmp/c"}, clear=True)
    def test_load_config_without_file_uses_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert load_config().default_timeout == "5m"


@pytest.mark.unit
class TestGetCacheDir:
    def test_uses_repository_root(self):
        with patch(
            "src.config.subprocess.run", return_value=MagicMock(stdout="/work/project\n")
        ):
            assert get_cache_dir() == Path("/work/project/.cache")

    def test_falls_back_to_cwd(self, no_git):
        assert get_cache_dir() == Path(".") / ".cache"
