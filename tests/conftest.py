"""Pytest configuration and shared fixtures."""

import os
import tempfile
from unittest.mock import patch

import pytest
from hypothesis import settings

from src.github_client import GitHubClient

# Configure Hypothesis profiles for different environments
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture
def github_client():
    """Fixture providing a GitHubClient for owner/repo with a test token."""
    return GitHubClient("owner/repo", token="test-token")


@pytest.fixture
def ghes_client():
    """Fixture providing a GitHubClient for a GitHub Enterprise Server host."""
    return GitHubClient("github.mycompany.com/org/repo", token="ghes-token")


@pytest.fixture
def temp_cache_dir():
    """Fixture providing a temporary cache directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def mock_gh_subprocess():
    """Fixture for mocking subprocess calls to gh CLI."""
    with patch("subprocess.run") as mock_run:
        yield mock_run