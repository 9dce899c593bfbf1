"""GitHub CLI utility functions."""

import os


def get_gh_env(hostname: str = "github.com", token: str | None = None) -> dict[str, str]:
    """Build environment dict for gh CLI subprocess calls.

    The gh CLI reads different environment variables for github.com vs
    GitHub Enterprise Server (GHES):
    - github.com: GITHUB_TOKEN
    - GHES: GH_HOST and GH_ENTERPRISE_TOKEN

    Args:
        hostname: GitHub hostname the command targets
        token: Explicit token; falls back to GH_ENTERPRISE_TOKEN for GHES

    Returns:
        Dict to merge with os.environ for subprocess calls. Empty dict when
        gh should use its own stored credentials.

    Example:
        >>> env = {**os.environ, **get_gh_env("github.com", "ghp_xxx")}
        >>> subprocess.run(["gh", "api", "graphql", ...], env=env)
    """
    if hostname == "github.com":
        return {"GITHUB_TOKEN": token} if token else {}

    token = token or os.environ.get("GH_ENTERPRISE_TOKEN")
    if token:
        return {"GH_HOST": hostname, "GH_ENTERPRISE_TOKEN": token}
    return {"GH_HOST": hostname}
