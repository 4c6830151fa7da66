"""
GitHub Commit Pre-fetch

The FDC verifier cannot reliably reach api.github.com (shared egress gets
rate-limited), so commit data is fetched here and republished through the
source cache. Only the fields the commit filter reads are kept:

    {"sha": ..., "commit": {"tree": {"sha": ...}}, "author": {"login": ...}}

A smaller document also means a smaller, stable body for the verifier to hash.
"""

import logging
from typing import Any, Dict, Optional

import aiohttp

from veriflare.fdc.errors import UpstreamRejectedError, truncate_body
from veriflare_canonical.constants import MAX_ERROR_BODY_CHARS

logger = logging.getLogger(__name__)


def minimal_commit(commit: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a GitHub commit API object to sha, tree sha and author login."""
    author = commit.get("author") or {}
    tree = (commit.get("commit") or {}).get("tree") or {}
    return {
        "sha": commit.get("sha"),
        "commit": {"tree": {"sha": tree.get("sha")}},
        "author": {"login": author.get("login")},
    }


async def fetch_commit_summary(
    repo_full_name: str,
    commit_sha: str,
    api_url: str = "https://api.github.com",
    token: Optional[str] = None,
    timeout_seconds: float = 30,
) -> Dict[str, Any]:
    """
    Fetch a commit and return its minimal form.

    Raises:
        UpstreamRejectedError: GitHub returned a non-2xx status
        aiohttp.ClientError / asyncio.TimeoutError: Network failure
    """
    url = f"{api_url.rstrip('/')}/repos/{repo_full_name}/commits/{commit_sha}"
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": "Veriflare-Gateway",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"

    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url, headers=headers) as response:
            if response.status != 200:
                body = truncate_body(await response.text(), MAX_ERROR_BODY_CHARS)
                logger.warning(f"[GITHUB] {repo_full_name}@{commit_sha[:7]} -> HTTP {response.status}")
                raise UpstreamRejectedError(
                    f"GitHub returned HTTP {response.status} for {repo_full_name}@{commit_sha}",
                    status=response.status,
                    body=body,
                )
            commit = await response.json(content_type=None)

    summary = minimal_commit(commit)
    logger.info(
        f"[GITHUB] Fetched {repo_full_name}@{commit_sha[:7]} "
        f"(tree {str(summary['commit']['tree']['sha'])[:7]}, author {summary['author']['login']})"
    )
    return summary
