"""Tests for the GitHub commit pre-fetch and the periodic sweep."""

import pytest
from aiohttp import web

from veriflare.fdc.errors import UpstreamRejectedError
from veriflare.tasks.cache_sweep import run_sweep
from veriflare.utils.github import fetch_commit_summary, minimal_commit
from fakes import serve

COMMIT = {
    "sha": "c0ffee",
    "node_id": "C_kw",
    "commit": {"tree": {"sha": "7ree", "url": "https://x"}, "message": "fix"},
    "author": {"login": "octocat", "id": 1},
    "files": [{"filename": "a.py"}],
}


def test_minimal_commit_keeps_filter_fields_only():
    assert minimal_commit(COMMIT) == {
        "sha": "c0ffee",
        "commit": {"tree": {"sha": "7ree"}},
        "author": {"login": "octocat"},
    }


def test_minimal_commit_without_linked_author():
    assert minimal_commit({"sha": "a", "commit": {"tree": {"sha": "b"}}, "author": None})["author"] == {"login": None}


@pytest.mark.asyncio
async def test_fetch_commit_summary_sends_token():
    seen = {}

    async def handler(request):
        seen["path"] = request.path
        seen["auth"] = request.headers.get("Authorization")
        return web.json_response(COMMIT)

    async with serve([("GET", "/repos/octo/repo/commits/c0ffee", handler)]) as base:
        summary = await fetch_commit_summary("octo/repo", "c0ffee", api_url=base, token="gh-token")

    assert summary["commit"]["tree"]["sha"] == "7ree"
    assert seen == {"path": "/repos/octo/repo/commits/c0ffee", "auth": "Bearer gh-token"}


@pytest.mark.asyncio
async def test_fetch_commit_summary_not_found():
    async def handler(request):
        return web.json_response({"message": "No commit found for SHA: bad"}, status=422)

    async with serve([("GET", "/repos/octo/repo/commits/bad", handler)]) as base:
        with pytest.raises(UpstreamRejectedError) as exc_info:
            await fetch_commit_summary("octo/repo", "bad", api_url=base)

    assert exc_info.value.status == 422
    assert "No commit found" in exc_info.value.body


def test_sweep_removes_expired_entries_and_old_records(source_cache, store, clock):
    old_key = source_cache.put({"old": True})
    done = store.create().id
    store.mark_failed(done, "boom", "network")
    active = store.create().id

    clock.advance(3601)
    fresh_key = source_cache.put({"fresh": True})

    assert run_sweep(source_cache, store, record_ttl_seconds=3600) == 1
    assert source_cache.get(old_key) is None
    assert source_cache.get(fresh_key) == {"fresh": True}
    assert done not in store
    assert active in store


def test_sweep_keeps_records_when_ttl_disabled(source_cache, store, clock):
    done = store.create().id
    store.mark_failed(done, "boom", "network")
    clock.advance(10 * 3600)

    run_sweep(source_cache, store)

    assert done in store
