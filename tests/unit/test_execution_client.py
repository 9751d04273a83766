"""Piston client tests over httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from learnquest.errors import UpstreamError, ValidationError
from learnquest.execution.client import RUNTIMES_CACHE_KEY, PistonClient

RUNTIMES = [
    {"language": "python", "version": "3.10.0", "aliases": ["py", "py3", "python3"]},
    {"language": "javascript", "version": "18.15.0", "aliases": ["node-javascript", "node-js", "js"]},
]


def _transport(calls: list[httpx.Request], execute_status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path.endswith("/runtimes"):
            return httpx.Response(200, json=RUNTIMES)
        if request.url.path.endswith("/execute"):
            if execute_status != 200:
                return httpx.Response(execute_status, text="upstream exploded")
            payload = json.loads(request.content)
            return httpx.Response(200, json={
                "language": payload["language"],
                "version": payload["version"],
                "run": {"stdout": "hello\n", "stderr": "", "code": 0, "output": "hello\n"},
            })
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestRuntimes:
    @pytest.mark.asyncio
    async def test_fetches_and_caches(self, fake_redis):
        calls: list[httpx.Request] = []
        client = PistonClient("https://piston.test/api/v2/piston", redis=fake_redis,
                              cache_ttl_seconds=3600, transport=_transport(calls))

        assert await client.runtimes() == RUNTIMES
        assert await client.runtimes() == RUNTIMES
        assert len(calls) == 1
        assert fake_redis.ttls[RUNTIMES_CACHE_KEY] == 3600

    @pytest.mark.asyncio
    async def test_without_redis_always_fetches(self):
        calls: list[httpx.Request] = []
        client = PistonClient("https://piston.test/api/v2/piston", transport=_transport(calls))
        await client.runtimes()
        await client.runtimes()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_upstream_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        client = PistonClient("https://piston.test", transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamError):
            await client.runtimes()


class TestExecute:
    @pytest.mark.asyncio
    async def test_resolves_alias_and_posts_payload(self):
        calls: list[httpx.Request] = []
        client = PistonClient("https://piston.test", transport=_transport(calls))

        result = await client.execute("py", "print('hello')", stdin="x", args=["-v"])

        assert result["run"]["stdout"] == "hello\n"
        payload = json.loads(calls[-1].content)
        assert payload["language"] == "python"
        assert payload["version"] == "3.10.0"
        assert payload["files"] == [{"content": "print('hello')"}]
        assert payload["stdin"] == "x"
        assert payload["args"] == ["-v"]
        assert payload["compile_timeout"] == 10000
        assert payload["run_timeout"] == 5000

    @pytest.mark.asyncio
    async def test_unsupported_language(self):
        client = PistonClient("https://piston.test", transport=_transport([]))
        with pytest.raises(ValidationError, match="not supported"):
            await client.execute("cobol", "DISPLAY 'HI'.")

    @pytest.mark.asyncio
    async def test_execute_error_status(self):
        client = PistonClient("https://piston.test", transport=_transport([], execute_status=500))
        with pytest.raises(UpstreamError, match="500"):
            await client.execute("python", "print(1)")
