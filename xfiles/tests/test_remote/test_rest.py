import json

import httpx
import pytest

from xfiles.config import RemoteConfig, RetryConfig
from xfiles.errors import (
    InvalidEncoding,
    NetworkError,
    RateLimitExceeded,
    RemoteApiError,
    SerializationError,
)
from xfiles.remote import BearerTokenAdapter, RestAdapter, RetryPolicy, SignedAdapter
from xfiles.remote.rest import RETRYABLE_ERRORS, ServerError


def create_adapter(handler, cls=BearerTokenAdapter, *args, **override_args):
    base_args = dict(
        base_url="https://api.test",
        retry_policy=RetryPolicy(initial_backoff=0.001, retry_on=RETRYABLE_ERRORS),
        transport=httpx.MockTransport(handler),
    )

    if cls is BearerTokenAdapter and not args:
        args = ("token",)

    return cls(*args, **{**base_args, **override_args})


@pytest.mark.asyncio
async def test_fetch():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"data": {"id": "1", "text": "hello"}})

    adapter = create_adapter(handler)

    assert await adapter.fetch("1") == b"hello"

    assert requests[0].method == "GET"
    assert requests[0].url.path == "/2/tweets/1"
    assert requests[0].headers["Authorization"] == "Bearer token"

    await adapter.close()


@pytest.mark.asyncio
async def test_store():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"data": {"id": "42", "text": "hi"}})

    adapter = create_adapter(handler)

    assert await adapter.store(b"hi") == "42"
    assert bodies == [{"text": "hi"}]

    await adapter.close()


@pytest.mark.asyncio
async def test_store_reply():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"data": {"id": "43", "text": "re"}})

    adapter = create_adapter(handler)

    assert await adapter.store_reply("42", b"re") == "43"
    assert bodies == [{"text": "re", "reply": {"in_reply_to_tweet_id": "42"}}]

    await adapter.close()


@pytest.mark.asyncio
async def test_fetch_replies_paginated():
    params = []

    def handler(request):
        params.append(dict(request.url.params))

        if "next_token" not in request.url.params:
            return httpx.Response(
                200,
                json={
                    "data": [{"id": "4", "text": ""}, {"id": "3", "text": ""}],
                    "meta": {"next_token": "page2"},
                },
            )

        return httpx.Response(
            200, json={"data": [{"id": "2", "text": ""}], "meta": {"result_count": 1}}
        )

    adapter = create_adapter(handler, page_size=2)

    assert await adapter.fetch_replies("1") == ["2", "3", "4"]

    assert params[0]["query"] == "in_reply_to_tweet_id:1"
    assert params[0]["max_results"] == "2"
    assert params[1]["next_token"] == "page2"

    await adapter.close()


@pytest.mark.asyncio
async def test_fetch_replies_none():
    def handler(request):
        return httpx.Response(200, json={"meta": {"result_count": 0}})

    adapter = create_adapter(handler)

    assert await adapter.fetch_replies("1") == []

    await adapter.close()


@pytest.mark.asyncio
async def test_client_error_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(403, json={"detail": "forbidden"})

    adapter = create_adapter(handler)

    with pytest.raises(RemoteApiError) as e:
        await adapter.store(b"x")

    assert e.value.status == 403
    assert e.value.message == "forbidden"
    assert len(calls) == 1

    await adapter.close()


@pytest.mark.asyncio
async def test_error_list_message():
    def handler(request):
        return httpx.Response(
            400, json={"errors": [{"message": "bad request"}], "title": "Invalid"}
        )

    adapter = create_adapter(handler)

    with pytest.raises(RemoteApiError) as e:
        await adapter.fetch("1")

    assert e.value.message == "bad request"

    await adapter.close()


@pytest.mark.asyncio
async def test_rate_limit_retried():
    responses = [
        httpx.Response(429, json={"title": "Too Many Requests"}),
        httpx.Response(200, json={"data": {"id": "1", "text": "ok"}}),
    ]

    adapter = create_adapter(lambda request: responses.pop(0))

    assert await adapter.fetch("1") == b"ok"
    assert responses == []

    await adapter.close()


@pytest.mark.asyncio
async def test_rate_limit_exhausted():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, text="slow down")

    adapter = create_adapter(handler)

    with pytest.raises(RateLimitExceeded):
        await adapter.fetch("1")

    assert len(calls) == 3

    await adapter.close()


@pytest.mark.asyncio
async def test_server_error_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    adapter = create_adapter(handler)

    with pytest.raises(ServerError) as e:
        await adapter.fetch("1")

    assert e.value.status == 503
    assert len(calls) == 3

    await adapter.close()


@pytest.mark.asyncio
async def test_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    adapter = create_adapter(handler)

    with pytest.raises(NetworkError):
        await adapter.fetch("1")

    await adapter.close()


@pytest.mark.asyncio
async def test_invalid_json():
    def handler(request):
        return httpx.Response(200, text="<html>")

    adapter = create_adapter(handler)

    with pytest.raises(SerializationError):
        await adapter.fetch("1")

    await adapter.close()


@pytest.mark.asyncio
async def test_response_without_data():
    def handler(request):
        return httpx.Response(200, json={"errors": [{"detail": "Not Found Error"}]})

    adapter = create_adapter(handler)

    with pytest.raises(RemoteApiError) as e:
        await adapter.fetch("1")

    assert e.value.message == "Not Found Error"

    await adapter.close()


@pytest.mark.asyncio
async def test_signed_adapter():
    class StaticAuth(httpx.Auth):
        def auth_flow(self, request):
            request.headers["Authorization"] = "OAuth signature"
            yield request

    headers = []

    def handler(request):
        headers.append(request.headers["Authorization"])
        return httpx.Response(200, json={"data": {"id": "1", "text": ""}})

    adapter = create_adapter(handler, SignedAdapter, StaticAuth())

    await adapter.fetch("1")

    assert headers == ["OAuth signature"]

    await adapter.close()


@pytest.mark.asyncio
async def test_from_config():
    remote = RemoteConfig(
        base_url="https://configured.test",
        page_size=7,
        rate_limit_requests=10,
        rate_limit_window=1.0,
    )
    retry = RetryConfig(max_attempts=5)

    urls = []

    def handler(request):
        urls.append(request.url)
        return httpx.Response(200, json={"data": {"id": "1", "text": ""}})

    adapter = BearerTokenAdapter.from_config(
        remote, retry, "token", transport=httpx.MockTransport(handler)
    )

    assert isinstance(adapter, RestAdapter)
    assert adapter.page_size == 7

    await adapter.fetch("1")

    assert urls[0].host == "configured.test"

    await adapter.close()


@pytest.mark.asyncio
async def test_custom_headers_kept():
    headers = []

    def handler(request):
        headers.append(request.headers)
        return httpx.Response(200, json={"data": {"id": "1", "text": ""}})

    adapter = create_adapter(handler, headers={"X-Client": "xfiles"})

    await adapter.fetch("1")

    assert headers[0]["X-Client"] == "xfiles"
    assert headers[0]["Authorization"] == "Bearer token"

    await adapter.close()


@pytest.mark.asyncio
async def test_fetch_post_metadata():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "data": {
                    "id": "2",
                    "text": "héllo",
                    "author_id": "99",
                    "created_at": "2021-03-04T05:06:07.000Z",
                    "referenced_tweets": [
                        {"type": "quoted", "id": "7"},
                        {"type": "replied_to", "id": "1"},
                    ],
                },
                "includes": {"users": [{"id": "99", "username": "someone"}]},
            },
        )

    adapter = create_adapter(handler)

    post = await adapter.fetch_post("2")

    assert post.id == "2"
    assert post.content == "héllo".encode("utf-8")
    assert post.author == "someone"
    assert post.created_at == 1614834367.0
    assert post.parent_id == "1"

    assert "created_at" in requests[0].url.params["tweet.fields"]
    assert requests[0].url.params["expansions"] == "author_id"

    await adapter.close()


@pytest.mark.asyncio
async def test_fetch_post_without_metadata():
    def handler(request):
        return httpx.Response(200, json={"data": {"id": "1", "text": "hi"}})

    adapter = create_adapter(handler)

    post = await adapter.fetch_post("1")

    assert post.author is None
    assert post.created_at is None
    assert post.parent_id is None

    await adapter.close()


@pytest.mark.asyncio
async def test_fetch_post_author_id_fallback():
    def handler(request):
        return httpx.Response(
            200, json={"data": {"id": "1", "text": "hi", "author_id": "99"}}
        )

    adapter = create_adapter(handler)

    assert (await adapter.fetch_post("1")).author == "99"

    await adapter.close()


@pytest.mark.asyncio
async def test_fetch_post_invalid_time():
    def handler(request):
        return httpx.Response(
            200, json={"data": {"id": "1", "text": "hi", "created_at": "yesterday"}}
        )

    adapter = create_adapter(handler)

    with pytest.raises(SerializationError):
        await adapter.fetch_post("1")

    await adapter.close()


@pytest.mark.asyncio
async def test_store_rejects_invalid_text():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(201, json={"data": {"id": "1", "text": ""}})

    adapter = create_adapter(handler)

    assert adapter.text_only

    with pytest.raises(InvalidEncoding):
        await adapter.store(b"caf\xc3")

    with pytest.raises(InvalidEncoding):
        await adapter.store_reply("1", b"\xff")

    assert calls == []

    await adapter.close()
