from datetime import datetime, timezone
import itertools
import json

import httpx
import pytest

from xfiles.errors import InvalidEncoding
from xfiles.filesystem import FileSystem, OpenMode
from xfiles.index import CommitIndex
from xfiles.remote import BearerTokenAdapter, MockAdapter


class FakeHost:
    """In-memory stand-in for the REST API that stores posts as JSON strings."""

    def __init__(self):
        self.username = "tester"
        self.tweets = {}
        self._ids = itertools.count(1)

    def handle(self, request):
        if request.method == "POST" and request.url.path == "/2/tweets":
            return self._create(json.loads(request.content))
        elif request.url.path == "/2/tweets/search/recent":
            return self._search(request.url.params["query"])
        elif request.method == "GET":
            return self._lookup(request.url.path.split("/")[-1])

        return httpx.Response(405)

    def _create(self, body):
        tweet_id = str(next(self._ids))
        now = datetime.now(timezone.utc).isoformat(timespec="microseconds")

        self.tweets[tweet_id] = {
            "id": tweet_id,
            "text": body["text"],
            "author_id": self.username,
            "created_at": now.replace("+00:00", "Z"),
            "parent": body.get("reply", {}).get("in_reply_to_tweet_id"),
        }

        return httpx.Response(
            201, json={"data": {"id": tweet_id, "text": body["text"]}}
        )

    def _search(self, query):
        parent_id = query.split(":")[-1]

        replies = [
            {"id": tweet["id"], "text": tweet["text"]}
            for tweet in self.tweets.values()
            if tweet["parent"] == parent_id
        ]

        # Newest first, like the search API
        return httpx.Response(200, json={"data": replies[::-1]})

    def _lookup(self, tweet_id):
        if tweet_id not in self.tweets:
            return httpx.Response(404, json={"detail": "Not Found Error"})

        tweet = dict(self.tweets[tweet_id])
        parent_id = tweet.pop("parent")
        author = tweet["author_id"]

        if parent_id is not None:
            tweet["referenced_tweets"] = [{"type": "replied_to", "id": parent_id}]

        return httpx.Response(
            200,
            json={
                "data": tweet,
                "includes": {"users": [{"id": author, "username": author}]},
            },
        )


async def create_fs(host, **kwargs):
    adapter = BearerTokenAdapter(
        "token",
        base_url="https://api.test",
        transport=httpx.MockTransport(host.handle),
    )
    index = await CommitIndex.open()

    return FileSystem("@tester", adapter, index, **kwargs), adapter


@pytest.mark.asyncio
async def test_multi_byte_text_round_trip():
    host = FakeHost()
    fs, adapter = await create_fs(host)
    data = b"x" + "é".encode("utf-8") * 200

    f = await fs.open("notes.txt", OpenMode.CREATE)
    await f.write(data)

    # Root and two segments
    assert len(host.tweets) == 3
    assert all(len(t["text"].encode("utf-8")) <= 280 for t in host.tweets.values())

    fs.cache.clear()

    assert await f.read() == data

    reopened = await fs.open("notes.txt")

    assert await reopened.read() == data

    await fs.close()
    await adapter.close()


@pytest.mark.asyncio
async def test_invalid_text_rejected():
    host = FakeHost()
    fs, adapter = await create_fs(host)

    f = await fs.open("data.bin", OpenMode.CREATE)

    with pytest.raises(InvalidEncoding):
        await f.write(bytes(range(256)))

    assert len(host.tweets) == 1
    assert await f.read() == b""

    await fs.close()
    await adapter.close()


@pytest.mark.asyncio
async def test_binary_with_envelope():
    host = FakeHost()
    fs, adapter = await create_fs(host, envelope=True)
    data = bytes(range(256)) * 4

    f = await fs.open("data.bin", OpenMode.CREATE)
    await f.write(data, "application/octet-stream")

    fs.cache.clear()

    assert await f.read() == data

    await fs.close()
    await adapter.close()


@pytest.mark.asyncio
async def test_adopts_reply_with_host_metadata():
    host = FakeHost()
    fs, adapter = await create_fs(host)

    f = await fs.open("notes.txt", OpenMode.CREATE)
    await f.write(b"mine")

    host.username = "someone_else"
    foreign_id = await adapter.store_reply(f.head, "thé".encode("utf-8"))

    reopened = await fs.open("notes.txt")

    assert reopened.head == foreign_id
    assert reopened.commit.author == "someone_else"
    assert await reopened.read() == "thé".encode("utf-8")

    post = await adapter.fetch_post(foreign_id)

    assert reopened.commit.timestamp == post.created_at
    assert post.parent_id == f.head

    await fs.close()
    await adapter.close()


@pytest.mark.asyncio
async def test_text_only_mock_host():
    index = await CommitIndex.open()
    adapter = MockAdapter(max_post_size=280, text_only=True)
    fs = FileSystem("@tester", adapter, index)
    data = "€".encode("utf-8") * 150

    f = await fs.open("notes.txt", OpenMode.CREATE)
    await f.write(data)

    fs.cache.clear()

    assert await f.read() == data

    with pytest.raises(InvalidEncoding):
        await f.write(b"\xff\xfe")

    assert await f.read() == data

    await fs.close()
