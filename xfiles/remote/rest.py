"""
Network clients for the REST API of the remote host.

The clients translate the four operations of the RemoteAdapter interface into calls to
version 2 of the host's API:

* fetch_post: GET /2/tweets/{id} with the creation time and author expanded
* store: POST /2/tweets
* store_reply: POST /2/tweets with a reply reference
* fetch_replies: GET /2/tweets/search/recent, paginated

Each HTTP request is admitted by a rate limiter and retried according to a retry policy
before it is considered failed. Responses that indicate rate limiting, server errors or
transport failures are retried, other client errors are not because repeating the
request would not change the outcome.

Authentication is left to subclasses, which either send a bearer token or sign every
request with credentials supplied by the application.
"""

from __future__ import annotations

from datetime import datetime
import json
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

import xfiles.constants as constants
from xfiles.config import RemoteConfig, RetryConfig
from xfiles.dag import PostId
from xfiles.errors import (
    InvalidEncoding,
    NetworkError,
    RateLimitExceeded,
    RemoteApiError,
    SerializationError,
)
from xfiles.logger import log, summarize
from xfiles.remote.adapter import Post, RemoteAdapter
from xfiles.remote.rate_limit import RateLimiter
from xfiles.remote.retry import RetryPolicy


class ServerError(RemoteApiError):
    """The remote host failed to handle a request."""


# Failures that may succeed when the request is repeated
RETRYABLE_ERRORS = (NetworkError, RateLimitExceeded, ServerError)


class RestAdapter(RemoteAdapter):
    """Base class of clients that implement the adapter with the REST API."""

    # Posts are sent as JSON strings
    text_only = True

    def __init__(
        self,
        base_url: str = "https://api.twitter.com",
        page_size: int = constants.REPLY_PAGE_SIZE,
        timeout: float = 10.0,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        auth: Optional[httpx.Auth] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Instantiate a client for the API at the given base URL.

        By default requests are limited to 300 per 15 minutes and failed requests are
        attempted up to 3 times. A custom transport can be supplied for testing.
        """
        self.page_size = page_size

        self._rate_limiter = rate_limiter or RateLimiter(300, 15 * 60.0)
        self._retry_policy = retry_policy or RetryPolicy(retry_on=RETRYABLE_ERRORS)

        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            auth=auth,
            headers=headers,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls, remote: RemoteConfig, retry: RetryConfig, *args: Any, **kwargs: Any
    ) -> RestAdapter:
        """Instantiate a client with the settings from the configuration."""
        return cls(
            *args,
            base_url=remote.base_url,
            page_size=remote.page_size,
            timeout=remote.timeout,
            rate_limiter=RateLimiter(
                remote.rate_limit_requests, remote.rate_limit_window
            ),
            retry_policy=RetryPolicy(
                max_attempts=retry.max_attempts,
                initial_backoff=retry.initial_backoff,
                max_backoff=retry.max_backoff,
                multiplier=retry.multiplier,
                retry_on=RETRYABLE_ERRORS,
            ),
            **kwargs,
        )

    async def close(self) -> None:
        """Close the connections of the HTTP client."""
        await self._client.aclose()

    #
    # Remote adapter operations
    #

    async def fetch_post(self, post_id: PostId) -> Post:
        body = await self._request(
            "GET",
            f"/2/tweets/{post_id}",
            params={
                "tweet.fields": "created_at,author_id,referenced_tweets",
                "expansions": "author_id",
                "user.fields": "username",
            },
        )

        tweet = self._data(body)

        # The author is expanded into the includes, fall back to the bare user id
        users = body.get("includes", {}).get("users", [])
        usernames = {user.get("id"): user.get("username") for user in users}

        author_id = tweet.get("author_id")
        author = usernames.get(author_id) or author_id

        parent_id = None
        for reference in tweet.get("referenced_tweets", []):
            if reference.get("type") == "replied_to":
                parent_id = reference.get("id")

        return Post(
            id=tweet["id"],
            content=tweet["text"].encode("utf-8"),
            author=author,
            created_at=_parse_time(tweet.get("created_at")),
            parent_id=parent_id,
        )

    async def store(self, content: bytes) -> PostId:
        body = await self._request("POST", "/2/tweets", json={"text": _text(content)})

        return self._data(body)["id"]

    async def store_reply(self, parent_id: PostId, content: bytes) -> PostId:
        body = await self._request(
            "POST",
            "/2/tweets",
            json={
                "text": _text(content),
                "reply": {"in_reply_to_tweet_id": parent_id},
            },
        )

        return self._data(body)["id"]

    async def fetch_replies(self, post_id: PostId) -> List[PostId]:
        """
        Retrieve the ids of all direct replies to a post.

        The search API returns at most page_size results per call, so the pages are
        followed until the host no longer returns a continuation token.
        """
        replies: List[PostId] = []

        params: Dict[str, Any] = {
            "query": f"in_reply_to_tweet_id:{post_id}",
            "max_results": self.page_size,
        }

        while True:
            body = await self._request("GET", "/2/tweets/search/recent", params=params)

            replies += [tweet["id"] for tweet in body.get("data", [])]

            next_token = body.get("meta", {}).get("next_token")
            if not next_token:
                break

            params = {**params, "next_token": next_token}

        # Search results are ordered from newest to oldest
        replies.reverse()

        return replies

    #
    # HTTP plumbing
    #

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Perform a rate limited request with retries and return the JSON body."""

        async def attempt() -> Dict[str, Any]:
            await self._rate_limiter.acquire()
            return await self._send(method, url, **kwargs)

        return await self._retry_policy.retry(attempt)

    async def _send(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Perform a single request and translate failures into xfiles errors."""
        t_call = time.time()

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

        # Explicit check before logging because summarize is relatively slow
        if log.isEnabledFor(logging.DEBUG):
            t_millis = round((time.time() - t_call) * 1000)
            log.debug(
                f"http::{method} {url} {summarize(kwargs)} -> "
                f"{response.status_code} - {t_millis} ms"
            )

        if response.status_code == 429:
            raise RateLimitExceeded(self._error_message(response))
        elif response.status_code >= 500:
            raise ServerError(self._error_message(response), response.status_code)
        elif response.status_code >= 400:
            raise RemoteApiError(self._error_message(response), response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise SerializationError(f"invalid response from {url}: {e}") from e

        if not isinstance(body, dict):
            raise SerializationError(f"unexpected response from {url}: {body}")

        return body

    @staticmethod
    def _data(body: Dict[str, Any]) -> Dict[str, Any]:
        """Extract the data object of a response, which is missing if it has errors."""
        if "data" not in body:
            errors = body.get("errors") or [{"detail": "response without data"}]
            raise RemoteApiError(_describe_error(errors[0]))

        return body["data"]

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the host provided error message from a failed response."""
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase

        if isinstance(body, dict):
            if body.get("errors"):
                return _describe_error(body["errors"][0])

            return _describe_error(body)

        return json.dumps(body)


class BearerTokenAdapter(RestAdapter):
    """Client that authenticates with an OAuth 2.0 bearer token."""

    def __init__(self, token: str, **kwargs: Any) -> None:
        """Instantiate a client that sends the given token with every request."""
        headers = {**(kwargs.pop("headers", None) or {})}
        headers["Authorization"] = f"Bearer {token}"

        super().__init__(headers=headers, **kwargs)


class SignedAdapter(RestAdapter):
    """
    Client that signs every request with user credentials.

    The signing scheme (typically OAuth 1.0a with the consumer key and secret and the
    access token and secret of the user) is implemented by the httpx.Auth instance
    supplied by the application.
    """

    def __init__(self, auth: httpx.Auth, **kwargs: Any) -> None:
        """Instantiate a client that signs requests with the given auth flow."""
        super().__init__(auth=auth, **kwargs)


def _text(content: bytes) -> str:
    """Convert content to the text of a post."""
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidEncoding(f"post content is not valid UTF-8: {e}") from e


def _parse_time(value: Optional[str]) -> Optional[float]:
    """Convert an ISO 8601 time of the API (like 2020-01-01T12:00:00Z) to seconds."""
    if value is None:
        return None

    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError as e:
        raise SerializationError(f"invalid time {value}: {e}") from e


def _describe_error(error: Any) -> str:
    """Turn an error object of the API into a message."""
    if not isinstance(error, dict):
        return str(error)

    return str(
        error.get("detail")
        or error.get("message")
        or error.get("title")
        or json.dumps(error)
    )
