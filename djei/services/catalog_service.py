"""
Music catalog proxy (Spotify Web API).

The proxy is stateless apart from one cached client-credentials token:

  CredentialCache  holds {value, expires_at}. A caller that finds it
                   expired (or within the safety margin of expiring)
                   refreshes it under an asyncio.Lock, so N concurrent
                   callers trigger one token request, not N.
  SpotifyCatalog   wraps an httpx.AsyncClient. Built once in the app
                   lifespan and stored on app.state; tests hand it an
                   httpx.MockTransport.

Failures map onto the error hierarchy: no credentials configured is a 503,
anything the catalog does wrong is a 502. A 401 from the API means the
cached token went stale early; it is dropped and the request retried once.
"""

import asyncio
import time
from typing import Awaitable, Callable

import httpx

from djei.config import settings
from djei.exceptions import NotFoundError, ServiceUnavailableError, UpstreamError
from djei.log import get_logger

logger = get_logger(__name__)


class CredentialCache:
    """
    Lazily refreshed, single-flight cache of one expiring credential.

    Args:
        fetch: Async callable returning (value, lifetime_seconds).
        margin_seconds: Refresh this long before the credential expires.
        clock: Monotonic clock, replaceable in tests.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[tuple[str, int]]],
        margin_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._margin = margin_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._value: str | None = None
        self._expires_at = 0.0

    def _is_fresh(self) -> bool:
        return self._value is not None and self._clock() < self._expires_at - self._margin

    @property
    def expires_in(self) -> int:
        """Seconds until the cached credential expires (0 if none)."""
        if self._value is None:
            return 0
        return max(0, int(self._expires_at - self._clock()))

    async def get(self) -> str:
        if self._is_fresh():
            return self._value

        async with self._lock:
            # Another caller may have refreshed while we waited for the lock
            if not self._is_fresh():
                value, lifetime = await self._fetch()
                self._value = value
                self._expires_at = self._clock() + lifetime
                logger.info("catalog.credential_refreshed", expires_in=lifetime)
            return self._value

    def invalidate(self, stale_value: str | None = None) -> None:
        """
        Drop the cached credential.

        With stale_value, only drop it if it is still the cached one, so a
        late 401 doesn't discard a token another caller just refreshed.
        """
        if stale_value is None or stale_value == self._value:
            self._value = None
            self._expires_at = 0.0


class SpotifyCatalog:
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        accounts_url: str = settings.SPOTIFY_ACCOUNTS_URL,
        api_url: str = settings.SPOTIFY_API_URL,
        timeout: float = settings.SPOTIFY_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._accounts_url = accounts_url
        self._api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.credentials = CredentialCache(self._request_token)

    @classmethod
    def from_settings(cls) -> "SpotifyCatalog":
        return cls(
            client_id=settings.SPOTIFY_CLIENT_ID,
            client_secret=settings.SPOTIFY_CLIENT_SECRET,
            accounts_url=settings.SPOTIFY_ACCOUNTS_URL,
            api_url=settings.SPOTIFY_API_URL,
            timeout=settings.SPOTIFY_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_token(self) -> tuple[str, int]:
        """Client-credentials grant against the accounts service."""
        if not self.configured:
            raise ServiceUnavailableError("Spotify credentials not configured")

        try:
            response = await self._client.post(
                self._accounts_url,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
            )
        except httpx.HTTPError as exc:
            logger.warning("catalog.token_request_failed", error=str(exc))
            raise UpstreamError("Failed to get Spotify token")

        if response.status_code != 200:
            logger.warning("catalog.token_request_failed", status=response.status_code)
            raise UpstreamError("Failed to get Spotify token")

        try:
            data = response.json()
            return data["access_token"], int(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("catalog.token_response_invalid", error=str(exc))
            raise UpstreamError("Failed to get Spotify token")

    async def access_token(self) -> dict:
        """The current app token, for clients that call the catalog directly."""
        token = await self.credentials.get()
        return {
            "access_token": token,
            "token_type": "Bearer",
            "expires_in": self.credentials.expires_in,
        }

    async def _send(self, path: str, params: dict, token: str) -> httpx.Response:
        try:
            return await self._client.get(
                f"{self._api_url}{path}",
                params={k: v for k, v in params.items() if v is not None},
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("catalog.request_failed", path=path, error=str(exc))
            raise UpstreamError("Music catalog request failed")

    async def _get(self, path: str, params: dict | None = None) -> dict:
        params = params or {}
        token = await self.credentials.get()
        response = await self._send(path, params, token)

        if response.status_code == 401:
            self.credentials.invalidate(token)
            token = await self.credentials.get()
            response = await self._send(path, params, token)

        if response.status_code == 404:
            raise NotFoundError("Not found in music catalog")
        if response.status_code >= 400:
            logger.warning("catalog.request_failed", path=path, status=response.status_code)
            raise UpstreamError("Music catalog request failed")
        return response.json()

    async def search(self, query: str, type: str = "track", limit: int = 20, offset: int = 0) -> dict:
        return await self._get("/search", {"q": query, "type": type, "limit": limit, "offset": offset})

    async def get_track(self, track_id: str) -> dict:
        return await self._get(f"/tracks/{track_id}")

    async def recommendations(
        self,
        seed_tracks: list[str] | None = None,
        seed_artists: list[str] | None = None,
        seed_genres: list[str] | None = None,
        limit: int = 20,
    ) -> dict:
        """
        Recommendations for up to five seeds in total.

        Seeds are sent comma-separated, as the catalog expects them.
        """
        seeds = {
            "seed_tracks": seed_tracks,
            "seed_artists": seed_artists,
            "seed_genres": seed_genres,
        }
        params = {name: ",".join(values) for name, values in seeds.items() if values}
        params["limit"] = limit
        return await self._get("/recommendations", params)
