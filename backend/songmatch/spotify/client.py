from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import httpx

API_BASE = "https://api.spotify.com/v1"
TOKEN_ENDPOINT = "https://accounts.spotify.com/api/token"
TRACKS_PER_REQUEST = 50
TOKEN_EXPIRY_MARGIN_SECONDS = 300

logger = logging.getLogger("spotify.client")


class SpotifyClientError(Exception):
    pass


class SpotifyAuthError(SpotifyClientError):
    pass


@dataclass(slots=True)
class TrackMetadata:
    track_id: str
    image_url: Optional[str] = None
    preview_url: Optional[str] = None
    external_url: Optional[str] = None


def _first_image(images: Iterable[Dict[str, Any]] | None) -> Optional[str]:
    if not images:
        return None
    return next((img.get("url") for img in images if img and img.get("url")), None)


def parse_track_metadata(payload: Dict[str, Any]) -> Optional[TrackMetadata]:
    track_id = payload.get("id") if isinstance(payload, dict) else None
    if not track_id:
        return None
    return TrackMetadata(
        track_id=track_id,
        image_url=_first_image((payload.get("album") or {}).get("images")),
        preview_url=payload.get("preview_url"),
        external_url=(payload.get("external_urls") or {}).get("spotify"),
    )


@dataclass(slots=True)
class SpotifyClient:
    """Client-credentials Spotify client used to decorate results with artwork and links.

    Built once per process; the access token is cached on the instance until
    shortly before it expires.
    """

    client_id: str
    client_secret: str
    timeout: float = 10.0
    retries: int = 3
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(init=False, repr=False, default=None)
    _token: tuple[str, float] | None = field(init=False, repr=False, default=None)
    _token_lock: asyncio.Lock = field(init=False, repr=False, default_factory=asyncio.Lock)

    def __post_init__(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and self._token[1] > time.time():
                return self._token[0]
            if not self.client_id or not self.client_secret:
                raise SpotifyAuthError("missing spotify client credentials")
            client = self._require_client()
            try:
                resp = await client.post(
                    TOKEN_ENDPOINT,
                    data={"grant_type": "client_credentials"},
                    auth=(self.client_id, self.client_secret),
                )
            except httpx.RequestError as exc:
                raise SpotifyClientError(f"network error requesting token: {exc}") from exc
            if resp.status_code != 200:
                raise SpotifyAuthError(f"failed to obtain client credentials token: {resp.status_code} {resp.text}")
            data = resp.json()
            if "access_token" not in data:
                raise SpotifyAuthError("token response missing access_token")
            expires = time.time() + float(data.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN_SECONDS
            self._token = (data["access_token"], expires)
            return self._token[0]

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise SpotifyClientError("spotify client is closed")
        return self._client

    def _retry_delay(self, response: httpx.Response) -> float:
        """Seconds to wait after a 429, clamped to the request timeout."""
        try:
            delay = float(response.headers.get("Retry-After", "1"))
        except ValueError:
            delay = 1.0
        return min(max(delay, 0.0), self.timeout)

    async def _request(self, method: str, path: str, *, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        client = self._require_client()
        for attempt in range(1, self.retries + 1):
            token = await self._access_token()
            try:
                response = await client.request(
                    method,
                    f"{API_BASE}/{path.lstrip('/')}",
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.RequestError as exc:
                if attempt == self.retries:
                    raise SpotifyClientError(f"network error: {exc}") from exc
                await asyncio.sleep(2 ** attempt)
                continue

            if response.status_code == 401:
                # Token revoked or expired early; fetch a fresh one and retry.
                self._token = None
                if attempt == self.retries:
                    raise SpotifyAuthError("spotify token unauthorized")
                continue

            if response.status_code == 429:
                await asyncio.sleep(self._retry_delay(response))
                continue

            if response.status_code >= 400:
                logger.error("Spotify API %s %s -> %s %s", method, path, response.status_code, response.text)
                raise SpotifyClientError(f"spotify api error {response.status_code}: {response.text}")

            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                raise SpotifyClientError(f"invalid json from spotify: {exc}") from exc

        raise SpotifyClientError("max retries exceeded for spotify request")

    async def get_tracks(self, track_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = list(dict.fromkeys(track_id for track_id in track_ids if track_id))
        out: List[Dict[str, Any]] = []
        for start in range(0, len(ids), TRACKS_PER_REQUEST):
            chunk = ids[start: start + TRACKS_PER_REQUEST]
            payload = await self._request("GET", "/tracks", params={"ids": ",".join(chunk)})
            out.extend(item for item in payload.get("tracks", []) or [] if item)
        return out

    async def enrich(self, track_ids: Iterable[str]) -> Dict[str, TrackMetadata]:
        metadata: Dict[str, TrackMetadata] = {}
        for payload in await self.get_tracks(track_ids):
            parsed = parse_track_metadata(payload)
            if parsed is not None:
                metadata[parsed.track_id] = parsed
        return metadata
