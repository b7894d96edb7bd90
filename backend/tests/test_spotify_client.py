from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Dict, List

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from songmatch.catalog.types import Track
from songmatch.services.enrichment import fetch_metadata
from songmatch.spotify.client import (
    TOKEN_ENDPOINT,
    SpotifyAuthError,
    SpotifyClient,
    SpotifyClientError,
    parse_track_metadata,
)


def _track_payload(track_id: str) -> dict:
    return {
        "id": track_id,
        "name": f"Song {track_id}",
        "preview_url": f"https://p.scdn.co/{track_id}",
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "album": {"images": [{"url": f"https://i.scdn.co/{track_id}.jpg"}, {"url": "https://i.scdn.co/small.jpg"}]},
    }


class _FakeSpotify:
    def __init__(
        self,
        *,
        track_status: int = 200,
        unauthorized_once: bool = False,
        retry_after: List[str] | None = None,
        raw_body: str | None = None,
    ) -> None:
        self.track_status = track_status
        self.unauthorized_once = unauthorized_once
        self.retry_after = list(retry_after or [])
        self.raw_body = raw_body
        self.token_requests = 0
        self.track_requests: List[List[str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_ENDPOINT:
            self.token_requests += 1
            assert request.headers["Authorization"].startswith("Basic ")
            return httpx.Response(200, json={"access_token": f"token-{self.token_requests}", "expires_in": 3600})

        assert request.url.path == "/v1/tracks"
        if self.unauthorized_once:
            self.unauthorized_once = False
            return httpx.Response(401, json={"error": "expired"})
        if self.retry_after:
            return httpx.Response(429, headers={"Retry-After": self.retry_after.pop(0)})
        if self.raw_body is not None:
            return httpx.Response(200, text=self.raw_body)
        if self.track_status != 200:
            return httpx.Response(self.track_status, text="upstream broke")
        ids = request.url.params["ids"].split(",")
        self.track_requests.append(ids)
        return httpx.Response(200, json={"tracks": [_track_payload(track_id) for track_id in ids] + [None]})


def _client(fake: _FakeSpotify, **kwargs) -> SpotifyClient:
    return SpotifyClient(
        client_id="id",
        client_secret="secret",
        transport=httpx.MockTransport(fake),
        **kwargs,
    )


def test_parse_track_metadata():
    metadata = parse_track_metadata(_track_payload("abc"))
    assert metadata.image_url == "https://i.scdn.co/abc.jpg"
    assert metadata.external_url == "https://open.spotify.com/track/abc"
    assert parse_track_metadata({"name": "no id"}) is None


async def _enrich(fake: _FakeSpotify, track_ids: List[str]):
    client = _client(fake)
    try:
        first = await client.enrich(track_ids)
        second = await client.enrich(track_ids[:1])
        return first, second
    finally:
        await client.close()


def test_enrich_batches_and_reuses_token():
    fake = _FakeSpotify()
    track_ids = [f"t{i}" for i in range(60)] + ["t0"]

    first, second = asyncio.run(_enrich(fake, track_ids))

    assert len(first) == 60
    assert first["t5"].preview_url == "https://p.scdn.co/t5"
    assert list(second) == ["t0"]
    assert [len(batch) for batch in fake.track_requests] == [50, 10, 1]
    assert fake.token_requests == 1


async def _enrich_once(fake: _FakeSpotify, **kwargs):
    client = _client(fake, **kwargs)
    try:
        return await client.enrich(["a"])
    finally:
        await client.close()


def test_unauthorized_response_refreshes_token():
    fake = _FakeSpotify(unauthorized_once=True)
    result = asyncio.run(_enrich_once(fake))
    assert "a" in result
    assert fake.token_requests == 2


def test_api_errors_raise():
    with pytest.raises(SpotifyClientError):
        asyncio.run(_enrich_once(_FakeSpotify(track_status=500)))


def test_missing_credentials():
    async def run():
        client = SpotifyClient(client_id="", client_secret="", transport=httpx.MockTransport(_FakeSpotify()))
        try:
            await client.enrich(["a"])
        finally:
            await client.close()

    with pytest.raises(SpotifyAuthError):
        asyncio.run(run())


async def _fetch(fake: _FakeSpotify):
    client = _client(fake)
    tracks = [Track(track_id="a", name="A"), Track(track_id="b", name="B")]
    try:
        return await fetch_metadata(client, tracks)
    finally:
        await client.close()


def test_fetch_metadata_tolerates_failures():
    assert set(asyncio.run(_fetch(_FakeSpotify()))) == {"a", "b"}
    assert asyncio.run(_fetch(_FakeSpotify(track_status=503))) == {}
    assert asyncio.run(fetch_metadata(None, [Track(track_id="a", name="A")])) == {}


def test_rate_limit_waits_are_capped(monkeypatch):
    sleeps: List[float] = []

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr("songmatch.spotify.client.asyncio.sleep", _sleep)
    fake = _FakeSpotify(retry_after=["3600", "soon"])

    result = asyncio.run(_enrich_once(fake, timeout=10.0, retries=3))

    assert "a" in result
    assert sleeps == [10.0, 1.0]


def test_invalid_json_is_a_client_error():
    with pytest.raises(SpotifyClientError):
        asyncio.run(_enrich_once(_FakeSpotify(raw_body="<html>oops</html>")))


class _SlowSpotify:
    async def enrich(self, track_ids) -> Dict[str, object]:
        await asyncio.sleep(1.0)
        return {track_id: None for track_id in track_ids}


def test_slow_enrichment_is_abandoned():
    tracks = [Track(track_id="a", name="A")]
    assert asyncio.run(fetch_metadata(_SlowSpotify(), tracks, timeout=0.01)) == {}
