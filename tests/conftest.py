# tests/conftest.py
from __future__ import annotations

import copy

import pytest
import requests

from spotify import PlaybackSnapshot

TRACK = {
    "type": "track",
    "id": "T1",
    "name": "Windowlicker",
    "duration_ms": 200000,
    "disc_number": 1,
    "track_number": 1,
    "external_ids": {"isrc": "GBBKS9900085"},
    "external_urls": {"spotify": "https://open.spotify.com/track/T1"},
    "artists": [
        {"name": "Aphex Twin", "external_urls": {"spotify": "https://open.spotify.com/artist/A1"}},
    ],
    "album": {
        "name": "Windowlicker",
        "external_urls": {"spotify": "https://open.spotify.com/album/R1"},
        "artists": [
            {"name": "Aphex Twin", "external_urls": {"spotify": "https://open.spotify.com/artist/A1"}},
        ],
    },
}


def make_track(**overrides) -> dict:
    track = copy.deepcopy(TRACK)
    track.update(overrides)
    return track


def snap(track_id="T1", progress=0, duration=200000, looping=False, track=None) -> PlaybackSnapshot:
    if track is None:
        track = make_track(id=track_id, duration_ms=duration)
    return PlaybackSnapshot(
        track_id=track_id, progress_ms=progress, duration_ms=duration, is_looping=looping, track=track,
    )


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code}")


class FakeSession:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


@pytest.fixture
def track():
    return make_track()
