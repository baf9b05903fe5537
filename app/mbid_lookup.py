"""
MusicBrainz identifier lookup through ListenBrainz's metadata endpoint.

Best-effort: any failure (network, HTTP status, bad JSON, no match) yields None
and the listen is submitted without MBIDs.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field

import requests

log = logging.getLogger("mbid")

LOOKUP_URL = "https://api.listenbrainz.org/1/metadata/lookup/"


@dataclass(frozen=True)
class IdentifierSet:
    recording_mbid: str
    release_mbid: str
    artist_mbids: list[str] = field(default_factory=list)
    recording_name: str | None = None
    release_name: str | None = None
    artist_credit_name: str | None = None


class MBIDResolver:
    def __init__(self, session: requests.Session | None = None, url: str = LOOKUP_URL, timeout: float = 10):
        self.session = session or requests.Session()
        self.url = url
        self.timeout = timeout

    def resolve(self, track_name: str, artist_credit_name: str, release_name: str) -> IdentifierSet | None:
        params = {
            "artist_name": artist_credit_name,
            "recording_name": track_name,
            "release_name": release_name,
        }
        try:
            resp = self.session.get(self.url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            log.debug("MBID lookup failed for %s — %s: %s", artist_credit_name, track_name, e)
            return None

        # No match comes back as an empty object
        if not isinstance(data, dict) or not data:
            log.debug("No MBID match for %s — %s", artist_credit_name, track_name)
            return None

        try:
            ids = IdentifierSet(
                recording_mbid=str(data["recording_mbid"]),
                release_mbid=str(data["release_mbid"]),
                artist_mbids=[str(m) for m in data["artist_mbids"]],
                recording_name=data.get("recording_name"),
                release_name=data.get("release_name"),
                artist_credit_name=data.get("artist_credit_name"),
            )
        except (KeyError, TypeError) as e:
            log.debug("Malformed MBID lookup response (%s): %s", e, data)
            return None

        log.debug("Resolved %s — %s to %s — %s [%s] (recording %s)",
                  artist_credit_name, track_name,
                  ids.artist_credit_name, ids.recording_name, ids.release_name, ids.recording_mbid)
        return ids
