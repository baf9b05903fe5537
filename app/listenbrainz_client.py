import logging
import time

import requests

from mbid_lookup import IdentifierSet
from spotify import PlaybackSnapshot

log = logging.getLogger("listenbrainz")

API_URL = "https://api.listenbrainz.org"
MUSIC_SERVICE = "spotify.com"
SUBMISSION_CLIENT = "spotify-listenbrainz-bridge"

# Custom error classes so callers can branch
class ListenBrainzError(Exception): ...
class ListenBrainzNetworkError(ListenBrainzError): ...
class ListenBrainzAuthError(ListenBrainzError): ...

class ListenBrainzSubmitError(ListenBrainzError):
    def __init__(self, status: int, body: str):
        super().__init__(f"{status} {body}")
        self.status = status
        self.body = body

class MissingFieldError(ListenBrainzError):
    def __init__(self, field: str):
        super().__init__(f"track is missing required field '{field}'")
        self.field = field


_MISSING = object()

def _require(obj: dict, path: str):
    """Walk a dotted path through nested dicts, raising MissingFieldError on a gap."""
    value = obj
    for key in path.split("."):
        value = value.get(key, _MISSING) if isinstance(value, dict) else _MISSING
        if value is _MISSING or value is None:
            raise MissingFieldError(path)
    return value

def _artists(obj: dict, path: str) -> list[dict]:
    artists = _require(obj, path)
    if not isinstance(artists, list) or not artists:
        raise MissingFieldError(path)
    for i, artist in enumerate(artists):
        if not isinstance(artist, dict):
            raise MissingFieldError(f"{path}[{i}]")
        for key in ("name", "external_urls.spotify"):
            try:
                _require(artist, key)
            except MissingFieldError:
                raise MissingFieldError(f"{path}[{i}].{key}") from None
    return artists


def artist_credit(track: dict) -> str:
    return ", ".join(a.get("name") or "" for a in track.get("artists") or [] if isinstance(a, dict))


REQUIRED_FIELDS = (
    "name", "album.name", "external_urls.spotify", "album.external_urls.spotify",
    "external_ids.isrc", "duration_ms", "disc_number", "track_number",
)


def validate_track(track: dict) -> None:
    """Raise MissingFieldError for the first source field a listen can't be built without."""
    _artists(track, "artists")
    _artists(track, "album.artists")
    for path in REQUIRED_FIELDS:
        _require(track, path)


def build_listen(track: dict, ids: IdentifierSet | None, now_playing: bool,
                 listened_at: int | None = None) -> dict:
    """
    Build a submit-listens body from a Spotify track object.

    Every source field is checked before anything is assembled, so a track
    missing e.g. its ISRC fails as a whole instead of producing a listen with
    blank fields. MBIDs are optional and only added when `ids` is given.
    """
    validate_track(track)
    artists = track["artists"]
    album_artists = track["album"]["artists"]
    spotify_url = track["external_urls"]["spotify"]

    additional_info = {
        "artist_names": [a["name"] for a in artists],
        "discnumber": int(track["disc_number"]),
        "duration_ms": int(track["duration_ms"]),
        "isrc": track["external_ids"]["isrc"],
        "music_service": MUSIC_SERVICE,
        "origin_url": spotify_url,
        "release_artist_names": [a["name"] for a in album_artists],
        "spotify_album_artist_ids": [a["external_urls"]["spotify"] for a in album_artists],
        "spotify_album_id": track["album"]["external_urls"]["spotify"],
        "spotify_artist_ids": [a["external_urls"]["spotify"] for a in artists],
        "spotify_id": spotify_url,
        "submission_client": SUBMISSION_CLIENT,
        "tracknumber": int(track["track_number"]),
    }
    if ids is not None:
        additional_info["release_mbid"] = ids.release_mbid
        additional_info["artist_mbids"] = list(ids.artist_mbids)
        additional_info["recording_mbid"] = ids.recording_mbid

    payload = {
        "track_metadata": {
            "artist_name": artists[0]["name"],
            "track_name": track["name"],
            "release_name": track["album"]["name"],
            "additional_info": additional_info,
        },
    }
    if not now_playing:
        payload["listened_at"] = int(listened_at if listened_at is not None else time.time())

    return {
        "listen_type": "playing_now" if now_playing else "single",
        "payload": [payload],
    }


class ListenBrainzClient:
    """Submits now-playing notifications and listens to ListenBrainz."""

    def __init__(self, token: str, session: requests.Session | None = None,
                 api_url: str = API_URL, timeout: float = 10):
        if not token:
            raise ValueError("Missing ListenBrainz token")
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Token {token}"
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def validate_token(self) -> str:
        """Check the token up-front; returns the ListenBrainz user name."""
        try:
            resp = self.session.get(f"{self.api_url}/1/validate-token", timeout=self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise ListenBrainzNetworkError(str(e))
        if not isinstance(data, dict):
            data = {}
        if not resp.ok or not data.get("valid"):
            raise ListenBrainzAuthError(data.get("message") or f"token rejected ({resp.status_code})")
        return data.get("user_name", "")

    def submit(self, snapshot: PlaybackSnapshot, ids: IdentifierSet | None, now_playing: bool) -> None:
        listen = build_listen(snapshot.track, ids, now_playing)
        metadata = listen["payload"][0]["track_metadata"]
        log.info("Sending %s: %s — %s", listen["listen_type"], metadata["artist_name"], metadata["track_name"])
        log.debug("Listen body: %s", listen)

        try:
            resp = self.session.post(f"{self.api_url}/1/submit-listens", json=listen, timeout=self.timeout)
        except requests.RequestException as e:
            raise ListenBrainzNetworkError(str(e))

        body = resp.text or "no response at all"
        if not resp.ok:
            raise ListenBrainzSubmitError(resp.status_code, body)
        log.debug("ListenBrainz accepted %s: %s", listen["listen_type"], body)
