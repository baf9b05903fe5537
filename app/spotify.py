import logging
from dataclasses import dataclass, field

import spotipy
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth

log = logging.getLogger("spotify")

SCOPE = "user-read-playback-state user-read-currently-playing"


class UnsupportedContentError(Exception): ...


@dataclass(frozen=True)
class PlaybackSnapshot:
    track_id: str
    progress_ms: int
    duration_ms: int
    is_looping: bool
    track: dict = field(default_factory=dict, compare=False, repr=False)


class SpotifyPlaybackClient:
    """
    Polls Spotify's current playback and normalizes it into a PlaybackSnapshot.
    Anything that isn't a music track (podcasts, ads, idle player) reads as None.
    """
    def __init__(self, sp: spotipy.Spotify):
        self.sp = sp

    @classmethod
    def from_refresh_token(cls, client_id: str, client_secret: str, refresh_token: str,
                           timeout: float = 10, redirect_uri: str = "http://127.0.0.1:8888/callback"):
        # Expired token with a refresh_token: spotipy refreshes it on first use.
        cache = MemoryCacheHandler(token_info={
            "access_token": "",
            "refresh_token": refresh_token,
            "expires_at": 0,
            "scope": SCOPE,
        })
        auth_manager = SpotifyOAuth(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scope=SCOPE,
            cache_handler=cache,
            open_browser=False,
            requests_timeout=timeout,
        )
        return cls(spotipy.Spotify(auth_manager=auth_manager, requests_timeout=timeout))

    def fetch(self) -> PlaybackSnapshot | None:
        playback = self.sp.current_playback()
        if not playback:
            return None
        if playback.get("currently_playing_type") != "track":
            log.debug("Ignoring playback of type %s", playback.get("currently_playing_type"))
            return None

        item = playback.get("item")
        if not item:
            return None
        item_type = item.get("type", "track")
        if item_type != "track":
            raise UnsupportedContentError(f"unsupported item type: {item_type}")
        track_id = item.get("id")
        if not track_id:
            raise UnsupportedContentError(f"track has no Spotify id: {item.get('name')!r}")

        return PlaybackSnapshot(
            track_id=track_id,
            progress_ms=int(playback.get("progress_ms") or 0),
            duration_ms=int(item.get("duration_ms") or 0),
            is_looping=playback.get("repeat_state", "off") != "off",
            track=item,
        )
