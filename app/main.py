import os
import random
import time
import logging

import requests
import spotipy
from dotenv import load_dotenv
from spotipy.oauth2 import SpotifyOauthError

from spotify import SpotifyPlaybackClient, UnsupportedContentError
from mbid_lookup import MBIDResolver
from listenbrainz_client import (
    API_URL, ListenBrainzClient, ListenBrainzError, ListenBrainzAuthError,
    ListenBrainzNetworkError, ListenBrainzSubmitError, MissingFieldError, artist_credit, validate_track
)
from state import TrackState, decide
from notifier import from_env as alerter_from_env

load_dotenv()

# -------------------------
# Configuration via ENV VARS
# -------------------------
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET")
SPOTIFY_REFRESH_TOKEN = os.getenv("SPOTIFY_REFRESH_TOKEN")
LISTENBRAINZ_TOKEN = os.getenv("LISTENBRAINZ_TOKEN")
LISTENBRAINZ_API_URL = os.getenv("LISTENBRAINZ_API_URL", API_URL)

HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

POLL_INTERVAL = 5
MAX_BACKOFF = 60

FETCH_ERRORS = (
    spotipy.SpotifyException, SpotifyOauthError, requests.RequestException, UnsupportedContentError,
)

log = logging.getLogger("spotify-listenbrainz")


def setup_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,  # ensure our config is used even if libs pre-configure logging
    )
    for noisy in ("urllib3", "spotipy"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def backoff_delay(failures: int, interval: float = POLL_INTERVAL, cap: float = MAX_BACKOFF) -> float:
    """Extra wait after consecutive failed cycles: exponential, capped, jittered."""
    if failures <= 0:
        return 0.0
    base = min(cap, interval * 2 ** (failures - 1))
    return base / 2 + random.uniform(0, base / 2)


class Bridge:
    """Fetch → decide → resolve → submit, one cycle at a time."""

    def __init__(self, fetcher, resolver, submitter, alert=None):
        self.fetcher = fetcher
        self.resolver = resolver
        self.submitter = submitter
        self.alert = alert or (lambda *args, **kwargs: None)

    def cycle(self, state: TrackState | None) -> TrackState | None:
        """
        Run one poll cycle against the last reported state and return the
        state to carry into the next one. Errors propagate; the caller keeps
        the old state so the same event is re-decided next time.
        """
        snapshot = self.fetcher.fetch()
        if snapshot is None:
            log.debug("Nothing playing")
            return state

        decision = decide(state, snapshot)
        log.debug("Observed %s at %s/%sms looping=%s emit=%s",
                  snapshot.track_id, snapshot.progress_ms, snapshot.duration_ms,
                  snapshot.is_looping, decision.emit)
        if not decision.emit:
            return state

        track = snapshot.track
        label = f"{artist_credit(track)} — {track.get('name')} ({snapshot.track_id})"
        try:
            # Unsubmittable tracks fail here, before any lookup request
            validate_track(track)
            ids = self.resolver.resolve(
                track["name"],
                artist_credit(track),
                track["album"]["name"],
            )
            self.submitter.submit(snapshot, ids, decision.now_playing)
        except MissingFieldError as e:
            log.error("Skipping %s for %s: %s", decision.kind, label, e)
            raise
        except ListenBrainzSubmitError as e:
            log.error("ListenBrainz rejected %s for %s: %s", decision.kind, label, e)
            raise
        except ListenBrainzError as e:
            log.warning("Failed to send %s for %s: %s", decision.kind, label, e)
            raise

        log.info("Sent %s for %s", decision.kind, label)
        return decision.candidate

    def run_forever(self, interval: float = POLL_INTERVAL, sleep=time.sleep, cycles: int | None = None):
        state: TrackState | None = None
        failures = 0
        done = 0
        while cycles is None or done < cycles:
            done += 1
            try:
                state = self.cycle(state)
                failures = 0
            except FETCH_ERRORS as e:
                failures += 1
                log.warning("Playback fetch failed: %s", e)
            except ListenBrainzSubmitError as e:
                # already logged with track context by cycle()
                failures += 1
                if e.status == 401:
                    self.alert("ERROR", "ListenBrainz authentication failed", str(e))
                else:
                    self.alert("WARNING", "ListenBrainz submit error", str(e), {"status": e.status})
            except ListenBrainzError:
                failures += 1

            sleep(interval + backoff_delay(failures, interval))
        return state


def main():
    setup_logging()

    missing = [name for name, value in (
        ("SPOTIFY_CLIENT_ID", SPOTIFY_CLIENT_ID),
        ("SPOTIFY_CLIENT_SECRET", SPOTIFY_CLIENT_SECRET),
        ("SPOTIFY_REFRESH_TOKEN", SPOTIFY_REFRESH_TOKEN),
        ("LISTENBRAINZ_TOKEN", LISTENBRAINZ_TOKEN),
    ) if not value]
    if missing:
        raise SystemExit(f"Missing required environment variables: {', '.join(missing)}")

    session = requests.Session()
    playback = SpotifyPlaybackClient.from_refresh_token(
        SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, SPOTIFY_REFRESH_TOKEN, timeout=HTTP_TIMEOUT,
    )
    lb = ListenBrainzClient(LISTENBRAINZ_TOKEN, session=session, api_url=LISTENBRAINZ_API_URL, timeout=HTTP_TIMEOUT)
    resolver = MBIDResolver(session=session, url=f"{lb.api_url}/1/metadata/lookup/", timeout=HTTP_TIMEOUT)
    alert = alerter_from_env()

    try:
        user = lb.validate_token()
    except ListenBrainzAuthError as e:
        raise SystemExit(f"ListenBrainz token rejected: {e}")
    except ListenBrainzNetworkError as e:
        log.warning("Could not validate ListenBrainz token yet: %s", e)
        user = "?"

    log.info("Starting Spotify → ListenBrainz bridge as %s. Poll interval: %ss", user, POLL_INTERVAL)
    alert("INFO", "Bridge started", f"Submitting listens for {user}.")

    Bridge(playback, resolver, lb, alert=alert).run_forever()


def run():
    try:
        main()
    except KeyboardInterrupt:
        log.info("Shutting down…")


if __name__ == "__main__":
    run()
