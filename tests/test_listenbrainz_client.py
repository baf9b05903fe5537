# tests/test_listenbrainz_client.py
from __future__ import annotations

import pytest
import requests

from conftest import FakeResponse, FakeSession, make_track, snap
from listenbrainz_client import (
    ListenBrainzClient, ListenBrainzAuthError, ListenBrainzNetworkError,
    ListenBrainzSubmitError, MissingFieldError, build_listen, artist_credit, validate_track,
)
from mbid_lookup import IdentifierSet

IDS = IdentifierSet(recording_mbid="rec-1", release_mbid="rel-1", artist_mbids=["art-1"])


class TestBuildListen:
    def test_now_playing_has_no_timestamp(self, track):
        listen = build_listen(track, None, now_playing=True)
        assert listen["listen_type"] == "playing_now"
        assert "listened_at" not in listen["payload"][0]

    def test_single_has_timestamp(self, track):
        listen = build_listen(track, None, now_playing=False, listened_at=1700000000)
        assert listen["listen_type"] == "single"
        assert listen["payload"][0]["listened_at"] == 1700000000

    def test_metadata_copied_from_track(self, track):
        meta = build_listen(track, None, now_playing=True)["payload"][0]["track_metadata"]
        assert meta["artist_name"] == "Aphex Twin"
        assert meta["track_name"] == "Windowlicker"
        assert meta["release_name"] == "Windowlicker"
        info = meta["additional_info"]
        assert info["isrc"] == "GBBKS9900085"
        assert info["duration_ms"] == 200000
        assert info["discnumber"] == 1
        assert info["tracknumber"] == 1
        assert info["music_service"] == "spotify.com"
        assert info["spotify_id"] == "https://open.spotify.com/track/T1"
        assert info["origin_url"] == "https://open.spotify.com/track/T1"
        assert info["spotify_album_id"] == "https://open.spotify.com/album/R1"
        assert info["spotify_artist_ids"] == ["https://open.spotify.com/artist/A1"]
        assert info["release_artist_names"] == ["Aphex Twin"]

    def test_mbids_absent_without_resolution(self, track):
        info = build_listen(track, None, now_playing=True)["payload"][0]["track_metadata"]["additional_info"]
        for key in ("release_mbid", "artist_mbids", "recording_mbid"):
            assert key not in info

    def test_mbids_present_with_resolution(self, track):
        info = build_listen(track, IDS, now_playing=True)["payload"][0]["track_metadata"]["additional_info"]
        assert info["release_mbid"] == "rel-1"
        assert info["artist_mbids"] == ["art-1"]
        assert info["recording_mbid"] == "rec-1"

    def test_missing_isrc_is_fatal(self):
        with pytest.raises(MissingFieldError) as exc:
            build_listen(make_track(external_ids={}), IDS, now_playing=False)
        assert exc.value.field == "external_ids.isrc"

    def test_missing_artist_url_names_the_artist(self):
        track = make_track(artists=[{"name": "Someone", "external_urls": {}}])
        with pytest.raises(MissingFieldError) as exc:
            build_listen(track, None, now_playing=True)
        assert exc.value.field == "artists[0].external_urls.spotify"

    def test_no_artists_is_fatal(self):
        with pytest.raises(MissingFieldError):
            build_listen(make_track(artists=[]), None, now_playing=True)

    def test_artist_credit_joins_names(self):
        track = make_track(artists=[{"name": "A"}, {"name": "B"}])
        assert artist_credit(track) == "A, B"


class TestSubmit:
    def test_sets_token_header(self):
        session = FakeSession()
        ListenBrainzClient("secret", session=session)
        assert session.headers["Authorization"] == "Token secret"

    def test_posts_listen(self):
        session = FakeSession(FakeResponse(200, text='{"status": "ok"}'))
        client = ListenBrainzClient("secret", session=session, api_url="https://lb.example/", timeout=4)
        assert client.submit(snap(progress=150000), IDS, now_playing=False) is None
        method, url, kwargs = session.calls[0]
        assert method == "POST"
        assert url == "https://lb.example/1/submit-listens"
        assert kwargs["timeout"] == 4
        assert kwargs["json"]["listen_type"] == "single"
        assert isinstance(kwargs["json"]["payload"][0]["listened_at"], int)

    def test_rejected_listen_carries_status_and_body(self):
        session = FakeSession(FakeResponse(400, text="bad listen"))
        with pytest.raises(ListenBrainzSubmitError) as exc:
            ListenBrainzClient("secret", session=session).submit(snap(), None, now_playing=True)
        assert exc.value.status == 400
        assert exc.value.body == "bad listen"

    def test_empty_error_body_gets_placeholder(self):
        session = FakeSession(FakeResponse(502, text=""))
        with pytest.raises(ListenBrainzSubmitError) as exc:
            ListenBrainzClient("secret", session=session).submit(snap(), None, now_playing=True)
        assert exc.value.status == 502
        assert exc.value.body == "no response at all"

    def test_transport_error(self):
        session = FakeSession(requests.ConnectionError("down"))
        with pytest.raises(ListenBrainzNetworkError):
            ListenBrainzClient("secret", session=session).submit(snap(), None, now_playing=True)

    def test_missing_field_sends_nothing(self):
        session = FakeSession()
        bad = snap(track=make_track(external_ids={}))
        with pytest.raises(MissingFieldError):
            ListenBrainzClient("secret", session=session).submit(bad, None, now_playing=True)
        assert session.calls == []

    def test_requires_token(self):
        with pytest.raises(ValueError):
            ListenBrainzClient("", session=FakeSession())


class TestValidateToken:
    def test_valid(self):
        session = FakeSession(FakeResponse(200, json_data={"valid": True, "user_name": "rob"}))
        assert ListenBrainzClient("t", session=session).validate_token() == "rob"

    def test_invalid(self):
        session = FakeSession(FakeResponse(200, json_data={"valid": False, "message": "Invalid token"}))
        with pytest.raises(ListenBrainzAuthError):
            ListenBrainzClient("t", session=session).validate_token()


class TestValidateTrack:
    def test_complete_track_passes(self, track):
        assert validate_track(track) is None

    def test_missing_album_url(self):
        track = make_track()
        track["album"]["external_urls"] = {}
        with pytest.raises(MissingFieldError) as exc:
            validate_track(track)
        assert exc.value.field == "album.external_urls.spotify"

    def test_missing_track_number(self):
        track = make_track()
        del track["track_number"]
        with pytest.raises(MissingFieldError) as exc:
            validate_track(track)
        assert exc.value.field == "track_number"
