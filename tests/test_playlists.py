import random

import pytest

from conftest import FakeResponse, make_tracks
from vibelist.models.generation import GenerationRequest
from vibelist.utils.errors import NoTracksFoundError, UpstreamApiError
from vibelist.utils.playlists import build_track_query, gather_candidates, generate_playlist, pick_uris
from vibelist.utils.spotify_api import SpotifyClient
from vibelist.utils.token_provider import AccessToken

PLAYLIST = {"id": "pl1", "name": "Mix", "external_urls": {"spotify": "https://open.spotify.com/playlist/pl1"}}


def _search_by_artist(results):
    """Responder for /search keyed on the artist named in the query."""
    def respond(params, **kwargs):
        for artist, outcome in results.items():
            if f'artist:"{artist}"' in params["q"]:
                if isinstance(outcome, FakeResponse):
                    return outcome
                return FakeResponse(200, {"tracks": {"items": outcome}})
        return FakeResponse(200, {"tracks": {"items": []}})
    return respond


def _wire_playlist_calls(http, add_status=201):
    http.on("GET", "/me", FakeResponse(200, {"id": "user-1"}))
    http.on("POST", "/users/user-1/playlists", FakeResponse(201, PLAYLIST))
    http.on("POST", "/playlists/pl1/tracks", FakeResponse(add_status, {"snapshot_id": "s"} if add_status < 300 else {"error": {"status": add_status, "message": "Insertion failed"}}))
    http.on("DELETE", "/playlists/pl1/followers", FakeResponse(200, text=""))


def _request(**kw):
    kw.setdefault("name", "Mix")
    kw.setdefault("artists", ["Queen"])
    return GenerationRequest(**kw)


def test_query_includes_year_range_only_when_both_given():
    assert build_track_query("Queen", _request()) == 'artist:"Queen"'
    assert build_track_query("Queen", _request(start_year=1975, end_year=1980)) == 'artist:"Queen" year:1975-1980'
    assert build_track_query("Queen", _request(start_year=1975)) == 'artist:"Queen"'


def test_failed_artist_search_is_skipped(http):
    http.on("GET", "/search", _search_by_artist({
        "Queen": make_tracks("q", 3),
        "Nobody": FakeResponse(429, {"error": {"status": 429, "message": "rate limited"}}),
        "ABBA": make_tracks("a", 2),
    }))
    client = SpotifyClient("tok", http=http)

    pool = gather_candidates(client, _request(artists=["Queen", "Nobody", "ABBA"]))

    assert [t["uri"] for t in pool] == [f"spotify:track:q{i}" for i in range(3)] + [f"spotify:track:a{i}" for i in range(2)]
    searches = http.calls_to("/search")
    assert [c["params"]["limit"] for c in searches] == [15, 15, 15]
    assert [c["params"]["type"] for c in searches] == ["track"] * 3


def test_parallel_search_gives_the_same_pool(http):
    http.on("GET", "/search", _search_by_artist({"A": make_tracks("a", 4), "B": make_tracks("b", 4), "C": make_tracks("c", 4)}))
    client = SpotifyClient("tok", http=http)
    req = _request(artists=["A", "B", "C"])

    assert gather_candidates(client, req, workers=3) == gather_candidates(client, req, workers=1)


def test_duplicate_tracks_are_pooled_once(http):
    shared = {"uri": "spotify:track:duet"}
    http.on("GET", "/search", _search_by_artist({"A": [shared], "B": [shared, {"uri": None}]}))

    pool = gather_candidates(SpotifyClient("tok", http=http), _request(artists=["A", "B"]))

    assert pool == [shared]


@pytest.mark.parametrize("count,pool_size", [(5, 10), (10, 10), (20, 7), (1, 1)])
def test_pick_takes_min_of_count_and_pool(count, pool_size):
    pool = make_tracks("t", pool_size)
    uris = pick_uris(pool, count, rng=random.Random(7))

    assert len(uris) == min(count, pool_size)
    assert len(set(uris)) == len(uris)
    assert set(uris) <= {t["uri"] for t in pool}


def test_pick_does_not_mutate_pool():
    pool = make_tracks("t", 10)
    before = list(pool)
    pick_uris(pool, 3, rng=random.Random(1))
    assert pool == before


def test_generate_creates_and_fills_playlist(http):
    http.on("GET", "/search", _search_by_artist({"Queen": make_tracks("q", 10)}))
    _wire_playlist_calls(http)

    result = generate_playlist(_request(song_count=5), AccessToken("tok", "demo"), SpotifyClient("tok", http=http))

    assert result["url"] == "https://open.spotify.com/playlist/pl1"
    assert result["name"] == "Mix"
    assert result["mode"] == "demo"
    created = http.calls_to("/users/user-1/playlists")[0]
    assert created["json"] == {"name": "Mix", "public": True}
    added = http.calls_to("/playlists/pl1/tracks")
    assert len(added) == 1
    assert added[0]["json"]["uris"] == result["uris"]
    assert len(set(result["uris"])) == 5
    assert added[0]["headers"]["Authorization"] == "Bearer tok"


def test_no_tracks_stops_before_playlist_calls(http):
    http.on("GET", "/search", _search_by_artist({}))

    with pytest.raises(NoTracksFoundError):
        generate_playlist(_request(), AccessToken("tok", "user"), SpotifyClient("tok", http=http))

    assert {c["url"].rsplit("/", 1)[-1] for c in http.calls} == {"search"}


def test_profile_failure_aborts_without_creating(http):
    http.on("GET", "/search", _search_by_artist({"Queen": make_tracks("q", 3)}))
    http.on("GET", "/me", FakeResponse(401, {"error": {"status": 401, "message": "The access token expired"}}))

    with pytest.raises(UpstreamApiError) as exc:
        generate_playlist(_request(), AccessToken("tok", "user"), SpotifyClient("tok", http=http))

    assert exc.value.message == "Failed to generate playlist: The access token expired"
    assert http.calls_to("/users/user-1/playlists") == []


def test_failed_insert_rolls_back_playlist(http):
    http.on("GET", "/search", _search_by_artist({"Queen": make_tracks("q", 3)}))
    _wire_playlist_calls(http, add_status=500)

    with pytest.raises(UpstreamApiError) as exc:
        generate_playlist(_request(), AccessToken("tok", "user"), SpotifyClient("tok", http=http))

    assert "Insertion failed" in exc.value.message
    assert len(http.calls_to("/playlists/pl1/followers", method="DELETE")) == 1


def test_failed_rollback_still_reports_original_error(http, caplog):
    http.on("GET", "/search", _search_by_artist({"Queen": make_tracks("q", 3)}))
    http.on("GET", "/me", FakeResponse(200, {"id": "user-1"}))
    http.on("POST", "/users/user-1/playlists", FakeResponse(201, PLAYLIST))
    http.on("POST", "/playlists/pl1/tracks", FakeResponse(502, text="Bad gateway"))
    http.on("DELETE", "/playlists/pl1/followers", FakeResponse(500, text="nope"))

    with pytest.raises(UpstreamApiError) as exc:
        generate_playlist(_request(), AccessToken("tok", "user"), SpotifyClient("tok", http=http))

    assert exc.value.message == "Failed to generate playlist: Bad gateway"
    assert "Could not remove orphaned playlist" in caplog.text


def test_unreadable_or_empty_search_pages_are_skipped(http):
    http.on("GET", "/search", _search_by_artist({
        "Broken": FakeResponse(200, text="<html>oops</html>"),
        "Null": FakeResponse(200, {"tracks": {"items": None}}),
        "Queen": make_tracks("q", 2),
    }))

    pool = gather_candidates(SpotifyClient("tok", http=http), _request(artists=["Broken", "Null", "Queen"]))

    assert [t["uri"] for t in pool] == ["spotify:track:q0", "spotify:track:q1"]
