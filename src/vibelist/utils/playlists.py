# utils/playlists.py
from __future__ import annotations

import logging
import random
from typing import List, Optional

from vibelist.models.generation import GenerationRequest
from vibelist.utils.background import map_in_pool
from vibelist.utils.errors import NoTracksFoundError, UpstreamApiError
from vibelist.utils.spotify_api import SpotifyClient
from vibelist.utils.token_provider import AccessToken

log = logging.getLogger(__name__)

DEFAULT_PLAYLIST_NAME = "New Vibe Playlist"
TRACKS_PER_ARTIST = 15


def build_track_query(artist: str, request: GenerationRequest) -> str:
    return f'artist:"{artist}"{request.year_filter}'


def _search_artist_tracks(client: SpotifyClient, query: str) -> List[dict]:
    try:
        return client.search_tracks(query, limit=TRACKS_PER_ARTIST)
    except UpstreamApiError as e:
        log.warning("Spotify search error for %s, skipping: %s", query, e)
        return []


def gather_candidates(client: SpotifyClient, request: GenerationRequest, workers: int = 1) -> List[dict]:
    """
    Search each artist and merge the hits into one pool, in artist order.
    An artist whose search fails contributes nothing; the others still count.
    Tracks without a URI are dropped, repeats (shared features) kept once.
    """
    queries = [build_track_query(a, request) for a in request.artists]
    if workers > 1 and len(queries) > 1:
        per_artist = map_in_pool(lambda q: _search_artist_tracks(client, q), queries, workers)
    else:
        per_artist = [_search_artist_tracks(client, q) for q in queries]

    pool, seen = [], set()
    for tracks in per_artist:
        for t in tracks:
            uri = (t or {}).get("uri")
            if uri and uri not in seen:
                seen.add(uri)
                pool.append(t)
    return pool


def pick_uris(pool: List[dict], count: int, rng: Optional[random.Random] = None) -> List[str]:
    """Uniform sample of min(count, len(pool)) track URIs (Fisher-Yates, then a prefix)."""
    shuffled = list(pool)
    (rng or random).shuffle(shuffled)
    return [t["uri"] for t in shuffled[:count]]


def generate_playlist(
    request: GenerationRequest,
    access: AccessToken,
    client: SpotifyClient,
    *,
    search_workers: int = 1,
    rng: Optional[random.Random] = None,
) -> dict:
    """
    Search, sample, then create the playlist and fill it in one batch.

    Nothing after the search is retried. If adding tracks fails, the new
    (empty) playlist is unfollowed before the error is raised.
    """
    pool = gather_candidates(client, request, workers=search_workers)
    uris = pick_uris(pool, request.song_count, rng=rng)
    if not uris:
        raise NoTracksFoundError()
    log.info("Selected %d of %d candidate tracks for %d artist(s)", len(uris), len(pool), len(request.artists))

    playlist = None
    try:
        me = client.me()
        user_id = me.get("id")
        if not user_id:
            raise UpstreamApiError("Failed to get user information")

        playlist = client.create_playlist(user_id, request.name or DEFAULT_PLAYLIST_NAME, public=True)
        if not playlist.get("id"):
            raise UpstreamApiError("Failed to create playlist")

        client.add_tracks(playlist["id"], uris)
    except UpstreamApiError as e:
        if playlist and playlist.get("id"):
            _roll_back(client, playlist["id"])
        raise type(e)(f"Failed to generate playlist: {e.message}", status_code=e.status_code) from e

    return {
        "url": (playlist.get("external_urls") or {}).get("spotify"),
        "name": playlist.get("name", request.name),
        "mode": access.mode,
        "uris": uris,
    }


def _roll_back(client: SpotifyClient, playlist_id: str) -> None:
    try:
        client.unfollow_playlist(playlist_id)
        log.info("Removed playlist %s after failing to add tracks", playlist_id)
    except UpstreamApiError as e:
        log.error("Could not remove orphaned playlist %s: %s", playlist_id, e)
