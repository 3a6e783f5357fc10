"""vibelist: Spotify OAuth proxy that builds playlists from a list of artists."""

__version__ = "0.1.0"
