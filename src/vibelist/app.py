from __future__ import annotations

import logging, sys
from typing import Optional

from flask import Flask, current_app, jsonify, redirect, render_template, request, session
from flask_cors import CORS

from vibelist.models.generation import parse_generation_request
from vibelist.utils.callback import OAuthHandshake
from vibelist.utils.errors import ConfigError, VibelistError
from vibelist.utils.playlists import generate_playlist
from vibelist.utils.session_utils import SessionTokens
from vibelist.utils.settings import Settings, load_settings
from vibelist.utils.spotify_api import SpotifyClient
from vibelist.utils.token_provider import TokenProvider


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _ext() -> dict:
    return current_app.extensions["vibelist"]


def _session_tokens() -> SessionTokens:
    return SessionTokens(session)


def _client(token: str) -> SpotifyClient:
    settings: Settings = _ext()["settings"]
    return SpotifyClient(token, timeout=settings.request_timeout, http=_ext()["http"])


def create_app(settings: Optional[Settings] = None, http=None) -> Flask:
    """
    Build the Flask app. `settings` defaults to the environment; `http` is
    anything with a requests-style `.request()` and defaults to `requests`.
    """
    settings = settings or load_settings()

    app = Flask(__name__, template_folder="templates")
    app.secret_key = settings.session_secret
    app.config["PERMANENT_SESSION_LIFETIME"] = settings.session_lifetime
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    CORS(app, supports_credentials=True, origins=list(settings.cors_origins) or "*")

    app.extensions["vibelist"] = {
        "settings": settings,
        "http": http,
        "tokens": TokenProvider(settings, http=http),
        "handshake": OAuthHandshake(settings, http=http),
    }

    @app.errorhandler(VibelistError)
    def vibelist_error(e: VibelistError):
        if e.http_status >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, e.message)
        return jsonify({"error": e.message}), e.http_status

    # ---- OAuth ----
    @app.get("/login")
    def login():
        session.permanent = True
        url = _ext()["handshake"].begin(_session_tokens())
        return redirect(url)

    @app.get("/callback")
    def spotify_callback():
        result = _ext()["handshake"].complete(
            _session_tokens(),
            code=request.args.get("code"),
            returned_state=request.args.get("state"),
            error=request.args.get("error"),
        )
        if not result.ok:
            app.logger.warning("OAuth callback failed: %s", result.message)
        return render_template("callback.html", ok=result.ok, message=result.message), result.http_status

    @app.get("/logout")
    def logout():
        _session_tokens().destroy()
        return jsonify({"success": True})

    # ---- API ----
    @app.get("/api/auth-status")
    def auth_status():
        status = _ext()["tokens"].status(_session_tokens())
        app.logger.debug("Auth status check: %s", status)
        return jsonify(status)

    @app.get("/api/search-artists")
    def search_artists():
        q = (request.args.get("q") or "").strip()
        if not q:
            return jsonify({"error": 'Query parameter "q" is required'}), 400

        access = _ext()["tokens"].resolve(_session_tokens())
        artists = _client(access.token).search_artists(q)
        return jsonify({"artists": artists, "mode": access.mode})

    @app.post("/api/generate")
    def generate():
        gen_request = parse_generation_request(request.get_json(silent=True))

        access = _ext()["tokens"].resolve(_session_tokens())
        result = generate_playlist(
            gen_request,
            access,
            _client(access.token),
            search_workers=settings.search_workers,
        )
        app.logger.info("Created playlist %r (%s mode, %d tracks)", result["name"], result["mode"], len(result["uris"]))
        return jsonify({"url": result["url"], "name": result["name"], "mode": result["mode"]})

    @app.get("/healthz")
    def healthz():
        return jsonify({"status": "ok", "demoAvailable": settings.demo_available})

    return app


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        configure_logging()
        logging.getLogger("vibelist").error("ERROR: %s", e)
        sys.exit(1)

    configure_logging(settings.log_level)
    app = create_app(settings)
    app.logger.info("Server running at http://%s:%d", settings.host, settings.port)
    app.logger.info("Visit http://%s:%d/login to authenticate", settings.host, settings.port)
    if settings.demo_available:
        app.logger.info("Demo mode ENABLED (using service account)")
    else:
        app.logger.warning("Demo mode DISABLED (no SERVICE_REFRESH_TOKEN found)")
    app.run(host=settings.host, port=settings.port, debug=False)


if __name__ == "__main__":
    # Run with:  python -m vibelist.app  (or the `vibelist` console script)
    main()
