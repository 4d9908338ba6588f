import os
from typing import Optional

from flask import Flask, current_app, render_template

from .auth import current_user
from .models import Recipe
from .storage import DEFAULT_CACHE_TTL, Backend, QueryCache

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def create_app(backend: Optional[Backend] = None) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    backend:
        Optional hosted backend bundle. When ``None`` the application uses
        Firestore, Cloud Storage and Google sign-in configured through
        environment variables.
    """

    app = Flask(__name__)
    app.config.setdefault("MAX_CONTENT_LENGTH", 16 * 1024 * 1024)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "development-secret-change-me")
    app.config["QUERY_CACHE_ENABLED"] = os.environ.get("QUERY_CACHE_ENABLED", "1") not in ("0", "false", "no")
    app.config["QUERY_CACHE_TTL"] = float(os.environ.get("QUERY_CACHE_TTL", DEFAULT_CACHE_TTL))

    if backend is None:
        from .gcp_storage import backend_from_env

        backend = backend_from_env()

    if app.config["QUERY_CACHE_ENABLED"]:
        cache = QueryCache(ttl=app.config["QUERY_CACHE_TTL"])
        app.extensions["heirloom.query_cache"] = cache
        backend = backend.with_cache(cache)
    app.config["BACKEND"] = backend

    from .auth import bp as auth_bp
    from .views.meals import bp as meals_bp
    from .views.pages import bp as pages_bp
    from .views.recipes import bp as recipes_bp

    app.register_blueprint(pages_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(recipes_bp)
    app.register_blueprint(meals_bp)

    @app.context_processor
    def inject_user() -> dict:
        return {"current_user": current_user()}

    @app.template_filter("media_url")
    def media_url(reference: Optional[str]) -> str:
        if not reference:
            return ""
        return current_app.config["BACKEND"].uploads.url_for(reference)

    @app.template_filter("datefmt")
    def datefmt(value) -> str:
        if value is None:
            return ""
        return f"{value:%B} {value.day}, {value:%Y}"

    @app.errorhandler(404)
    def not_found(error):
        return render_template("not_found.html", title="Not found"), 404

    return app


def allowed_image(filename: Optional[str]) -> bool:
    if not filename or "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in ALLOWED_IMAGE_EXTENSIONS


__all__ = ["create_app", "allowed_image", "Recipe"]
