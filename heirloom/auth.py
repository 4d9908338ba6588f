"""Sign-in through Google Identity ID tokens, remembered in the Flask session."""

from __future__ import annotations

import functools
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from google.auth import exceptions as auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from .models import User

logger = logging.getLogger(__name__)

SESSION_KEY = "user"

TokenVerifier = Callable[[str], Mapping[str, Any]]


def google_token_verifier(client_id: Optional[str]) -> TokenVerifier:
    """Return a verifier checking Google-signed ID tokens for ``client_id``."""

    transport = google_requests.Request()

    def verify(credential: str) -> Mapping[str, Any]:
        return id_token.verify_oauth2_token(credential, transport, client_id)

    return verify


class SessionAuth:
    """Authentication state for the current request.

    The hosted identity provider signs the user in and hands the browser an
    ID token. :meth:`login` verifies it once and keeps the user's email and
    name in the signed session cookie.
    """

    def __init__(self, verifier: TokenVerifier, *, client_id: Optional[str] = None) -> None:
        self._verifier = verifier
        self.client_id = client_id

    @classmethod
    def from_env(cls) -> "SessionAuth":
        client_id = os.environ.get("GOOGLE_CLIENT_ID")
        if not client_id:
            raise RuntimeError("GOOGLE_CLIENT_ID must be set to verify sign-in tokens.")
        return cls(google_token_verifier(client_id), client_id=client_id)

    def is_authenticated(self) -> bool:
        return bool(session.get(SESSION_KEY, {}).get("email"))

    def me(self) -> User:
        data: Dict[str, str] = session.get(SESSION_KEY) or {}
        if not data.get("email"):
            raise LookupError("No user is signed in.")
        return User(email=data["email"], full_name=data.get("full_name", ""))

    def login_url(self, return_path: str) -> str:
        return url_for("auth.login", next=return_path)

    def login(self, credential: str) -> User:
        """Verify ``credential`` and remember the user it identifies.

        Raises :class:`ValueError` when the token is invalid, expired or
        lacks a verified email address.
        """

        try:
            claims = self._verifier(credential)
        except auth_exceptions.GoogleAuthError as exc:
            raise ValueError(str(exc)) from exc

        email = claims.get("email")
        if not email or claims.get("email_verified") is False:
            raise ValueError("The identity token has no verified email address.")

        user = User(email=email, full_name=claims.get("name", ""))
        session[SESSION_KEY] = {"email": user.email, "full_name": user.full_name}
        return user

    def logout(self) -> None:
        session.pop(SESSION_KEY, None)


def current_user() -> Optional[User]:
    auth = current_app.config["BACKEND"].auth
    if not auth.is_authenticated():
        return None
    return auth.me()


def login_required(view: Callable) -> Callable:
    """Send anonymous visitors to the login page, returning them here afterwards."""

    @functools.wraps(view)
    def wrapper(*args: Any, **kwargs: Any):
        auth = current_app.config["BACKEND"].auth
        if not auth.is_authenticated():
            return redirect(auth.login_url(request.full_path.rstrip("?")))
        return view(*args, **kwargs)

    return wrapper


def _safe_next(target: Optional[str]) -> str:
    # Only same-site paths; "//host" would leave the site.
    if not target or not target.startswith("/") or target.startswith("//"):
        return url_for("recipes.dashboard")
    return target


bp = Blueprint("auth", __name__)


@bp.get("/login")
def login():
    auth = current_app.config["BACKEND"].auth
    next_path = _safe_next(request.args.get("next"))
    if auth.is_authenticated():
        return redirect(next_path)
    return render_template(
        "login.html",
        next_path=next_path,
        client_id=getattr(auth, "client_id", None),
        title="Sign in",
    )


@bp.post("/login")
def login_submit():
    auth = current_app.config["BACKEND"].auth
    next_path = _safe_next(request.form.get("next"))
    credential = request.form.get("credential", "").strip()

    if not credential:
        flash("Sign-in did not complete. Please try again.", "error")
        return redirect(url_for("auth.login", next=next_path))

    try:
        user = auth.login(credential)
    except ValueError as exc:
        logger.warning("Rejected sign-in: %s", exc)
        flash("Sign-in failed. Please try again.", "error")
        return redirect(url_for("auth.login", next=next_path))

    flash(f"Welcome, {user.display_name}!", "success")
    return redirect(next_path)


@bp.post("/logout")
def logout():
    current_app.config["BACKEND"].auth.logout()
    flash("You have been signed out.", "success")
    return redirect(url_for("pages.home"))


__all__ = [
    "SessionAuth",
    "bp",
    "current_user",
    "google_token_verifier",
    "login_required",
]
