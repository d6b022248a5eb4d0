from functools import wraps

from flask import current_app, redirect, request, session, url_for
from werkzeug.security import check_password_hash

from errors import json_response


def admin_emails():
    raw = current_app.config.get("ADMIN_EMAILS") or ""
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def _token_ok(req) -> bool:
    expected = current_app.config.get("ADMIN_TOKEN") or ""
    token = req.args.get("token") or req.headers.get("X-Admin-Token")
    return bool(expected and token == expected)


def is_admin_request(req) -> bool:
    """Admin por token (?token= / X-Admin-Token) ou por sessão de e-mail autorizado."""
    if _token_ok(req):
        return True
    email = (session.get("admin_email") or "").lower()
    return bool(email and email in admin_emails())


def safe_next(value, default):
    """Só aceita caminho local (/...), sem // nem quebra de linha."""
    if not value or not value.startswith("/") or value.startswith("//"):
        return default
    if "\r" in value or "\n" in value or "\\" in value:
        return default
    return value


def check_credentials(email: str, password: str) -> bool:
    email = (email or "").strip().lower()
    pwd_hash = current_app.config.get("ADMIN_PASSWORD_HASH") or ""
    if not email or email not in admin_emails() or not pwd_hash:
        return False
    return check_password_hash(pwd_hash, password or "")


def admin_api_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not is_admin_request(request):
            return json_response({"error": "unauthorized"}, 401)
        return view(*args, **kwargs)
    return wrapped


def admin_page_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not is_admin_request(request):
            return redirect(url_for("admin.login", next=request.path))
        return view(*args, **kwargs)
    return wrapped
