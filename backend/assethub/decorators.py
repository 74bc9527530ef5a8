# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def require_actor(f):
    """
    Require an acting user identity.

    Authentication happens upstream; the gateway forwards the user as headers:
    - X-User-Id (required)
    - X-User-Name (optional display name)

    Sets g.actor_id and g.actor_name. Returns 401 without X-User-Id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get("X-User-Id") or "").strip()
        if not actor_id:
            return jsonify({"error": "UNAUTHENTICATED", "message": "X-User-Id header required"}), 401

        g.actor_id = actor_id
        g.actor_name = (request.headers.get("X-User-Name") or "").strip() or None
        return f(*args, **kwargs)

    return decorated_function


def actor_label() -> str:
    """Display label for the acting user (name if known, else id)."""
    return g.get("actor_name") or g.get("actor_id")
