# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def require_actor(f):
    """
    Require an upstream-authenticated actor.

    Authentication happens in front of this service; the gateway forwards
    the caller's identity as headers. Sets:
    - g.actor_id: value of X-User-Id (REQUIRED)
    - g.actor_role: value of X-User-Role, or None

    Returns 401 if X-User-Id is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get("X-User-Id") or "").strip()
        if not actor_id:
            return jsonify({"error": "Authentication required"}), 401

        role = (request.headers.get("X-User-Role") or "").strip()
        g.actor_id = actor_id
        g.actor_role = role or None

        return f(*args, **kwargs)

    return decorated_function
