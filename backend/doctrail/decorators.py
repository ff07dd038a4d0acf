# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Store


def _int_or_none(raw):
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def require_store(f):
    """
    Establish store context for a request.

    There is no ambient tenant: the caller names the store explicitly with
    the X-Store-Id header (or ?store_id=). Sets:
    - g.store_id: the store every service call is scoped to
    - g.actor_user_id: optional X-User-Id, recorded on activity entries

    Returns 400 if the store id is missing or malformed, 404 if the store
    does not exist.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-Store-Id") or request.args.get("store_id")
        store_id = _int_or_none(raw)
        if store_id is None:
            return jsonify({"error": "store_id required (X-Store-Id header)"}), 400

        if db.session.get(Store, store_id) is None:
            return jsonify({"error": "Store not found"}), 404

        g.store_id = store_id
        g.actor_user_id = _int_or_none(request.headers.get("X-User-Id"))
        return f(*args, **kwargs)

    return decorated_function
