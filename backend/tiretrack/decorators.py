# Overview: Request decorators for API routes (acting user, service error mapping).

from functools import wraps
from flask import current_app, g, jsonify, request

from .extensions import db
from .errors import AuditError, Inconsistent, LedgerIntegrityError, StorageUnavailable, TransitionError


ACTOR_HEADER = "X-Performed-By"


def with_actor(f):
    """
    Capture the acting user identifier for the request.

    Authentication happens upstream; the identifier is opaque here and is
    only recorded on history entries and audit sessions.
    - g.performed_by: header value, or None
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get(ACTOR_HEADER) or "").strip()
        g.performed_by = actor or None
        return f(*args, **kwargs)

    return decorated_function


def handle_service_errors(action: str):
    """
    Translate service exceptions into JSON error responses.

    Every failure path rolls the session back before answering, so nothing
    half-written survives the request.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except (TransitionError, AuditError) as e:
                db.session.rollback()
                return jsonify(e.to_dict()), e.http_status
            except StorageUnavailable as e:
                db.session.rollback()
                current_app.logger.warning("Storage unavailable during %s: %s", action, e)
                return jsonify({"error": "Storage temporarily unavailable", "code": e.code}), 503
            except (Inconsistent, LedgerIntegrityError) as e:
                current_app.logger.critical("Failed to %s: %s", action, e)
                return jsonify({"error": str(e), "code": e.code}), 500
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
