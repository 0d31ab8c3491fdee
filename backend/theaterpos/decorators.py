# Overview: Request identity and page-permission decorators for API routes.

from functools import wraps

from flask import current_app, g, request

from .responses import fail
from .services import permission_service


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


def require_auth(f):
    """
    Establish the caller's identity from the upstream authentication layer.

    Sets on Flask g:
    - g.user_id: theater user item _id (X-User-Id)
    - g.theater_id: the caller's theater (X-Theater-Id)
    - g.is_super_admin: X-User-Type == "super_admin"

    SECURITY: Returns 401 when the identity headers are missing, and 403 when
    a <theater_id> in the URL differs from the caller's theater (super admins
    may act on any theater).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get("X-User-Id") or "").strip()
        theater_id = _header_int("X-Theater-Id")
        is_super_admin = (request.headers.get("X-User-Type") or "").strip() == permission_service.USER_TYPE_SUPER_ADMIN

        if not user_id or (theater_id is None and not is_super_admin):
            return fail("Authentication required", 401)

        g.user_id = user_id
        g.theater_id = theater_id
        g.is_super_admin = is_super_admin

        path_theater = kwargs.get("theater_id")
        if path_theater is not None and path_theater != theater_id and not is_super_admin:
            current_app.logger.warning(
                "Cross-theater access denied: user %s of theater %s requested theater %s (%s %s)",
                user_id, theater_id, path_theater, request.method, request.path,
            )
            return fail("Access denied for this theater", 403)

        return f(*args, **kwargs)

    return decorated_function


def require_page_access(page: str):
    """
    Require the caller's role to grant `page`.

    Must be applied after @require_auth. Super admins bypass the check.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "user_id"):
                return fail("Authentication required", 401)

            if g.is_super_admin:
                return f(*args, **kwargs)

            if not permission_service.has_page_access(g.theater_id, g.user_id, page):
                current_app.logger.warning(
                    "Permission denied: user %s (theater %s) lacks page %s for %s %s",
                    g.user_id, g.theater_id, page, request.method, request.path,
                )
                return fail(f"Permission denied: {page}", 403)

            return f(*args, **kwargs)

        return decorated_function
    return decorator
