# Overview: Flask API route returning the caller's resolved page access.

from flask import Blueprint, g

from ..decorators import require_auth
from ..responses import ok
from ..services import permission_service

access_bp = Blueprint("access", __name__, url_prefix="/api/theaters/<int:theater_id>/access")


@access_bp.get("")
@require_auth
def my_access(theater_id: int):
    """
    Pages the caller may open in this theater. Super admins are reported as
    such; everyone else gets their role's granted pages (possibly none).
    """
    if g.is_super_admin:
        data = permission_service.ResolvedAccess(user_type=permission_service.USER_TYPE_SUPER_ADMIN).to_dict()
        return ok(data)

    access = permission_service.resolve_user_access(theater_id, g.user_id)
    return ok(access.to_dict())
