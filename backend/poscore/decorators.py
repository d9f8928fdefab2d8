# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .context import RequestContext
from .extensions import db
from .models import Branch, User


def _header_int(name: str) -> int | None:
    value = request.headers.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def require_context(f):
    """
    Establish tenant/branch/user context from request headers.

    Authentication happens upstream; this only binds the request to an
    identity. Sets g.context (RequestContext) and g.current_user.

    Returns 401 if:
    - X-Tenant-Id, X-Branch-Id or X-User-Id is missing or not an integer
    - the user does not exist, is inactive, or belongs to another tenant
    - the branch does not belong to the tenant
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = _header_int("X-Tenant-Id")
        branch_id = _header_int("X-Branch-Id")
        user_id = _header_int("X-User-Id")

        if not tenant_id or not branch_id or not user_id:
            return jsonify({"error": "Tenant, branch and user context required", "code": "CONTEXT_REQUIRED"}), 401

        user = db.session.get(User, user_id)
        if not user or not user.is_active or user.tenant_id != tenant_id:
            return jsonify({"error": "Invalid user context", "code": "CONTEXT_INVALID"}), 401

        branch = db.session.get(Branch, branch_id)
        if not branch or not branch.is_active or branch.tenant_id != tenant_id:
            return jsonify({"error": "Invalid branch context", "code": "CONTEXT_INVALID"}), 401

        g.current_user = user
        g.context = RequestContext(
            tenant_id=tenant_id,
            branch_id=branch_id,
            user_id=user.id,
            user_name=user.name,
        )
        return f(*args, **kwargs)

    return decorated_function
