"""
Request context and tenant scoping helpers.

Every service operation receives a RequestContext as its first argument.
Queries for tenant-owned rows go through scoped(), which injects the tenant
predicate and hides soft-deleted rows; branch-owned lookups add branch_id on
top.

USAGE:
    from poscore.context import RequestContext, scoped

    ctx = RequestContext(tenant_id=1, branch_id=2, user_id=3, user_name="Mona")
    products = scoped(Product, ctx).filter_by(is_active=True).all()
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ContextError, NotFoundError
from .extensions import db
from .models import Branch, Tenant, User


@dataclass(frozen=True)
class RequestContext:
    """
    Who is acting, and where.

    MULTI-TENANT: tenant_id, branch_id and user_id are required for any
    mutating call. Absence is a programming error (ContextError), not a
    business failure.
    """
    tenant_id: int | None
    branch_id: int | None
    user_id: int | None
    user_name: str | None = None

    def for_branch(self, branch_id: int) -> "RequestContext":
        return RequestContext(self.tenant_id, branch_id, self.user_id, self.user_name)


def require_context(ctx: RequestContext | None) -> RequestContext:
    if ctx is None:
        raise ContextError("Request context not established")
    if not ctx.tenant_id:
        raise ContextError("Tenant context not established")
    if not ctx.branch_id:
        raise ContextError("Branch context not established")
    if not ctx.user_id:
        raise ContextError("User context not established")
    return ctx


def scoped(model, ctx: RequestContext, *, include_deleted: bool = False):
    """
    Base query for a tenant-owned model.

    Filters tenant_id to the context's tenant and, for models with a
    deleted_at column, excludes soft-deleted rows unless include_deleted is
    set. Refunds read with include_deleted so past sales stay reversible.
    """
    query = db.session.query(model).filter(model.tenant_id == ctx.tenant_id)
    if hasattr(model, "deleted_at") and not include_deleted:
        query = query.filter(model.deleted_at.is_(None))
    return query


def branch_scoped(model, ctx: RequestContext, branch_id: int | None = None):
    return scoped(model, ctx).filter(model.branch_id == (branch_id or ctx.branch_id))


def get_tenant(ctx: RequestContext) -> Tenant:
    tenant = db.session.get(Tenant, ctx.tenant_id)
    if not tenant or not tenant.is_active:
        raise NotFoundError("Tenant not found", code="TENANT_NOT_FOUND")
    return tenant


def get_branch(ctx: RequestContext, branch_id: int | None = None) -> Branch:
    """Branch lookup that never reveals branches of other tenants."""
    branch = scoped(Branch, ctx).filter(Branch.id == (branch_id or ctx.branch_id)).first()
    if not branch:
        raise NotFoundError("Branch not found", code="BRANCH_NOT_FOUND")
    return branch


def get_user(ctx: RequestContext, user_id: int | None = None) -> User:
    user = scoped(User, ctx).filter(User.id == (user_id or ctx.user_id)).first()
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return user


def user_name(ctx: RequestContext) -> str | None:
    if ctx.user_name:
        return ctx.user_name
    user = db.session.get(User, ctx.user_id)
    return user.name if user else None
