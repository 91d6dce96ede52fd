"""
Ocean Stella - Route Guard Pipeline

Route guards are an explicit, ordered list of stages run over a
RequestContext. A stage returns None to let the request continue, or an
AuthError that ends it. The first terminal result wins.

Usage:
    admin_only = Pipeline(require_identity, require_active_user,
                          require_role(Role.SUPERADMIN, Role.ADMIN))

    @router.get("/users/admin")
    async def list_users(ctx: RequestContext = Depends(admin_only)):
        ...

The token-attach step that fills request.state.identity runs earlier, in
SecurityMiddleware, for every request.
"""

from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from starlette.requests import Request

from oceanstella.auth.models import Role, User
from oceanstella.auth.tokens import TokenPayload
from oceanstella.errors import AuthError, AuthenticationError, AuthorizationError


@dataclass
class RequestContext:
    """What guards know about the caller."""
    request: Request
    identity: Optional[TokenPayload] = None
    user: Optional[User] = None


Stage = Callable[[RequestContext], Optional[AuthError]]


def require_identity(ctx: RequestContext) -> Optional[AuthError]:
    """Caller must present a valid access token."""
    if ctx.identity is None:
        return AuthenticationError("No token", code="UNAUTHENTICATED")
    return None


def require_active_user(ctx: RequestContext) -> Optional[AuthError]:
    """Load the account behind the token; disabled or deleted accounts stop here."""
    if ctx.identity is None:
        return AuthenticationError("No token", code="UNAUTHENTICATED")

    database = ctx.request.app.state.database
    with database.session() as db:
        try:
            user = db.get(User, UUID(ctx.identity.sub))
        except ValueError:
            user = None

    if user is None or not user.is_active:
        return AuthenticationError("Unauthorized", code="UNAUTHORIZED")

    ctx.user = user
    return None


def require_role(*roles: Role) -> Stage:
    """Caller's role label must be one of the given roles."""
    allowed = {r.value if isinstance(r, Role) else r for r in roles}

    def stage(ctx: RequestContext) -> Optional[AuthError]:
        role = ctx.user.role if ctx.user is not None else (
            ctx.identity.role if ctx.identity is not None else None
        )
        if role not in allowed:
            return AuthorizationError(
                f"Requires role: {', '.join(sorted(allowed))}", code="ROLE_REQUIRED"
            )
        return None

    stage.__name__ = f"require_role({','.join(sorted(allowed))})"
    return stage


class Pipeline:
    """
    Ordered guard stages.

    An instance is also a FastAPI dependency: it builds the context from
    the request, runs the stages and raises the first terminal error.
    """

    def __init__(self, *stages: Stage):
        self.stages = stages

    def run(self, ctx: RequestContext) -> Optional[AuthError]:
        for stage in self.stages:
            outcome = stage(ctx)
            if outcome is not None:
                return outcome
        return None

    def __call__(self, request: Request) -> RequestContext:
        ctx = RequestContext(
            request=request,
            identity=getattr(request.state, "identity", None),
        )
        outcome = self.run(ctx)
        if outcome is not None:
            raise outcome
        return ctx


authenticated = Pipeline(require_identity, require_active_user)

admin_only = Pipeline(
    require_identity,
    require_active_user,
    require_role(Role.SUPERADMIN, Role.ADMIN),
)
