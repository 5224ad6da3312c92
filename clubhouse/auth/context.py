"""
Auth context - who is calling, for each request.

This is the lightweight object handed to route handlers by the
gatekeeper dependencies in policies.py.
"""

from __future__ import annotations

from dataclasses import dataclass

from clubhouse.core.models import Principal


@dataclass
class AuthContext:
    """
    Authentication context for a request.

    Usage in routes:
        async def my_route(ctx: AuthContext = Depends(require_auth())):
            print(f"User {ctx.principal.id} is signed in")
    """

    principal: Principal | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.principal is None

    @classmethod
    def anonymous(cls) -> AuthContext:
        """Create an anonymous context (no user)."""
        return cls()
