"""Explicit authorization context for workflow operations.

Every operation that needs a capability (approve, lock, resolve, ...) takes an
``AuthorizationContext`` argument instead of reading the current user from
request state, so the checks are testable without a request pipeline.

Usage:
    from app.core.authorization import AuthorizationContext

    ctx = AuthorizationContext(user_id="u-17", role="editor")
    ctx.require("approve_content")   # raises PermissionDenied if missing
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import PermissionDenied

ROLES = ("owner", "editor", "viewer")

_EDITOR_CAPABILITIES = frozenset({
    "edit_content",
    "submit_content",
    "request_revisions",
    "approve_content",
    "lock_content",
    "comment",
    "resolve_feedback",
    "manage_milestones",
    "manage_templates",
    "schedule_episodes",
    "generate_proposals",
})

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    "owner": _EDITOR_CAPABILITIES,
    "editor": _EDITOR_CAPABILITIES,
    "viewer": frozenset({"comment"}),
}


@dataclass(frozen=True)
class AuthorizationContext:
    """Acting user and project-membership role."""

    user_id: str
    role: str = "viewer"
    is_client: bool = False

    def can(self, capability: str) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())

    def require(self, capability: str) -> None:
        if not self.can(capability):
            raise PermissionDenied(capability, role=self.role)


def system_context() -> AuthorizationContext:
    """Context used by CLI jobs (the daily topic generator, template seeding)."""
    return AuthorizationContext(user_id="system", role="owner")
