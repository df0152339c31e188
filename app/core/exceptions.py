"""
Workflow-engine exception hierarchy.

Services raise these; blueprints register one handler per type and get
consistent HTTP status codes everywhere:

    NotFoundError          404
    ValidationError        422  (malformed request bodies are 400 at the blueprint)
    ConflictError          409
    InvalidTransition      409
    ContentLocked          409
    NoTemplateAvailable    422
    ResolveNotApplicable   422
    PermissionDenied       403

Usage:
    from app.core.exceptions import NotFoundError, InvalidTransition

    raise NotFoundError(resource="Episode", resource_id=42)
    raise InvalidTransition("ProductionMilestone", "completed", "in_progress")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Args:
        resource: Human-readable model/entity name (e.g. "Episode", "TopicProposal").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        project_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        project_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_id = project_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if project_id is not None:
            msg += f" (project={project_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised on a duplicate unique value or a stale concurrency token.

    Args:
        resource: Model name.
        field: The field whose value conflicts.
        value: The conflicting value.
        message: Optional override for the default duplicate wording.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | int | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class InvalidTransition(Exception):
    """Raised when a lifecycle transition is not allowed from the current state.

    Recoverable: the caller re-reads the current state and retries with a
    valid transition.
    """

    def __init__(self, resource: str, current: str, target: str) -> None:
        self.resource = resource
        self.current = current
        self.target = target
        super().__init__(f"{resource}: cannot transition from '{current}' to '{target}'")


class ContentLocked(Exception):
    """Raised on any write to content whose status is ``locked``. Terminal."""

    def __init__(self, content_id: int | None = None) -> None:
        self.content_id = content_id
        super().__init__(f"Content id={content_id} is locked and accepts no further changes")


class NoTemplateAvailable(Exception):
    """Raised when no workflow template matches the requested timeline type."""

    def __init__(self, timeline_type: str, project_id: int | None = None) -> None:
        self.timeline_type = timeline_type
        self.project_id = project_id
        super().__init__(f"No workflow template available for timeline type '{timeline_type}'")


class ResolveNotApplicable(Exception):
    """Raised when resolving feedback that is not a revision request."""

    def __init__(self, feedback_id: int, feedback_type: str) -> None:
        self.feedback_id = feedback_id
        self.feedback_type = feedback_type
        super().__init__(
            f"Feedback id={feedback_id} is a '{feedback_type}'; only revision requests can be resolved"
        )


class PermissionDenied(Exception):
    """Raised when the acting user lacks the capability an operation needs."""

    def __init__(self, capability: str, role: str | None = None) -> None:
        self.capability = capability
        self.role = role
        super().__init__(f"Role '{role}' lacks capability '{capability}'")
