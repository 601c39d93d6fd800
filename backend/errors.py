class PlannerError(Exception):
    """Base class for errors raised by the planner service layer."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PlannerError):
    """Input is well-formed JSON but violates a domain rule (HTTP 400)."""


class NotFoundError(PlannerError):
    """Referenced id does not exist, is not owned by the caller, or is archived (HTTP 404)."""
