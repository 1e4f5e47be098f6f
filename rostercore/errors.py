"""
Error taxonomy shared by stores, engines and the API layer.

Every error carries a machine-readable `kind` plus a message that is safe to
return to callers. Constraint failures are NOT errors: they come back inside
a FeasibilityReport.
"""


class RosterCoreError(Exception):
    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InputInvalid(RosterCoreError):
    """Malformed candidate or request."""
    kind = "input_invalid"


class InvalidTransition(InputInvalid):
    """Assignment or alternative status change not allowed from its current state."""


class Unauthorized(RosterCoreError):
    """Caller has no organization scope, or the entity belongs to another org."""
    kind = "unauthorized"


class NotFound(RosterCoreError):
    kind = "not_found"


class DataUnavailable(RosterCoreError):
    """A dependency timed out or returned nothing. Non-fatal for scoring."""
    kind = "data_unavailable"


class PersistenceFailure(RosterCoreError):
    """A write failed. The unit of work was rolled back and may be retried."""
    kind = "persistence_failure"
