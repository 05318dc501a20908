from typing import Any


class RelationshipError(Exception):
    code = "RELATIONSHIP_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self):
        return f"[{self.code}] {self.message}"


class InvalidArgument(RelationshipError):
    code = "INVALID_ARGUMENT"


class Forbidden(RelationshipError):
    code = "FORBIDDEN"


class StateConflict(RelationshipError):
    code = "STATE_CONFLICT"


class AlreadyInProgress(RelationshipError):
    code = "ALREADY_IN_PROGRESS"


class StoreUnavailable(RelationshipError):
    code = "STORE_UNAVAILABLE"


class StoreError(Exception):
    """Raised by store and guard adapters when their backend fails."""
