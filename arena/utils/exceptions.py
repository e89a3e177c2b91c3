"""
Custom exceptions for the competition engine with user-friendly error messages.

Every write-path validation failure is raised as one of these typed errors so
callers can map it to a response without inspecting message text.
"""

class CompetitionError(Exception):
    """Base exception for competition engine errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class NotFoundError(CompetitionError):
    """Raised when a referenced phase, team, player or registration is missing."""
    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            f"{entity} {identifier} not found",
            f"❌ {entity} not found!"
        )

class InvalidStateError(CompetitionError):
    """Raised when the target of a write is in the wrong state for it."""
    pass

class PhaseInactiveError(InvalidStateError):
    """Raised when a phase has the wrong type or is not in progress."""
    def __init__(self, phase_id: int, reason: str):
        self.phase_id = phase_id
        self.reason = reason
        super().__init__(
            f"Phase {phase_id} is not accepting this action: {reason}",
            f"❌ {reason}"
        )

class ForbiddenError(CompetitionError):
    """Raised when the caller may not perform the action."""
    pass

class SelfRatingForbiddenError(ForbiddenError):
    """Raised when a player tries to submit a peer rating for themselves."""
    def __init__(self, player_id: int):
        self.player_id = player_id
        super().__init__(
            f"Player {player_id} attempted to peer-rate themselves",
            "❌ You cannot rate yourself here. Use the self-assessment instead."
        )

class ConflictError(CompetitionError):
    """Raised when the request conflicts with existing data."""
    pass

class InvalidDateRangeError(ConflictError):
    """Raised when a start date falls after its end date."""
    def __init__(self, start_date, end_date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Start date {start_date} is after end date {end_date}",
            "❌ The start date must be on or before the end date."
        )

class ScoreValidationError(CompetitionError):
    """Raised when score validation fails."""
    def __init__(self, value, reason: str):
        self.value = value
        super().__init__(
            f"Invalid score {value!r}: {reason}",
            f"❌ {reason}"
        )

class StoreFailureError(CompetitionError):
    """Raised when the underlying store fails; the transaction has been rolled back."""
    def __init__(self, operation: str, details: str = None):
        self.operation = operation
        super().__init__(
            f"Store failure during {operation}: {details}",
            "❌ Database error occurred. Please try again later."
        )
