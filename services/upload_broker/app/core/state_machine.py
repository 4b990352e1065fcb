"""Upload session state machine for lifecycle management."""

from services.upload_broker.app.core.errors import ConflictError
from services.upload_broker.app.core.models import SessionKind, SessionState


class InvalidTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        current_state: SessionState,
        target_state: SessionState,
        message: str | None = None,
    ):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            message
            or f"Invalid transition from {current_state.value} to {target_state.value}",
            details={"current_state": current_state.value, "target_state": target_state.value},
        )


class StateMachine:
    """Upload session lifecycle state machine.

    Valid transitions:
    - pending -> completed (simple upload confirmed)
    - multipart_initiated -> completed (multipart assembled)
    - multipart_initiated -> aborted (multipart released)

    Deletion removes the record rather than transitioning it and is only
    allowed from DELETABLE_STATES.
    """

    VALID_TRANSITIONS: set[tuple[SessionState, SessionState]] = {
        (SessionState.PENDING, SessionState.COMPLETED),
        (SessionState.MULTIPART_INITIATED, SessionState.COMPLETED),
        (SessionState.MULTIPART_INITIATED, SessionState.ABORTED),
    }

    INITIAL_STATES: dict[SessionKind, SessionState] = {
        SessionKind.SIMPLE: SessionState.PENDING,
        SessionKind.MULTIPART: SessionState.MULTIPART_INITIATED,
    }

    DELETABLE_STATES: frozenset[SessionState] = frozenset(
        {SessionState.PENDING, SessionState.COMPLETED, SessionState.ABORTED}
    )

    @classmethod
    def initial_state(cls, kind: SessionKind) -> SessionState:
        """Get the state a new session of ``kind`` starts in."""
        return cls.INITIAL_STATES[kind]

    @classmethod
    def is_valid_transition(
        cls,
        current_state: SessionState,
        target_state: SessionState,
    ) -> bool:
        """Check if a state transition is valid.

        Args:
            current_state: Current session state
            target_state: Desired new state

        Returns:
            True if transition is valid, False otherwise
        """
        return (current_state, target_state) in cls.VALID_TRANSITIONS

    @classmethod
    def validate_transition(
        cls,
        current_state: SessionState,
        target_state: SessionState,
    ) -> None:
        """Validate a state transition, raising an error if invalid.

        Raises:
            InvalidTransitionError: If transition is not valid
        """
        if not cls.is_valid_transition(current_state, target_state):
            raise InvalidTransitionError(current_state, target_state)

    @classmethod
    def get_valid_next_states(
        cls,
        current_state: SessionState,
    ) -> list[SessionState]:
        """Get list of valid next states from current state."""
        return [
            target
            for (source, target) in cls.VALID_TRANSITIONS
            if source == current_state
        ]

    @classmethod
    def is_terminal_state(cls, state: SessionState) -> bool:
        """Check if a state is terminal (no valid transitions out)."""
        return state in (SessionState.COMPLETED, SessionState.ABORTED)

    @classmethod
    def can_delete(cls, state: SessionState) -> bool:
        """Check if a session in this state may be deleted."""
        return state in cls.DELETABLE_STATES
