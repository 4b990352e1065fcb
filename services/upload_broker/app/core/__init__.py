"""Core business logic for the Upload Broker."""

from services.upload_broker.app.core.models import (
    CompletedPart,
    SessionKind,
    SessionState,
    UploadSession,
)
from services.upload_broker.app.core.orchestrator import UploadOrchestrator
from services.upload_broker.app.core.part_sizing import PartPlan, plan
from services.upload_broker.app.core.registry import (
    InMemorySessionStore,
    SessionRegistry,
    SessionStore,
)
from services.upload_broker.app.core.state_machine import (
    InvalidTransitionError,
    StateMachine,
)

__all__ = [
    "CompletedPart",
    "InMemorySessionStore",
    "InvalidTransitionError",
    "PartPlan",
    "SessionKind",
    "SessionRegistry",
    "SessionState",
    "SessionStore",
    "StateMachine",
    "UploadOrchestrator",
    "UploadSession",
    "plan",
]
