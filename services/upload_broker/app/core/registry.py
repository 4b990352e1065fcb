"""Session registry and its backing stores."""

import copy
from abc import ABC, abstractmethod

from services.upload_broker.app.core.errors import ConflictError, NotFoundError
from services.upload_broker.app.core.models import SessionState, UploadSession


class SessionStore(ABC):
    """Key-value storage for upload sessions.

    Implementations must tolerate concurrent access to independent keys.
    Writes to the same key are last-writer-wins; there is no
    compare-and-swap.
    """

    @abstractmethod
    async def get(self, session_id: str) -> UploadSession | None:
        pass

    @abstractmethod
    async def put(self, session: UploadSession) -> None:
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns False if it was not present."""
        pass

    @abstractmethod
    async def list(self) -> list[UploadSession]:
        pass


class InMemorySessionStore(SessionStore):
    """Process-local store. Contents are lost on restart.

    Sessions are copied on the way in and out so callers never hold a
    reference to the stored record.
    """

    def __init__(self):
        self._sessions: dict[str, UploadSession] = {}

    async def get(self, session_id: str) -> UploadSession | None:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def put(self, session: UploadSession) -> None:
        self._sessions[session.session_id] = copy.deepcopy(session)

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def list(self) -> list[UploadSession]:
        return [copy.deepcopy(session) for session in self._sessions.values()]

    def __len__(self) -> int:
        return len(self._sessions)


class SessionRegistry:
    """Registry of upload sessions keyed by session id."""

    def __init__(self, store: SessionStore):
        """Initialize registry with a backing store."""
        self.store = store

    async def add(self, session: UploadSession) -> None:
        """Register a new session.

        Raises:
            ConflictError: If the session id is already registered
        """
        if await self.store.get(session.session_id) is not None:
            raise ConflictError(
                "Session id already registered",
                details={"session_id": session.session_id},
            )
        await self.store.put(session)

    async def get(self, session_id: str) -> UploadSession:
        """Get a session by id.

        Raises:
            NotFoundError: If no session has this id
        """
        session = await self.store.get(session_id)
        if session is None:
            raise NotFoundError(session_id)
        return session

    async def save(self, session: UploadSession) -> None:
        """Persist changes to an existing session.

        Raises:
            NotFoundError: If the session was removed in the meantime
        """
        if await self.store.get(session.session_id) is None:
            raise NotFoundError(session.session_id)
        await self.store.put(session)

    async def remove(self, session_id: str) -> None:
        """Remove a session.

        Raises:
            NotFoundError: If no session has this id
        """
        if not await self.store.delete(session_id):
            raise NotFoundError(session_id)

    async def list(
        self,
        owner_id: str | None = None,
        state: SessionState | None = None,
    ) -> list[UploadSession]:
        """List sessions, optionally filtered by owner and state.

        Results are ordered by creation time.
        """
        sessions = await self.store.list()
        if owner_id:
            sessions = [s for s in sessions if s.owner_id == owner_id]
        if state:
            sessions = [s for s in sessions if s.state == state]
        return sorted(sessions, key=lambda s: s.created_at)
