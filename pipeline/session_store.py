"""In-memory session state, keyed by session id.

One store instance is created at startup and handed to the orchestrator and
the transport. It is safe to use from several threads: a structural lock
guards the id → entry mapping only, and each entry carries its own lock for
patches, so updates to one session never wait on another. No method performs
I/O while holding a lock.
"""
import logging
import threading
from dataclasses import dataclass, field

from models.session import Session
from pipeline.errors import SessionBusyError

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: Session
    lock: threading.Lock = field(default_factory=threading.Lock)


class SessionStore:
    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def create(self, session_id: str) -> Session:
        """Start a fresh session record.

        A finished session with the same id is replaced; a running one raises
        SessionBusyError.
        """
        session = Session(id=session_id)
        with self._lock:
            existing = self._entries.get(session_id)
            if existing is not None and not existing.session.is_terminal:
                raise SessionBusyError(f"Session {session_id} already has a running job")
            self._entries[session_id] = _Entry(session)
        logger.debug("Session %s created", session_id)
        return session

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            entry = self._entries.get(session_id)
        return entry.session if entry else None

    def update(self, session_id: str, **patch) -> Session | None:
        """Apply ``patch`` atomically and return the new snapshot.

        Returns None when the session no longer exists (e.g. after a
        disconnect). State-machine violations raise InvalidTransitionError.
        """
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            return None
        with entry.lock:
            entry.session = entry.session.apply(**patch)
            return entry.session

    def delete(self, session_id: str) -> bool:
        """Remove a session; returns whether it existed. Safe to call repeatedly."""
        with self._lock:
            removed = self._entries.pop(session_id, None)
        if removed is not None:
            logger.debug("Session %s removed", session_id)
        return removed is not None

    def list_sessions(self) -> list[Session]:
        with self._lock:
            entries = list(self._entries.values())
        return [e.session for e in entries]

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
