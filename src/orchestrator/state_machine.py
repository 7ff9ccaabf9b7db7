"""Session state machine - tracks one actor's hold on the shared lock."""

from datetime import datetime
from enum import Enum

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()


class SessionState(str, Enum):
    """Per-actor lock states, as seen from the local replica."""
    IDLE = "idle"
    HELD = "held"


class Session(BaseModel):
    """One actor's held-lock interval, from acquire to release."""
    holder: str
    acquired_at: datetime | None = None  # commit timestamp of "Start run"
    base_commit: str | None = None  # branch tip the acquire was built on
    token_commit: str | None = None


# Valid state transitions. Contention and rejected publishes leave the
# state where it was, so there are no self-transitions.
TRANSITIONS: dict[SessionState, list[SessionState]] = {
    SessionState.IDLE: [SessionState.HELD],
    SessionState.HELD: [SessionState.IDLE],
}


class SessionStateMachine:
    """Tracks the local actor's session and validates transitions."""
    
    def __init__(self) -> None:
        self.state = SessionState.IDLE
        self.session: Session | None = None
    
    @property
    def held(self) -> bool:
        return self.state == SessionState.HELD
    
    def transition(
        self,
        new_state: SessionState,
        session: Session | None = None,
    ) -> SessionState:
        """Move to ``new_state``."""
        valid_next = TRANSITIONS.get(self.state, [])
        if new_state not in valid_next:
            raise ValueError(
                f"Invalid transition: {self.state} -> {new_state}. "
                f"Valid: {valid_next}"
            )
        
        old_state = self.state
        self.state = new_state
        self.session = session if new_state == SessionState.HELD else None
        
        logger.info(
            "Session transition",
            from_state=old_state,
            to_state=new_state,
            holder=session.holder if session else None,
        )
        return self.state
    
    def start(self, session: Session) -> SessionState:
        return self.transition(SessionState.HELD, session)
    
    def end(self) -> Session | None:
        """Close the current session and return it."""
        session = self.session
        self.transition(SessionState.IDLE)
        return session
    
    def observe(self, holder: str | None, identity: str) -> SessionState:
        """Re-derive the state from the lock token on the synchronized replica.
        
        Used on every coordination call so a restarted process never trusts
        what it believed before, only what the remote history says now.
        """
        observed = SessionState.HELD if holder == identity else SessionState.IDLE
        if observed != self.state:
            logger.info(
                "Session state re-derived",
                from_state=self.state,
                to_state=observed,
                holder=holder,
            )
            self.state = observed
            self.session = Session(holder=identity) if observed == SessionState.HELD else None
        return self.state
