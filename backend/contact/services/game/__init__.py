"""Game domain services: scoring, verification, timers and the session coordinator.

Routes and socket handlers talk to the module-level ``coordinator``; the
other modules hold the pure(ish) rules it applies, keeping transport
concerns separated from core game mechanics.
"""

from .coordinator import SessionCoordinator

coordinator = SessionCoordinator()
