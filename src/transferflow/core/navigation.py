"""
TransferFlow navigation guard.

Pure predicates deciding whether a protected screen may be entered. The
guard never redirects; callers reset and send the user to BEGIN on denial.
"""

from __future__ import annotations

from typing import Protocol

from transferflow.core.errors import MissingPrecondition, OutOfSequence
from transferflow.core.logging import get_logger
from transferflow.core.models import Screen, Step, TransferState

logger = get_logger(__name__)

# Minimum step required to enter a protected screen
SCREEN_REQUIREMENTS: dict[Screen, Step] = {
    Screen.CREATE: Step.SERVICES,
    Screen.AUTHENTICATE_IMPORT_CONTINUATION: Step.AUTHENTICATE_EXPORT,
    Screen.INITIATE: Step.WORKER_RESERVED,
}

# Upstream fields a screen cannot work without
SCREEN_PRECONDITIONS: dict[Screen, tuple[str, ...]] = {
    Screen.SERVICES: ("data_type",),
    Screen.CREATE: ("data_type",),
    Screen.INITIATE: ("transfer_id",),
}


class Router(Protocol):
    """Collaborator able to direct the user somewhere."""

    def navigate(self, screen: Screen) -> None:
        """Show a named screen."""

    def redirect_external(self, url: str) -> None:
        """Send the user to an external authorization URL."""


def can_enter(screen: Screen, state: TransferState) -> bool:
    """Whether ``screen`` may be entered given ``state``.

    Screens without a requirement are unconditionally enterable.
    """
    required = SCREEN_REQUIREMENTS.get(screen)
    if required is None:
        return True
    return state.step.at_least(required)


def missing_fields(screen: Screen, state: TransferState) -> list[str]:
    """Names of upstream fields ``screen`` needs that are absent."""
    return [
        name
        for name in SCREEN_PRECONDITIONS.get(screen, ())
        if getattr(state, name) is None
    ]


def check_entry(screen: Screen, state: TransferState) -> None:
    """Raise the error a denied entry corresponds to, if any."""
    if not can_enter(screen, state):
        raise OutOfSequence(f"Cannot enter {screen.value} at step {state.step.name}")

    absent = missing_fields(screen, state)
    if absent:
        raise MissingPrecondition(
            f"Cannot enter {screen.value} without {', '.join(absent)}"
        )


class LoggingRouter:
    """Router that only records where the user was sent."""

    def __init__(self) -> None:
        self.history: list[Screen | str] = []

    def navigate(self, screen: Screen) -> None:
        self.history.append(screen)
        logger.info("Navigate", screen=screen.value)

    def redirect_external(self, url: str) -> None:
        self.history.append(url)
        logger.info("Redirect to external authorization", url=url)

    @property
    def last(self) -> Screen | str | None:
        return self.history[-1] if self.history else None
