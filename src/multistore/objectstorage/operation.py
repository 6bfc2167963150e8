"""Per-operation lifecycle of a transfer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from multistore.core import get_logger

logger = get_logger(__name__)


class TransferState(str, Enum):
    """States a transfer passes through. Terminal states are final."""

    IDLE = "idle"
    BUILDING_REQUEST = "building_request"
    SIGNED = "signed"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[TransferState, frozenset[TransferState]] = {
    TransferState.IDLE: frozenset({TransferState.BUILDING_REQUEST}),
    TransferState.BUILDING_REQUEST: frozenset(
        {TransferState.SIGNED, TransferState.FAILED}
    ),
    TransferState.SIGNED: frozenset({TransferState.IN_FLIGHT, TransferState.FAILED}),
    TransferState.IN_FLIGHT: frozenset(
        {TransferState.SUCCEEDED, TransferState.FAILED}
    ),
    TransferState.SUCCEEDED: frozenset(),
    TransferState.FAILED: frozenset(),
}


@dataclass
class TransferOperation:
    """Tracks one upload, download, list or delete through its states."""

    operation: str
    key: str
    state: TransferState = TransferState.IDLE
    error: Optional[str] = None
    history: list[TransferState] = field(default_factory=lambda: [TransferState.IDLE])
    listener: Optional[Callable[["TransferOperation"], None]] = field(
        default=None, repr=False, compare=False
    )

    @property
    def finished(self) -> bool:
        return not _TRANSITIONS[self.state]

    def advance(self, state: TransferState) -> None:
        """Move to ``state``.

        Raises:
            RuntimeError: If the transition is not allowed
        """
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal transfer transition {self.state.value} -> {state.value} "
                f"for {self.operation} '{self.key}'"
            )
        self.state = state
        self.history.append(state)
        logger.debug(
            "Transfer state changed",
            operation=self.operation,
            key=self.key,
            state=state.value,
        )
        if self.listener is not None:
            self.listener(self)

    def fail(self, error: str) -> None:
        """Mark the operation failed unless it already reached a terminal state."""
        self.error = error
        if not self.finished:
            self.advance(TransferState.FAILED)
