"""Upload session state and the work items that flow through the pipeline."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum

from s3stream._errors import InvalidStateTransition
from s3stream.buffers import ChunkBuffer


class SessionState(Enum):
    UNSTARTED = "unstarted"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.UNSTARTED: frozenset({SessionState.ACTIVE, SessionState.ABORTED}),
    SessionState.ACTIVE: frozenset({SessionState.FINALIZING, SessionState.ABORTED}),
    SessionState.FINALIZING: frozenset(
        {SessionState.COMPLETED, SessionState.ABORTED}
    ),
    SessionState.COMPLETED: frozenset(),
    SessionState.ABORTED: frozenset(),
}


@dataclass(frozen=True)
class CompletedPart:
    """A part acknowledged by the store."""

    part_number: int
    etag: str


@dataclass
class PendingPart:
    """A buffer queued for upload together with its part number and handle."""

    buffer: ChunkBuffer
    part_number: int
    handle: Future[CompletedPart] = field(default_factory=Future)

    @property
    def size(self) -> int:
        return self.buffer.remaining()


@dataclass
class UploadSession:
    """One remote multipart upload.

    Attributes:
        bucket: Target bucket.
        key: Target key.
        upload_id: Identifier assigned by the store once the session is started.
        state: Lifecycle state; see ``transition``.
        next_part_number: Number the next queued part will receive.
        parts: Acknowledged parts keyed by part number.
        location: Where the object lives once the session completed.
    """

    bucket: str
    key: str
    upload_id: str | None = None
    state: SessionState = SessionState.UNSTARTED
    next_part_number: int = 1
    parts: dict[int, CompletedPart] = field(default_factory=dict)
    location: str | None = None

    @property
    def target(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def transition(self, target: SessionState) -> None:
        """Move to ``target``, rejecting edges the lifecycle does not allow."""
        if target not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(self.state, target)
        self.state = target

    def allocate_part_number(self) -> int:
        number = self.next_part_number
        self.next_part_number += 1
        return number

    def record_part(self, part: CompletedPart) -> None:
        self.parts[part.part_number] = part

    def ordered_parts(self) -> list[CompletedPart]:
        """Acknowledged parts sorted by part number, as complete-session expects."""
        return [self.parts[number] for number in sorted(self.parts)]
