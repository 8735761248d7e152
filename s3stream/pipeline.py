"""Background pipeline that turns queued buffers into ordered part uploads.

A single worker thread consumes a bounded queue and talks to the store, so
the store client is never used from two threads at once. Part numbers are
assigned when a buffer is queued, which keeps them gapless and in write order
no matter when the store acknowledges each part.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from enum import Enum

from s3stream._errors import PipelineClosedError, UploadAbortedError, add_suppressed
from s3stream.buffers import ChunkBuffer
from s3stream.checksum import ChecksumProvider, content_md5
from s3stream.logging import UploadLogger
from s3stream.session import CompletedPart, PendingPart, SessionState, UploadSession
from s3stream.store.protocol import ObjectStoreClient

QUEUE_DEPTH = 10


class _Command(Enum):
    FINALIZE = "finalize"
    ABORT = "abort"


@dataclass
class _ControlMessage:
    command: _Command
    handle: Future = field(default_factory=Future)


class UploadPipeline:
    """Uploads buffers as the parts of one multipart upload.

    ``enqueue`` hands a buffer over and returns a future for that part;
    ``finalize`` returns a future for the whole upload. The session is started
    by the worker when the first part arrives and is aborted on the store as
    soon as any part, the start or the completion fails.

    The caller must not modify a buffer until the future returned for it has
    resolved.
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        bucket: str,
        key: str,
        use_checksums: bool = True,
        checksum: ChecksumProvider = content_md5,
        queue_depth: int = QUEUE_DEPTH,
        logger: logging.Logger | None = None,
    ) -> None:
        if queue_depth < 1:
            raise ValueError("queue_depth must be positive")
        self.client = client
        self.session = UploadSession(bucket=bucket, key=key)
        self.use_checksums = use_checksums
        self._checksum = checksum
        self._queue: queue.Queue[PendingPart | _ControlMessage] = queue.Queue(
            maxsize=queue_depth
        )
        self._handles: list[Future[CompletedPart]] = []
        self._completion: Future[str | None] = Future()
        self._lock = threading.Lock()
        self._accepting = True
        self._error: BaseException | None = None
        self._worker: threading.Thread | None = None
        self._log = UploadLogger(bucket, key, logger or logging.getLogger(__name__))

    @property
    def parts_enqueued(self) -> int:
        """Number of parts handed to this pipeline so far."""
        return len(self._handles)

    def enqueue(self, buffer: ChunkBuffer) -> Future[CompletedPart]:
        """Queue the readable region of ``buffer`` as the next part.

        Blocks while the queue is full.
        """
        with self._lock:
            if not self._accepting or self.session.state.is_terminal:
                raise PipelineClosedError(
                    f"Upload to {self.session.target} no longer accepts parts"
                )
            pending = PendingPart(buffer, self.session.allocate_part_number())
            self._handles.append(pending.handle)
            self._ensure_worker()

        self._queue.put(pending)
        self._fail_stranded()
        return pending.handle

    def finalize(self) -> Future[str | None]:
        """Stop accepting parts and complete the upload once all parts are in.

        The returned future resolves to the object location, or to ``None`` if
        no part was ever queued and there was nothing to complete.
        """
        with self._lock:
            if not self._accepting:
                return self._completion
            self._accepting = False
            if not self._handles:
                self._completion.set_result(None)
                return self._completion
            if self.session.state is SessionState.ACTIVE:
                self.session.transition(SessionState.FINALIZING)

        self._queue.put(_ControlMessage(_Command.FINALIZE, self._completion))
        self._fail_stranded()
        return self._completion

    def abort(self) -> Future[None]:
        """Abandon the upload; queued parts fail and nothing becomes visible."""
        with self._lock:
            state = self.session.state
            if state is SessionState.COMPLETED:
                raise PipelineClosedError(
                    f"Upload to {self.session.target} has already completed"
                )
            done: Future[None] = Future()
            if state is SessionState.ABORTED:
                done.set_result(None)
                return done
            self._accepting = False
            if self._worker is None:
                error = UploadAbortedError(f"Upload to {self.session.target} was aborted")
                self._error = error
                self.session.transition(SessionState.ABORTED)
                if not self._completion.done():
                    self._completion.set_exception(error)
                done.set_result(None)
                return done

        message = _ControlMessage(_Command.ABORT)
        self._queue.put(message)
        self._fail_stranded()
        return message.handle

    def join(self, timeout: float | None = None) -> None:
        """Wait for the worker thread to exit, if one was started."""
        if self._worker is not None:
            self._worker.join(timeout)

    def _ensure_worker(self) -> None:
        if self._worker is None:
            self._worker = threading.Thread(
                target=self._run,
                name=f"s3stream uploader {self.session.target}",
                daemon=True,
            )
            self._worker.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if isinstance(item, PendingPart):
                if not self._upload(item):
                    return
            elif item.command is _Command.FINALIZE:
                self._complete()
                return
            else:
                error = UploadAbortedError(f"Upload to {self.session.target} was aborted")
                abort_error = self._abort(error)
                if abort_error is not None:
                    item.handle.set_exception(abort_error)
                else:
                    item.handle.set_result(None)
                return

    def _start_session(self) -> None:
        upload_id = self.client.start_session(self.session.bucket, self.session.key)
        with self._lock:
            self.session.upload_id = upload_id
            self.session.transition(SessionState.ACTIVE)
        self._log.session_start(upload_id)

    def _upload(self, pending: PendingPart) -> bool:
        start = time.monotonic()
        size = pending.size
        try:
            if self.session.state is SessionState.UNSTARTED:
                self._start_session()
            data = pending.buffer.readable()
            checksum = self._checksum(data) if self.use_checksums else None
            etag = self.client.upload_part(
                self.session.bucket,
                self.session.key,
                self.session.upload_id,
                pending.part_number,
                data,
                checksum,
            )
        except Exception as e:
            self._log.part_fail(pending.part_number, size, time.monotonic() - start, e)
            self._abort(e)
            pending.handle.set_exception(e)
            return False

        part = CompletedPart(pending.part_number, etag)
        self.session.record_part(part)
        self._log.part_complete(pending.part_number, size, time.monotonic() - start)
        pending.handle.set_result(part)
        return True

    def _complete(self) -> None:
        with self._lock:
            if self.session.state is SessionState.ACTIVE:
                self.session.transition(SessionState.FINALIZING)

        # every queued part is acknowledged before the store may assemble them
        wait(self._handles)
        parts = self.session.ordered_parts()
        try:
            location = self.client.complete_session(
                self.session.bucket, self.session.key, self.session.upload_id, parts
            )
        except Exception as e:
            self._abort(e)
            return

        with self._lock:
            self.session.location = location
            self.session.transition(SessionState.COMPLETED)
            self._drain()
        self._log.session_complete(len(parts), location)
        self._completion.set_result(location)

    def _abort(self, error: BaseException) -> BaseException | None:
        """Abort the remote session and fail everything still outstanding.

        Returns the error raised by the store's abort call, if any; it is also
        attached to ``error`` as a suppressed error.
        """
        abort_error: BaseException | None = None
        if self.session.upload_id is not None:
            try:
                self.client.abort_session(
                    self.session.bucket, self.session.key, self.session.upload_id
                )
            except Exception as e:
                abort_error = e
                self._log.abort_failed(e)
                add_suppressed(error, e)
        self._log.session_abort(error)

        with self._lock:
            self._accepting = False
            self._error = error
            self.session.transition(SessionState.ABORTED)
            self._drain()
        if not self._completion.done():
            self._completion.set_exception(error)
        return abort_error

    def _fail_stranded(self) -> None:
        """Resolve work queued after the worker stopped consuming."""
        with self._lock:
            if self.session.state.is_terminal:
                self._drain()

    def _drain(self) -> None:
        # caller holds self._lock
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, PendingPart):
                error = UploadAbortedError(
                    f"Part {item.part_number} of {self.session.target} was not "
                    "uploaded because the upload was aborted"
                )
                error.__cause__ = self._error
                item.handle.set_exception(error)
            elif item.command is _Command.ABORT:
                if self.session.state is SessionState.ABORTED:
                    item.handle.set_result(None)
                else:
                    item.handle.set_exception(
                        PipelineClosedError(
                            f"Upload to {self.session.target} has already completed"
                        )
                    )
