"""Asynchronous command dispatcher.

Callers submit commands without waiting; a fixed pool of worker tasks pulls
them from an ordered queue, runs them against the transport, and invokes
exactly one completion handler per command on the worker.

Guarantees:
- submit() never blocks and only fails with QueueClosed
- Every accepted command gets exactly one of on_success/on_failure, once
- With one worker, commands start in submission order
- No automatic retry; a failed command reaches on_failure and that's it
- close() rejects new submissions, drains accepted ones, is idempotent
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .callbacks import Callback, invoke_callback
from .errors import FailureKind, QueueClosed, TransportFailure
from .protocol.commands import Command, CommandResult
from .transport.base import Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Job:
    """A submitted command and its completion handlers."""

    command: Command
    on_success: Callback | None
    on_failure: Callback | None


class CommandDispatcher:
    """Runs submitted commands on a bounded pool of worker tasks.

    Usage:
        dispatcher = CommandDispatcher(transport, worker_count=2)
        dispatcher.submit(Command.update_status("hi"), on_success=print, on_failure=print)
        ...
        await dispatcher.close()  # Drains everything already submitted
    """

    def __init__(self, transport: Transport, worker_count: int = 1) -> None:
        """Initialize the dispatcher.

        Args:
            transport: Transport used to execute commands
            worker_count: Number of worker tasks (>= 1)
        """
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self._transport = transport
        self._worker_count = worker_count
        # None entries are shutdown sentinels, one per worker
        self._queue: asyncio.Queue[_Job | None] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False
        self._drain_task: asyncio.Future[None] | None = None
        self._pending = 0

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    @property
    def pending(self) -> int:
        """Commands accepted but not yet picked up by a worker."""
        return self._pending

    def start(self) -> None:
        """Start the worker tasks. Called lazily by submit().

        Must be called with a running event loop.
        """
        if self._workers or self._closed:
            return
        for index in range(self._worker_count):
            task = asyncio.get_running_loop().create_task(
                self._worker(index), name=f"starling-dispatch-{index}"
            )
            self._workers.append(task)
        logger.debug(f"Dispatcher started with {self._worker_count} worker(s)")

    def submit(
        self,
        command: Command,
        on_success: Callback | None = None,
        on_failure: Callback | None = None,
    ) -> None:
        """Queue a command for execution. Never blocks.

        Args:
            command: The command to run
            on_success: Called with the result payload
            on_failure: Called with the TransportFailure

        Raises:
            QueueClosed: If the dispatcher has been closed
        """
        if self._closed:
            raise QueueClosed(f"Dispatcher is closed; rejected {command.cmd} ({command.id})")
        self.start()
        self._queue.put_nowait(_Job(command, on_success, on_failure))
        self._pending += 1
        logger.debug(f"Queued {command.cmd} ({command.id})")

    async def close(self) -> None:
        """Reject new submissions and wait for accepted commands to complete.

        Safe to call more than once, including concurrently. Called from a
        completion handler, it only starts the drain: the calling worker
        cannot finish until the handler returns.
        """
        if self._drain_task is None:
            self._closed = True
            self._drain_task = asyncio.ensure_future(self._drain())
        if self.in_worker():
            return
        await asyncio.shield(self._drain_task)

    def in_worker(self) -> bool:
        """True when called from one of this dispatcher's worker tasks."""
        return asyncio.current_task() in self._workers

    async def _drain(self) -> None:
        # Sentinels queue behind every accepted job, so workers finish the backlog first
        for _ in self._workers:
            self._queue.put_nowait(None)
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        logger.debug("Dispatcher closed")

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return
                self._pending -= 1
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: _Job) -> None:
        command = job.command
        logger.debug(f"Starting {command.cmd} ({command.id})")
        try:
            result = await self._transport.invoke(command)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Transport raised for {command.cmd} ({command.id})")
            result = CommandResult.failed(
                TransportFailure(f"Unexpected transport error: {e}", kind=FailureKind.UNEXPECTED)
            )

        if result.ok:
            callback, argument = job.on_success, result.payload
        else:
            callback, argument = job.on_failure, result.failure
            logger.info(f"{command.cmd} ({command.id}) failed: {result.failure!r}")

        if callback is None:
            if not result.ok:
                logger.warning(f"{command.cmd} ({command.id}) failed with no failure handler")
            return

        try:
            await invoke_callback(callback, argument)
        except Exception:
            logger.exception(f"Completion handler for {command.cmd} ({command.id}) raised")
