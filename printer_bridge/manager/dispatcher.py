"""Routes print payloads to transport sessions and tracks their jobs."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from printer_bridge.const import JOB_HISTORY_LIMIT, LOGGER
from printer_bridge.exceptions import DispatchError, PrinterSendError
from printer_bridge.models.enums import (
    DispatchErrorKind,
    JobStatus,
    PrinterEventType,
    SendErrorKind,
)
from printer_bridge.models.job import PrintJob

from .events import EventBus, PrinterEvent

if TYPE_CHECKING:
    from .registry import ConnectionRegistry


class PrintDispatcher:
    """
    Submits payloads to the session of the target printer.

    Jobs for the same printer are sent one at a time in submission order.
    A failed job is terminal; there is no retry.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        events: EventBus | None = None,
        history_limit: int = JOB_HISTORY_LIMIT,
        logger: Any = LOGGER,
    ) -> None:
        """
        Initialize the dispatcher.

        Arguments:
            registry: The registry owning identities and sessions.
            events: Bus for job notifications, the registry's bus by default.
            history_limit: Number of finished jobs kept.
            logger: The logger to use.

        """
        self.registry = registry
        self.events = events if events is not None else registry.events
        self.history_limit = history_limit
        self.logger = logger
        self._jobs: dict[str, PrintJob] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def _emit(self, event_type: PrinterEventType, job: PrintJob | None = None, **data: Any) -> None:
        if job is not None:
            data = {**job.to_dict(), **data}
        self.events.emit(
            PrinterEvent(
                type=event_type,
                printer_id=job.printer_id if job else None,
                job_id=job.id if job else None,
                data=data,
            )
        )

    def _resolve(self, printer_id: str | None) -> str:
        target = printer_id if printer_id is not None else self.registry.active_id
        if target is None:
            raise DispatchError(DispatchErrorKind.NO_TARGET, "No printer selected")
        if target not in self.registry:
            raise DispatchError(DispatchErrorKind.NO_TARGET, f"Unknown printer {target}")
        if not self.registry.state(target).is_connected or self.registry.session(target) is None:
            raise DispatchError(
                DispatchErrorKind.NOT_CONNECTED, f"Printer {target} is not connected"
            )
        return target

    def _enqueue(self, data: bytes, printer_id: str | None) -> tuple[PrintJob, asyncio.Task[None]]:
        target = self._resolve(printer_id)
        job = PrintJob(printer_id=target, payload=bytes(data))
        self._jobs[job.id] = job
        self.logger.debug("Queued job %s (%d bytes) for %s", job.id, job.size, target)
        self._emit(PrinterEventType.JOB_ADDED, job)

        task = asyncio.create_task(self._run(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job, task

    async def send(self, data: bytes, printer_id: str | None = None) -> str:
        """
        Print ``data`` and wait until the job is finished.

        Arguments:
            data: The raw printer payload.
            printer_id: Target printer, the active printer when omitted.

        Returns:
            The job id; inspect the job for the outcome.

        Raises:
            DispatchError: NO_TARGET if there is no such printer, NOT_CONNECTED if
                it has no live session. No job is created in either case.

        """
        job, task = self._enqueue(data, printer_id)
        await asyncio.shield(task)
        return job.id

    def submit(self, data: bytes, printer_id: str | None = None) -> str:
        """
        Queue ``data`` for printing and return without waiting.

        Raises:
            DispatchError: As for ``send``.

        """
        job, _ = self._enqueue(data, printer_id)
        return job.id

    async def _run(self, job: PrintJob) -> None:
        lock = self._locks.setdefault(job.printer_id, asyncio.Lock())
        try:
            async with lock:
                await self._deliver(job)
        finally:
            self._drop_idle_lock(job.printer_id, lock)
        self._trim()

    def _drop_idle_lock(self, printer_id: str, lock: asyncio.Lock) -> None:
        # Every queued job is non-terminal, so no task holds or awaits the lock.
        if self._locks.get(printer_id) is not lock or lock.locked():
            return
        if any(
            job.printer_id == printer_id and not job.status.is_terminal
            for job in self._jobs.values()
        ):
            return
        del self._locks[printer_id]

    async def _deliver(self, job: PrintJob) -> None:
        driver = self.registry.session(job.printer_id)
        if driver is None or not driver.is_connected:
            self._advance(
                job, JobStatus.FAILED, "Printer not connected", SendErrorKind.NOT_CONNECTED
            )
            return

        self._advance(job, JobStatus.SENDING)
        try:
            await driver.send(job.payload)
        except PrinterSendError as err:
            self.logger.warning("Job %s failed: %s", job.id, err.status_text)
            self._advance(job, JobStatus.FAILED, err.message, err.kind)
        except Exception as err:
            self.logger.exception("Unexpected error sending job %s", job.id)
            self._advance(
                job,
                JobStatus.FAILED,
                str(err) or type(err).__name__,
                SendErrorKind.TRANSPORT_FAILURE,
            )
        else:
            self._advance(job, JobStatus.COMPLETED)
            await self.registry.touch(job.printer_id)
            self.logger.info("Job %s completed on %s", job.id, job.printer_id)

        if job.status is JobStatus.FAILED and not driver.is_connected:
            await self.registry.mark_lost(job.printer_id, job.error or "send failed")

    def _advance(
        self,
        job: PrintJob,
        status: JobStatus,
        error: str | None = None,
        error_kind: SendErrorKind | None = None,
    ) -> None:
        job.advance(status, error, error_kind)
        self._emit(PrinterEventType.JOB_UPDATED, job)

    def _trim(self) -> None:
        finished = [job for job in self._jobs.values() if job.status.is_terminal]
        for job in finished[: max(0, len(finished) - self.history_limit)]:
            del self._jobs[job.id]
            self._emit(PrinterEventType.JOB_REMOVED, job)

    async def join(self) -> None:
        """Wait for every queued job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def jobs(self) -> list[PrintJob]:
        """Return the known jobs, oldest first."""
        return list(self._jobs.values())

    def get_job(self, job_id: str) -> PrintJob | None:
        """Return a job by id."""
        return self._jobs.get(job_id)

    def remove_job(self, job_id: str) -> bool:
        """Forget a finished job. Returns False for unknown or unfinished jobs."""
        job = self._jobs.get(job_id)
        if job is None or not job.status.is_terminal:
            return False
        del self._jobs[job_id]
        self._emit(PrinterEventType.JOB_REMOVED, job)
        return True

    def clear_jobs(self) -> int:
        """Forget every finished job and return how many were dropped."""
        finished = [job_id for job_id, job in self._jobs.items() if job.status.is_terminal]
        for job_id in finished:
            del self._jobs[job_id]
        self._emit(PrinterEventType.JOBS_CLEARED, None, removed=len(finished))
        return len(finished)
