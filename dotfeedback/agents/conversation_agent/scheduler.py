"""
scheduler.py - Delayed assistant follow-up messages.

The turn processor does not sleep or spawn timers itself. It emits a
ScheduledMessage (payload + not-before time) and returns; the scheduler runs
the job in a background task once the not-before time has passed.

Delivery guarantees:
  - schedule() never blocks the calling request
  - handler failures are logged, never reported back to the request
  - jobs still pending at close() are cancelled and counted as dropped;
    there is no durable queue, so a process exit loses them
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Optional, Set

from dotfeedback.agents.session_agent.schemas import utcnow

logger = logging.getLogger(__name__)


class FollowUpKind(str, Enum):
    next_question = "next_question"  # conversational rephrasing of the new active question
    completion = "completion"        # thank-you after the last question


@dataclass(frozen=True)
class ScheduledMessage:
    kind: FollowUpKind
    session_id: str
    user_id: str
    user_name: str
    session_name: str
    not_before: datetime
    question_text: Optional[str] = None
    question_number: Optional[int] = None   # 1-based, for the prompt
    question_total: Optional[int] = None


FollowUpHandler = Callable[[ScheduledMessage], Awaitable[None]]


class FollowUpScheduler:
    def __init__(self, handler: Optional[FollowUpHandler] = None, delay_seconds: float = 1.5) -> None:
        self.handler = handler
        self.delay_seconds = delay_seconds
        self._tasks: Set[asyncio.Task] = set()

    def not_before(self) -> datetime:
        return utcnow() + timedelta(seconds=self.delay_seconds)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, job: ScheduledMessage) -> asyncio.Task:
        if self.handler is None:
            raise RuntimeError("FollowUpScheduler has no handler bound")
        task = asyncio.create_task(self._run(job), name=f"followup-{job.kind.value}-{job.session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(
            "Scheduled follow-up kind=%s session_id=%s user_id=%s not_before=%s",
            job.kind.value, job.session_id, job.user_id, job.not_before.isoformat(),
        )
        return task

    async def _run(self, job: ScheduledMessage) -> None:
        wait = (job.not_before - utcnow()).total_seconds()
        if wait > 0:
            await asyncio.sleep(wait)
        try:
            await self.handler(job)
        except Exception:
            logger.error(
                "Follow-up delivery failed kind=%s session_id=%s user_id=%s",
                job.kind.value, job.session_id, job.user_id,
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for every pending job, including jobs scheduled while draining."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> int:
        """Cancel pending jobs. Returns how many were dropped."""
        dropped = len(self._tasks)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if dropped:
            logger.warning("Dropped %d pending follow-up messages on shutdown", dropped)
        return dropped
