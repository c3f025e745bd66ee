"""Follow-up scheduler: delayed delivery, failure isolation, shutdown."""
import asyncio
import logging

import pytest

from dotfeedback.agents.conversation_agent.scheduler import (
    FollowUpKind,
    FollowUpScheduler,
    ScheduledMessage,
)


def _job(scheduler: FollowUpScheduler, kind: FollowUpKind = FollowUpKind.completion) -> ScheduledMessage:
    return ScheduledMessage(
        kind=kind,
        session_id="S1",
        user_id="u1",
        user_name="Priya",
        session_name="Sprint Retro",
        not_before=scheduler.not_before(),
    )


@pytest.mark.asyncio
async def test_job_runs_after_schedule_returns() -> None:
    delivered = []

    async def handler(job: ScheduledMessage) -> None:
        delivered.append(job.kind)

    scheduler = FollowUpScheduler(handler, delay_seconds=0.01)
    scheduler.schedule(_job(scheduler))

    # Nothing is delivered synchronously
    assert delivered == []
    assert scheduler.pending == 1

    await scheduler.drain()
    assert delivered == [FollowUpKind.completion]
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_handler_failure_is_logged_not_raised(caplog) -> None:
    async def handler(job: ScheduledMessage) -> None:
        raise RuntimeError("provider down")

    scheduler = FollowUpScheduler(handler, delay_seconds=0)
    with caplog.at_level(logging.ERROR):
        scheduler.schedule(_job(scheduler))
        await scheduler.drain()

    assert "Follow-up delivery failed" in caplog.text


@pytest.mark.asyncio
async def test_close_cancels_pending_jobs() -> None:
    delivered = []

    async def handler(job: ScheduledMessage) -> None:
        delivered.append(job)

    scheduler = FollowUpScheduler(handler, delay_seconds=30)
    scheduler.schedule(_job(scheduler))
    scheduler.schedule(_job(scheduler, FollowUpKind.next_question))
    await asyncio.sleep(0)

    dropped = await scheduler.close()

    assert dropped == 2
    assert delivered == []
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_schedule_requires_handler() -> None:
    scheduler = FollowUpScheduler()
    with pytest.raises(RuntimeError):
        scheduler.schedule(_job(scheduler))
