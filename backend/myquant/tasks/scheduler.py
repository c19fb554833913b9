# backend/myquant/tasks/scheduler.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from myquant.core.config import settings
from myquant.db.repositories import UserRepository
from myquant.logger import get_logger
from myquant.schemas.digest import BatchReport
from myquant.tasks.weekly_digest import DigestAssembler, DigestFailed

log = get_logger(__name__)

JOB_ID = "weekly_digest"

_scheduler: AsyncIOScheduler | None = None
_assembler: DigestAssembler | None = None
_user_repo: UserRepository | None = None
_last_report: Optional[BatchReport] = None
_last_run: Optional[datetime] = None


async def send_weekly_digests(assembler: DigestAssembler, user_repo: UserRepository) -> BatchReport:
    """One digest per user, one at a time; a failed user is logged and skipped"""
    users = await user_repo.list_active()
    report = BatchReport(total_users=len(users))
    log.info(f"[SCHEDULE] weekly digest run for {len(users)} users")

    for user in users:
        try:
            outcome = await assembler.run(user)
        except DigestFailed as e:
            log.error(f"[SCHEDULE] {e}")
            report.failed += 1
            report.failed_user_ids.append(str(user.id))
            continue
        if outcome.status == "sent":
            report.sent += 1
        else:
            report.skipped += 1

    log.info(f"[SCHEDULE] weekly digest done: sent={report.sent} skipped={report.skipped} failed={report.failed}")
    return report


async def job_weekly_digest() -> BatchReport:
    global _last_report, _last_run
    if _assembler is None or _user_repo is None:
        raise RuntimeError("scheduler started without a digest assembler")
    _last_run = datetime.now(timezone.utc)
    _last_report = await send_weekly_digests(_assembler, _user_repo)
    return _last_report


def start_scheduler(assembler: DigestAssembler, user_repo: UserRepository) -> AsyncIOScheduler | None:
    global _scheduler, _assembler, _user_repo
    _assembler = assembler
    _user_repo = user_repo

    if not settings.ENABLE_SCHEDULER:
        log.info("[SCHEDULE] disabled (ENABLE_SCHEDULER=false)")
        return None
    if _scheduler and _scheduler.running:
        return _scheduler

    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        job_weekly_digest,
        CronTrigger.from_crontab(settings.DIGEST_CRON, timezone="UTC"),
        id=JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=3600,
    )
    _scheduler.start()
    log.info(f"[SCHEDULE] weekly digest scheduled with cron '{settings.DIGEST_CRON}' (UTC)")
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        log.info("[SCHEDULE] stopped")
    _scheduler = None


def get_scheduler_status() -> Dict[str, Any]:
    if not _scheduler:
        return {"running": False, "jobs": [], "last_run": None, "last_report": None}

    jobs = []
    for job in _scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger),
        })
    return {
        "running": _scheduler.running,
        "jobs": jobs,
        "last_run": _last_run.isoformat() if _last_run else None,
        "last_report": _last_report.model_dump() if _last_report else None,
    }


async def trigger_weekly_digest() -> BatchReport:
    """Run the weekly batch now, outside the cron schedule"""
    log.info("[SCHEDULE] manual trigger of weekly digest batch")
    return await job_weekly_digest()
