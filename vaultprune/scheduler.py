"""
APScheduler configuration and job scheduling for vaultprune.

Manages:
- Scheduled replication jobs (based on cron expressions)
- Manual job triggers
"""

import logging
from datetime import datetime, timedelta, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.executors.pool import ThreadPoolExecutor

from vaultprune import db
from vaultprune.models import BackupJob
from vaultprune.backup.executor import ReplicationError, execute_replication_job


logger = logging.getLogger(__name__)

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def _scheduled_id(job_id: int) -> str:
    return f"replicate_{job_id}"


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    jobstores = {
        'default': SQLAlchemyJobStore(url=app.config['SQLALCHEMY_DATABASE_URI'])
    }

    executors = {
        'default': ThreadPoolExecutor(max_workers=3)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone=app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    )

    return scheduler


def start_scheduler():
    """Start the APScheduler. Call after init_scheduler()."""
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if scheduler.running:
        logger.info(f"Scheduler already running (state={scheduler.state})")
        return

    scheduler.start()
    logger.info(f"APScheduler started (state={scheduler.state}, running={scheduler.running})")

    for job in scheduler.get_jobs():
        next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
        logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def sync_replication_jobs():
    """
    Synchronize backup jobs from database to scheduler.

    Call after app startup and after creating/updating/deleting jobs.
    Does nothing when the scheduler is not running in this process.
    """
    if scheduler is None:
        return

    # One-time manual triggers from earlier runs have already fired or missed their window
    for job in scheduler.get_jobs():
        if job.id.startswith('manual_'):
            try:
                scheduler.remove_job(job.id)
            except JobLookupError:
                pass

    scheduled_ids = {job.id for job in scheduler.get_jobs() if job.id.startswith('replicate_')}

    for backup_job in BackupJob.query.all():
        scheduled_id = _scheduled_id(backup_job.id)

        if backup_job.enabled and backup_job.schedule_cron:
            _schedule_job(backup_job)
            scheduled_ids.discard(scheduled_id)
        elif scheduled_id in scheduled_ids:
            _remove_scheduled_job(backup_job.id)
            scheduled_ids.discard(scheduled_id)

    # Scheduled entries whose job no longer exists
    for leftover_id in scheduled_ids:
        try:
            scheduler.remove_job(leftover_id)
            logger.info(f"Removed orphaned scheduled job: {leftover_id}")
        except JobLookupError:
            pass


def _schedule_job(backup_job: BackupJob):
    """Add or replace the cron entry of a job."""
    try:
        trigger = CronTrigger.from_crontab(backup_job.schedule_cron, timezone='UTC')
    except ValueError as e:
        logger.error(f"Invalid cron expression for job {backup_job.name}: {e}")
        return

    scheduler.add_job(
        func=_execute_replication_wrapper,
        args=[backup_job.id],
        trigger=trigger,
        id=_scheduled_id(backup_job.id),
        name=f"Replicate: {backup_job.name}",
        replace_existing=True
    )
    logger.info(f"Scheduled replication job: {backup_job.name} ({backup_job.schedule_cron})")


def _remove_scheduled_job(backup_job_id: int):
    try:
        scheduler.remove_job(_scheduled_id(backup_job_id))
        logger.info(f"Removed scheduled replication job ID: {backup_job_id}")
    except JobLookupError:
        pass


def _execute_replication_wrapper(job_id: int, allow_disabled: bool = False, dry_run=None):
    """
    Run a replication job in scheduler context.

    Pushes an app context from the stored Flask app so the database session
    is managed per run.
    """
    with flask_app.app_context():
        try:
            logger.info(f"Scheduler executing replication job ID: {job_id}")
            records = execute_replication_job(job_id, allow_disabled=allow_disabled, dry_run=dry_run)
            statuses = ', '.join(f"{r.destination_name}={r.status}" for r in records)
            logger.info(f"Replication job {job_id} finished: {statuses or 'no destinations'}")
        except (ValueError, ReplicationError) as e:
            logger.error(f"Scheduled replication job {job_id} failed: {e}")
        finally:
            db.session.remove()


def trigger_replication_now(job_id: int, dry_run=None):
    """
    Queue a replication job for immediate execution.

    Raises:
        RuntimeError: If the scheduler is not initialized
        ValueError: If job not found
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    backup_job = db.session.get(BackupJob, job_id)
    if not backup_job:
        raise ValueError(f"Backup job not found: {job_id}")

    # 1 second delay avoids racing the request that created the job
    now = datetime.now(timezone.utc)
    scheduler.add_job(
        func=_execute_replication_wrapper,
        args=[job_id, True, dry_run],
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=f"manual_{job_id}_{int(now.timestamp())}",
        name=f"Manual: {backup_job.name}",
        replace_existing=False
    )

    logger.info(f"Manually triggered replication job: {backup_job.name}")


def get_scheduled_jobs() -> list:
    """List scheduled jobs with their next run time."""
    if scheduler is None:
        return []

    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        }
        for job in scheduler.get_jobs()
    ]
