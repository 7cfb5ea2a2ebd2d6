"""
Scheduler Service
Runs background maintenance jobs using APScheduler
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "account_reconciliation"

# Scheduler instance (exported for the health router)
scheduler: BackgroundScheduler = None


def reconciliation_job():
    """Job function finishing interrupted account deletions"""
    logger.info("Executing account reconciliation sweep...")
    try:
        from app.utils.account_cleanup import reconcile

        result = reconcile()
        logger.info(f"Reconciliation sweep finished: {result}")
        return result
    except Exception as e:
        logger.error(f"Error in reconciliation sweep: {str(e)}", exc_info=True)
        return {"error": str(e)}


def start_scheduler():
    """Start the background scheduler with the reconciliation job"""
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return

    interval = settings.ORPHAN_SWEEP_INTERVAL_MINUTES
    if interval <= 0:
        logger.info("Reconciliation sweep disabled, scheduler not started")
        return

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        reconciliation_job,
        trigger=IntervalTrigger(minutes=interval),
        id=RECONCILE_JOB_ID,
        name="Account reconciliation sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, reconciliation every {interval} minutes")


def stop_scheduler():
    """Stop the background scheduler"""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status():
    """Get current scheduler status"""
    if scheduler is None:
        return {"running": False}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs": jobs
    }
