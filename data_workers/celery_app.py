from celery import Celery
from celery.schedules import crontab
from main_configs import CELERY_OPTIMIZE_CRON, CELERY_REDIS_URL


def cron_from_expr(expr: str):
    """
    Convert standard 5-field cron string into celery crontab.
    Example: "0 2 * * *"
    """
    fields = expr.split()
    if len(fields) != 5:
        raise ValueError(f"Expected a 5-field cron expression, got: {expr!r}")
    minute, hour, day, month, weekday = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day,
        month_of_year=month,
        day_of_week=weekday,
    )

OPTIMIZE_CRON = cron_from_expr(CELERY_OPTIMIZE_CRON)

# ---------------------------------------------------------
# Celery Worker Instance
# ---------------------------------------------------------
worker = Celery(
    "hcp_nba_worker",
    broker=CELERY_REDIS_URL,
    backend=CELERY_REDIS_URL,
    include=["data_workers.tasks"],
)

# ---------------------------------------------------------
# Core Configuration
# ---------------------------------------------------------
worker.conf.update(
    timezone="UTC",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
)

# ---------------------------------------------------------
# Beat Schedule
# ---------------------------------------------------------
worker.conf.beat_schedule = {
    "optimize-recommendations-nightly": {
        "task": "nba.optimize_recommendations",
        "schedule": OPTIMIZE_CRON,
    },
}
