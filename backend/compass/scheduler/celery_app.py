from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init

from compass.core.config import settings
from compass.core.logging import setup_logging

app = Celery("compass")
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.CELERY_TIMEZONE
app.conf.enable_utc = True

app.conf.imports = ("compass.tasks.portfolio_roi",)
app.autodiscover_tasks(["compass"])

app.conf.beat_schedule = {
    "recompute-portfolio-roi": {
        "task": "compass.tasks.portfolio_roi.recompute_portfolio_roi",
        "schedule": crontab(
            hour=settings.ROI_SCHEDULE_HOUR,
            minute=settings.ROI_SCHEDULE_MINUTE,
        ),
        "kwargs": {"trigger": "scheduled"},
    },
}


@worker_process_init.connect
def init_worker(**kwargs):
    """Per worker process: logging and the Redis metrics stream."""
    from compass.core.metrics import metrics
    from compass.core.redis import get_redis

    setup_logging()
    metrics.set_redis(get_redis())
