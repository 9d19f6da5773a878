"""Celery application for the campaign email worker."""

from celery import Celery
from celery.schedules import crontab

from engagement_service.config import CampaignConfig, get_settings
from engagement_service.logging_config import configure_logging

configure_logging()

settings = get_settings()

# Create Celery app
app = Celery(
    "email_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "email_worker.tasks.abandoned_cart",
        "email_worker.tasks.frequent_viewer",
        "email_worker.tasks.purchase_confirmation",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.celery_timezone,
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="email",
    task_routes={
        "email_worker.tasks.*": {"queue": "email"},
    },
)


def build_beat_schedule(config: CampaignConfig) -> dict[str, dict]:
    """One daily trigger per campaign at its configured time of day."""
    triggers = {
        "abandoned-cart-campaign": (
            "email_worker.tasks.abandoned_cart.run_abandoned_cart_campaign",
            config.abandoned_cart_time,
        ),
        "frequent-viewer-campaign": (
            "email_worker.tasks.frequent_viewer.run_frequent_viewer_campaign",
            config.frequent_viewer_time,
        ),
        "purchase-confirmation-campaign": (
            "email_worker.tasks.purchase_confirmation.run_purchase_confirmation_campaign",
            config.purchase_confirm_time,
        ),
    }
    return {
        name: {
            "task": task,
            "schedule": crontab(hour=at.hour, minute=at.minute),
        }
        for name, (task, at) in triggers.items()
    }


app.conf.beat_schedule = build_beat_schedule(settings.campaign_config())


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "email"])


def run_beat() -> None:
    """Run the Celery beat scheduler."""
    app.start(["beat", "--loglevel=info"])


if __name__ == "__main__":
    run()
