"""
Celery application factory.
"""

from celery import Celery

celery_app = Celery("policy_intake")
celery_app.config_from_object("celeryconfig")

# Auto-discover tasks in these modules
celery_app.autodiscover_tasks([
    "policy_intake.tasks.processing_tasks",
])
