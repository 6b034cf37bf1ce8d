"""
Celery configuration for queued policy batches.

Loaded by `celery_app.config_from_object("celeryconfig")` in policy_intake/tasks/__init__.py.
Broker and result-backend URLs come from the application settings
(CELERY_BROKER_URL / CELERY_RESULT_BACKEND, defaulting to local Redis).
"""

from policy_intake.core.config import settings

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = settings.CELERY_BROKER_URL
result_backend = settings.CELERY_RESULT_BACKEND

# ═══════════════════════════════════════════════════════════
#  Serialization: JSON only
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

# ═══════════════════════════════════════════════════════════
#  Timezone
# ═══════════════════════════════════════════════════════════

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Acknowledge tasks AFTER they complete (crash-safe: prevents lost tasks)
task_acks_late = True
task_reject_on_worker_lost = True

# Only prefetch 1 task at a time per worker process
# Prevents one slow pipeline from blocking other tasks
worker_prefetch_multiplier = 1

# A batch waits on one extraction call (EXTRACTION_TIMEOUT_SECONDS = 10 min)
task_soft_time_limit = 900    # 15 min: raises SoftTimeLimitExceeded
task_time_limit = 960         # 16 min: hard kill

# ═══════════════════════════════════════════════════════════
#  Result expiry: 24h
# ═══════════════════════════════════════════════════════════

result_expires = 86400

# ═══════════════════════════════════════════════════════════
#  Worker Settings
# ═══════════════════════════════════════════════════════════

# Restart worker after N tasks
worker_max_tasks_per_child = 50

# Disable events by default (reduces Redis load)
# Enable with: celery -A policy_intake.tasks worker -E
worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task routes
# ═══════════════════════════════════════════════════════════
# Run a dedicated worker for batches:
#   celery -A policy_intake.tasks worker -Q pipeline

task_routes = {
    "policy_intake.tasks.processing_tasks.*": {"queue": "pipeline"},
}

task_default_queue = "default"
