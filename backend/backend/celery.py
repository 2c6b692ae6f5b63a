import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.settings')

app = Celery('backend')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Task routing configuration – webhook reconciliation runs on dedicated queues
app.conf.task_routes = {
    # Room server (Prosody) events
    "meetings.tasks.process_room_event_async": {"queue": "meetings"},

    # Paddle billing events
    "billing.tasks.process_paddle_event_async": {"queue": "billing"},

    # Default queue
    '*': {'queue': 'default'},
}

# Default queue configuration
app.conf.task_default_queue = 'default'

app.conf.update(
    # Serialization settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone settings
    timezone='UTC',
    enable_utc=True,

    # Task execution settings
    task_track_started=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Webhook reconciliation is fire-and-forget; recovery relies on redelivery
    task_acks_late=False,
    task_ignore_result=True,

    # Monitoring settings
    worker_send_task_events=True,
    task_send_sent_event=True,

    # Queue settings
    task_queues={
        'default': {
            'exchange': 'default',
            'routing_key': 'default',
        },
        'meetings': {
            'exchange': 'meetings',
            'routing_key': 'meetings',
        },
        'billing': {
            'exchange': 'billing',
            'routing_key': 'billing',
        },
    },
)


# System health check task
@app.task(bind=True)
def health_check(self):
    """System health check task"""
    from django.db import connection

    try:
        # Check database connection
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")

        return {
            'status': 'healthy',
            'timestamp': app.now().isoformat(),
            'worker_id': self.request.id,
        }
    except Exception as e:
        return {
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': app.now().isoformat(),
        }
