import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'app.settings')

app = Celery('pos_ledger')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django app configs.
app.autodiscover_tasks()

app.conf.update(
    task_track_started=True,
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],
    timezone='UTC',
    enable_utc=True,

    # Task routing
    task_routes={
        'sales.tasks.*': {'queue': 'sales'},
    },

    # Periodic tasks
    beat_schedule={
        'verify-ledger-integrity': {
            'task': 'sales.tasks.verify_ledger_integrity',
            'schedule': float(os.getenv('LEDGER_INTEGRITY_CHECK_INTERVAL', '86400')),  # Daily by default
        },
    },
)
