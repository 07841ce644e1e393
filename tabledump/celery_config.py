#!/usr/bin/env python3
"""
Celery configuration for background table dumps
"""

import os
from celery import Celery


class CeleryConfig:
    # Broker settings
    broker_url = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
    result_backend = os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')

    # Task settings
    task_serializer = 'json'
    accept_content = ['json']
    result_serializer = 'json'
    enable_utc = True

    task_routes = {
        'tabledump.tasks.*': {'queue': 'dump_jobs'},
    }

    # A dump already runs its own worker threads; take one job at a time
    worker_prefetch_multiplier = 1
    task_acks_late = True
    worker_max_tasks_per_child = 10

    result_expires = 3600
    task_ignore_result = False

    # Dumps have no timeout of their own, Celery's limits are the only ones
    task_soft_time_limit = int(os.getenv('TABLEDUMP_TASK_SOFT_LIMIT', 3600))
    task_time_limit = int(os.getenv('TABLEDUMP_TASK_HARD_LIMIT', 7200))

    worker_send_task_events = True
    task_send_sent_event = True


def create_celery_app(app_name=__name__):
    """Create and configure Celery app"""
    celery = Celery(app_name)
    celery.config_from_object(CeleryConfig)
    return celery


celery_app = create_celery_app('tabledump')
