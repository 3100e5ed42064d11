# tasks/worker.py
"""
Celery application for background side effects (notification e-mail,
certificate generation)

Run a worker with:
    celery -A wsgi.celery_app worker --loglevel=INFO -Q notifications,certificates,default
"""

from typing import Any, Dict

from celery import Celery, Task
from flask import Flask, has_app_context
from kombu import Queue


class ContextTask(Task):
    """Make celery tasks work with Flask app context"""

    def __call__(self, *args, **kwargs):
        # Eager tasks dispatched from a request reuse the caller's context and session
        if has_app_context():
            return self.run(*args, **kwargs)

        flask_app = getattr(self.app, 'flask_app', None)
        if flask_app is None:
            raise RuntimeError("Celery is not bound to a Flask application; call init_celery(app) first")
        with flask_app.app_context():
            return self.run(*args, **kwargs)


celery_app = Celery('sap_site', task_cls=ContextTask)
celery_app.conf.update({
    # Serialization
    'task_serializer': 'json',
    'result_serializer': 'json',
    'accept_content': ['json'],

    # Timezone
    'timezone': 'UTC',
    'enable_utc': True,

    # Task Execution
    'task_acks_late': True,
    'task_reject_on_worker_lost': True,
    'worker_prefetch_multiplier': 1,
    'result_expires': 3600,

    # Routing
    'task_default_queue': 'default',
    'task_queues': (
        Queue('notifications', routing_key='notifications'),
        Queue('certificates', routing_key='certificates'),
        Queue('default', routing_key='default'),
    ),
    'task_routes': {
        'tasks.email_sender.send_notification_email': {'queue': 'notifications'},
        'tasks.certificates.generate_nomination_certificate': {'queue': 'certificates'},
    },

    # Monitoring
    'worker_send_task_events': True,
    'task_send_sent_event': True,
    'worker_hijack_root_logger': False,
})


def init_celery(app: Flask) -> Celery:
    """Bind the Celery app to a Flask application and apply its settings"""
    celery_config: Dict[str, Any] = {
        'broker_url': app.config['CELERY_BROKER_URL'],
        'result_backend': app.config['CELERY_RESULT_BACKEND'],
        'task_always_eager': app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        # Side effects never fail the request that triggered them
        'task_eager_propagates': False,
        'broker_connection_retry_on_startup': True,
    }
    celery_app.conf.update(celery_config)
    celery_app.flask_app = app
    app.extensions['celery'] = celery_app

    # Register task modules
    import tasks.email_sender  # noqa: F401
    import tasks.certificates  # noqa: F401

    return celery_app
