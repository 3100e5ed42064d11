# wsgi.py
"""
WSGI entry point

    gunicorn wsgi:application
    celery -A wsgi.celery_app worker -Q notifications,certificates,default
"""

from app import create_app
from tasks.worker import celery_app

application = create_app()

__all__ = ['application', 'celery_app']
