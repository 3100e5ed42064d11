# tasks/email_sender.py
"""
Celery task delivering notification e-mails
- Renders the stored template context
- Sends over SMTP
- Retries transient (4xx) failures with exponential backoff
- Records every outcome on the NotificationLog row
"""

import uuid
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

from celery.exceptions import Retry
from celery.signals import task_prerun, task_postrun, task_failure
from celery.utils.log import get_task_logger
from flask import current_app

from core.database_models import db, NotificationLog, utcnow
from core.smtp_rfc_handler import SMTPResponseAnalyzer
from core.template_engine import TemplateRenderingError
from services.mailer import mailer
from services.notifications import render_notification
from tasks.worker import celery_app

# Configure task logger
logger = get_task_logger(__name__)


class TaskStatus(Enum):
    """Task execution status"""
    SENT = "sent"
    FAILED = "failed"
    RETRY = "retrying"
    SKIPPED = "skipped"


@dataclass
class EmailResult:
    """Result of individual email send operation"""
    notification_id: str
    status: str
    smtp_code: Optional[str]
    retry_count: int
    finished_at: str
    error_message: Optional[str] = None


class EmailSenderError(Exception):
    """Base exception for email sending operations"""
    pass


def _result(notification_id: str, status: TaskStatus, retries: int,
            smtp_code: str = None, error: str = None) -> Dict[str, Any]:
    return asdict(EmailResult(
        notification_id=notification_id,
        status=status.value,
        smtp_code=smtp_code,
        retry_count=retries,
        finished_at=utcnow().isoformat(),
        error_message=error
    ))


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_notification_email(self, notification_id: str) -> Dict[str, Any]:
    """
    Send one queued notification e-mail

    Args:
        notification_id: UUID of the NotificationLog row

    Returns:
        Dict describing the outcome
    """
    retries = self.request.retries
    notification = db.session.get(NotificationLog, uuid.UUID(notification_id))
    if notification is None:
        logger.warning(f"Notification {notification_id} no longer exists")
        return _result(notification_id, TaskStatus.SKIPPED, retries, error='missing notification')

    if notification.status == 'sent':
        return _result(notification_id, TaskStatus.SKIPPED, retries, error='already sent')

    analyzer = SMTPResponseAnalyzer()
    max_retries = current_app.config.get('MAIL_MAX_RETRIES', self.max_retries)

    try:
        notification.attempts += 1
        notification.task_id = self.request.id

        rendered = render_notification(notification.template, notification.context or {})
        notification.subject = rendered.subject[:255]

        msg = mailer.build_message(
            notification.recipient,
            rendered.subject,
            rendered.html,
            rendered.text,
            reply_to=(notification.context or {}).get('reply_to'),
            headers={'X-Notification-ID': notification_id}
        )
        delivery = mailer.send(msg)
        code, message, _ = analyzer.parse_response(delivery.response)
        notification.smtp_response_code = code

        if delivery.success:
            notification.mark('sent')
            db.session.commit()
            logger.info(f"Notification {notification.template} sent to {notification.recipient}")
            return _result(notification_id, TaskStatus.SENT, retries, smtp_code=code)

        error = delivery.error or message
        if analyzer.should_retry(code, retries, max_retries):
            retry_delay = analyzer.get_retry_delay(code, retries + 1)
            notification.mark('retrying', error)
            db.session.commit()
            logger.warning(f"Email to {notification.recipient} failed ({code}), retrying in {retry_delay}s")
            raise self.retry(exc=EmailSenderError(f"SMTP error: {error}"),
                             countdown=retry_delay, max_retries=max_retries)

        notification.mark('failed', error)
        db.session.commit()
        logger.error(f"Email to {notification.recipient} failed permanently ({code}): {error}")
        return _result(notification_id, TaskStatus.FAILED, retries, smtp_code=code, error=error)

    except Retry:
        raise
    except TemplateRenderingError as e:
        logger.error(f"Template rendering failed for notification {notification_id}: {e}")
        notification.mark('failed', str(e))
        db.session.commit()
        return _result(notification_id, TaskStatus.FAILED, retries, error=str(e))
    except Exception as exc:
        logger.error(f"Unexpected error sending notification {notification_id}: {exc}", exc_info=True)
        db.session.rollback()
        notification = db.session.get(NotificationLog, uuid.UUID(notification_id))
        if notification is not None:
            notification.mark('failed', str(exc))
            db.session.commit()
        return _result(notification_id, TaskStatus.FAILED, retries, error=str(exc))


# Celery signal handlers for monitoring
@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, **cwds):
    """Handle task pre-run events"""
    logger.info(f"Task {task.name} [{task_id}] starting")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None,
                         retval=None, state=None, **cwds):
    """Handle task post-run events"""
    logger.info(f"Task {task.name} [{task_id}] completed with state: {state}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, einfo=None, **cwds):
    """Handle task failure events"""
    logger.error(f"Task {sender.name} [{task_id}] failed: {exception}")
