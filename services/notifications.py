# services/notifications.py
"""
Background notification dispatch

Every side effect (e-mail or certificate generation) is first written to
NotificationLog and then handed to Celery. The triggering request never
fails because of it, and the log row keeps the outcome for admins.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

from flask import current_app
from kombu.exceptions import OperationalError as BrokerError

from core.database_models import db, NotificationLog, Nomination
from core.template_engine import SecureTemplateEngine, RenderedEmail

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    'pending': 'Pending review',
    'approved': 'Approved',
    'rejected': 'Not selected',
    'winner': 'Winner',
    'finalist': 'Finalist',
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def template_defaults() -> Dict[str, Any]:
    config = current_app.config
    return {
        'company_name': config.get('APP_NAME'),
        'site_url': config.get('FRONTEND_URL'),
        'awards_name': config.get('AWARDS_NAME'),
    }


def get_template_engine() -> SecureTemplateEngine:
    engine = current_app.extensions.get('template_engine')
    if engine is None:
        engine = SecureTemplateEngine()
        current_app.extensions['template_engine'] = engine
    return engine


def render_notification(template: str, context: Dict[str, Any]) -> RenderedEmail:
    return get_template_engine().render(template, context, defaults=template_defaults())


def _dispatch(task, job: NotificationLog) -> bool:
    """Hand the job to Celery; a broker outage marks it failed instead of raising"""
    try:
        task.delay(str(job.id))
    except BrokerError as exc:
        logger.error(f"Could not dispatch {job.channel} job {job.id}: {exc}")
        job.mark('failed', f"Dispatch failed: {exc}")
        db.session.commit()
        return False
    return True


def queue_email(template: str, recipient: Optional[str], context: Dict[str, Any],
                related: Any = None) -> Optional[NotificationLog]:
    """
    Record and dispatch a notification e-mail

    Args:
        template: Key of core.email_templates.TEMPLATES
        recipient: Destination address; nothing is queued when empty
        context: Template variables (stored as JSON for retries)
        related: Model instance the e-mail is about
    """
    from tasks.email_sender import send_notification_email

    if not get_template_engine().has_template(template):
        raise ValueError(f"Unknown notification template '{template}'")

    recipient = (recipient or '').strip()
    if not recipient:
        logger.warning(f"Notification {template} skipped: no recipient")
        return None

    job = NotificationLog(
        channel='email',
        template=template,
        recipient=recipient,
        context=_jsonable(context),
        related_type=type(related).__name__ if related is not None else None,
        related_id=str(related.id) if related is not None else None,
    )
    db.session.add(job)
    db.session.commit()

    _dispatch(send_notification_email, job)
    logger.info(f"Notification {template} queued for {recipient} [{job.id}]")
    return job


def queue_admin_email(template: str, context: Dict[str, Any], related: Any = None) -> Optional[NotificationLog]:
    return queue_email(template, current_app.config.get('NOTIFY_EMAIL'), context, related)


def queue_certificate_generation(nomination: Nomination) -> Optional[NotificationLog]:
    """
    Queue certificate generation unless a certificate exists or a job is already in flight
    """
    from tasks.certificates import generate_nomination_certificate

    if nomination.certificate_file:
        return None

    in_flight = db.session.query(NotificationLog).filter(
        NotificationLog.channel == 'certificate',
        NotificationLog.related_id == str(nomination.id),
        NotificationLog.status.in_(('queued', 'retrying')),
    ).first()
    if in_flight is not None:
        logger.info(f"Certificate job {in_flight.id} already pending for nomination {nomination.id}")
        return None

    job = NotificationLog(
        channel='certificate',
        template='certificate_generation',
        recipient=nomination.nominator_email,
        context={'status': nomination.status},
        related_type='Nomination',
        related_id=str(nomination.id),
    )
    db.session.add(job)
    db.session.commit()

    _dispatch(generate_nomination_certificate, job)
    return job


def retry_job(job: NotificationLog) -> NotificationLog:
    """Re-dispatch a failed job with its stored context"""
    from tasks.certificates import generate_nomination_certificate
    from tasks.email_sender import send_notification_email

    job.status = 'queued'
    db.session.commit()

    task = generate_nomination_certificate if job.channel == 'certificate' else send_notification_email
    _dispatch(task, job)
    return job


def nomination_context(nomination: Nomination) -> Dict[str, Any]:
    """Template variables shared by every nomination e-mail"""
    site_url = current_app.config.get('FRONTEND_URL', '').rstrip('/')
    return {
        'nominee_name': nomination.nominee_name,
        'nominee_country': nomination.nominee_country,
        'nominator_name': nomination.nominator_name,
        'nominator_email': nomination.nominator_email,
        'category_name': nomination.category.name if nomination.category else '',
        'nomination_reason': nomination.nomination_reason,
        'status': nomination.status,
        'status_label': STATUS_LABELS.get(nomination.status, nomination.status),
        'admin_notes': nomination.admin_notes,
        'nomination_url': f"{site_url}/awards/nominations/{nomination.slug or nomination.id}",
        'admin_url': f"{site_url}/admin/awards",
    }
