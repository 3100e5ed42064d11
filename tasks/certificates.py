# tasks/certificates.py
"""
Celery task generating award certificates off the request path
"""

import uuid
from typing import Any, Dict

from celery.utils.log import get_task_logger

from core.database_models import db, Nomination, NotificationLog
from services.certificates import CERTIFICATE_TYPE_BY_STATUS, certificate_service
from tasks.worker import celery_app

logger = get_task_logger(__name__)


@celery_app.task(bind=True, max_retries=2, default_retry_delay=30)
def generate_nomination_certificate(self, job_id: str) -> Dict[str, Any]:
    """
    Render the certificate for the nomination referenced by a certificate job

    Already-certified nominations and nominations that left an eligible status
    are skipped, so re-running a job never produces a second certificate.
    """
    job = db.session.get(NotificationLog, uuid.UUID(job_id))
    if job is None:
        logger.warning(f"Certificate job {job_id} no longer exists")
        return {'jobId': job_id, 'status': 'skipped'}

    job.attempts += 1
    job.task_id = self.request.id
    nomination = db.session.get(Nomination, uuid.UUID(job.related_id)) if job.related_id else None

    if nomination is None:
        job.mark('skipped', 'Nomination no longer exists')
        db.session.commit()
        return {'jobId': job_id, 'status': 'skipped'}

    if nomination.certificate_file:
        job.mark('skipped', 'Certificate already generated')
        db.session.commit()
        return {'jobId': job_id, 'status': 'skipped', 'certificateId': nomination.certificate_id}

    if nomination.status not in CERTIFICATE_TYPE_BY_STATUS:
        job.mark('skipped', f"Nomination status {nomination.status} is not eligible")
        db.session.commit()
        return {'jobId': job_id, 'status': 'skipped'}

    try:
        certificate = certificate_service.issue(nomination)
    except Exception as exc:
        # Any failure leaves the job retryable from the admin API
        logger.error(f"Certificate generation failed for nomination {nomination.id}: {exc}", exc_info=True)
        db.session.rollback()
        job = db.session.get(NotificationLog, uuid.UUID(job_id))
        job.mark('failed', str(exc))
        db.session.commit()
        return {'jobId': job_id, 'status': 'failed', 'error': str(exc)}

    job = db.session.get(NotificationLog, uuid.UUID(job_id))
    job.mark('completed')
    job.subject = certificate.certificate_id
    db.session.commit()
    logger.info(f"Certificate {certificate.certificate_id} generated for nomination {nomination.id}")
    return {'jobId': job_id, 'status': 'completed', 'certificateId': certificate.certificate_id}
