import uuid

import pytest

from core.database_models import db, NotificationLog
from core.smtp_rfc_handler import SMTPResponseAnalyzer
from core.template_engine import SecureTemplateEngine, TemplateRenderingError
from services.mailer import DeliveryResult
from services.notifications import queue_email
from tasks.email_sender import send_notification_email


def _subscribe(client, email='reader@gmail.com'):
    response = client.post('/api/newsletter/subscribe', json={'email': email})
    assert response.status_code == 201


def _jobs(app, **filters):
    with app.app_context():
        return [job.to_dict() for job in db.session.query(NotificationLog).filter_by(**filters).all()]


def test_suppressed_mail_is_recorded_as_sent(app, client, outbox):
    _subscribe(client)

    [job] = _jobs(app, template='newsletter_welcome')
    assert job['status'] == 'sent'
    assert job['attempts'] == 1
    assert job['subject'] == 'Welcome to the SAP Technologies newsletter'
    assert outbox[0]['X-Notification-ID'] == job['id']


def test_permanent_smtp_failure_is_logged_without_failing_request(app, client, monkeypatch):
    mailer = app.extensions['mailer']
    monkeypatch.setattr(mailer, 'send', lambda msg: DeliveryResult(
        False, '550 5.1.1 User unknown', error='User unknown'
    ))

    _subscribe(client)

    [job] = _jobs(app, template='newsletter_welcome')
    assert job['status'] == 'failed'
    assert job['smtpResponseCode'] == '550'
    assert job['lastError'] == 'User unknown'


def test_admin_can_retry_failed_notification(app, admin_client, monkeypatch, outbox):
    mailer = app.extensions['mailer']
    original_send = mailer.send
    monkeypatch.setattr(mailer, 'send', lambda msg: DeliveryResult(False, '554 Rejected', error='Rejected'))
    _subscribe(admin_client)
    [job] = _jobs(app, template='newsletter_welcome')
    assert job['status'] == 'failed'

    monkeypatch.setattr(mailer, 'send', original_send)
    response = admin_client.post(f"/api/admin/notifications/{job['id']}/retry")

    assert response.status_code == 200
    [retried] = _jobs(app, template='newsletter_welcome')
    assert retried['status'] == 'sent'
    assert retried['attempts'] == 2
    assert len(outbox) == 1


def test_retry_of_sent_notification_is_a_no_op(app, admin_client):
    _subscribe(admin_client)
    [job] = _jobs(app, template='newsletter_welcome')

    response = admin_client.post(f"/api/admin/notifications/{job['id']}/retry")

    assert response.status_code == 200
    assert response.get_json()['message'] == 'Notification is sent; nothing to retry'


def test_notification_log_listing(app, admin_client):
    _subscribe(admin_client)

    listing = admin_client.get('/api/admin/notifications', query_string={'status': 'sent'}).get_json()['data']
    assert any(n['template'] == 'newsletter_welcome' for n in listing['notifications'])


def test_missing_template_variable_marks_job_failed(app):
    with app.app_context():
        job = NotificationLog(channel='email', template='contact_confirmation',
                              recipient='someone@gmail.com', context={})
        db.session.add(job)
        db.session.commit()
        job_id = str(job.id)

        result = send_notification_email.apply(args=(job_id,)).get()

        assert result['status'] == 'failed'
        stored = db.session.get(NotificationLog, uuid.UUID(job_id))
        assert stored.status == 'failed'
        assert 'name' in stored.last_error


def test_template_engine_escapes_user_content():
    engine = SecureTemplateEngine(enable_css_inlining=False)

    rendered = engine.render('contact_admin', {
        'name': 'Eve', 'email': 'eve@gmail.com', 'message': '<img src=x onerror=alert(1)>',
    }, defaults={'company_name': 'SAP Technologies', 'site_url': 'https://www.sap-technologies.com'})

    assert '<img' not in rendered.html
    assert '&lt;img' in rendered.html
    assert rendered.subject == 'New contact message from Eve'


def test_template_engine_rejects_unknown_template():
    with pytest.raises(TemplateRenderingError):
        SecureTemplateEngine().render('does_not_exist', {})


def test_unknown_template_is_refused_before_queueing(app):
    with app.app_context():
        with pytest.raises(ValueError, match="Unknown notification template .welcome_mail."):
            queue_email('welcome_mail', 'someone@gmail.com', {})
        assert db.session.query(NotificationLog).count() == 0


@pytest.mark.parametrize('code, attempts, expected', [
    ('421', 0, True),
    ('451', 2, True),
    ('451', 3, False),
    ('550', 0, False),
    ('250', 0, False),
])
def test_only_transient_smtp_failures_are_retried(code, attempts, expected):
    assert SMTPResponseAnalyzer().should_retry(code, attempts, max_retries=3) is expected
