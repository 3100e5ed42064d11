import io
import uuid

from core.database_models import db, Certificate, Nomination, NotificationLog
from services.certificates import CertificateRenderer

from conftest import png_upload


def _approve(client, nomination_id):
    response = client.patch(
        f'/api/awards/admin/nominations/{nomination_id}/status', json={'status': 'approved'}
    )
    assert response.status_code == 200
    return response.get_json()['data']['nomination']


def test_approval_issues_participation_certificate(app, admin_client, nomination):
    approved = _approve(admin_client, nomination['id'])

    assert approved['certificateId'].startswith('PAR-')
    with app.app_context():
        certificate = db.session.query(Certificate).one()
        assert certificate.type == 'participation'
        assert certificate.recipient_name == 'Grace Nakato'
        assert certificate.verification_url.endswith(f"/verify/{certificate.certificate_id}")


def test_verify_counts_each_lookup(admin_client, nomination):
    certificate_id = _approve(admin_client, nomination['id'])['certificateId']

    first = admin_client.get(f'/api/certificates/verify/{certificate_id.lower()}')
    second = admin_client.get(f'/api/certificates/verify/{certificate_id}')

    assert first.status_code == 200
    assert first.get_json()['data']['valid'] is True
    assert second.get_json()['data']['certificate']['verificationCount'] == 2


def test_verify_unknown_certificate(client):
    response = client.get('/api/certificates/verify/PAR-2025-000000-ZZZZ')

    body = response.get_json()
    assert response.status_code == 404
    assert body['status'] == 'fail'
    assert body['data']['valid'] is False
    assert body['message'] == 'Certificate not found or has been revoked'


def test_download_returns_pdf(admin_client, nomination):
    approved = _approve(admin_client, nomination['id'])

    response = admin_client.get(approved['certificateUrl'])

    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data[:4] == b'%PDF'


def test_download_rejects_path_traversal(client):
    assert client.get('/api/certificates/download/..%2Fsecret.pdf').status_code == 404
    assert client.get('/api/certificates/download/notes.txt').status_code == 404


def test_generate_requires_eligible_status(admin_client, nomination):
    response = admin_client.post(f"/api/certificates/generate/{nomination['id']}")

    assert response.status_code == 400
    assert response.get_json()['message'] == (
        'Certificates can only be generated for approved, finalist or winner nominations'
    )


def test_regenerate_replaces_certificate(app, admin_client, nomination):
    original = _approve(admin_client, nomination['id'])['certificateId']

    response = admin_client.post(f"/api/certificates/regenerate/{nomination['id']}")

    assert response.status_code == 200
    regenerated = response.get_json()['data']['certificate']['certificateId']
    with app.app_context():
        ids = [c.certificate_id for c in db.session.query(Certificate).all()]
    assert ids == [regenerated]
    assert regenerated != original
    assert admin_client.get(f'/api/certificates/verify/{original}').status_code == 404


def test_delete_certificate(app, admin_client, nomination):
    _approve(admin_client, nomination['id'])

    assert admin_client.delete(f"/api/certificates/delete/{nomination['id']}").status_code == 200
    second = admin_client.delete(f"/api/certificates/delete/{nomination['id']}")

    assert second.status_code == 404
    assert second.get_json()['message'] == 'No certificate found for this nomination'
    with app.app_context():
        assert db.session.query(Certificate).count() == 0


def test_signature_upload_and_removal(admin_client):
    image, _ = png_upload(size=(400, 120), noise=True)
    response = admin_client.post(
        '/api/certificates/signature',
        data={'signature': (image, 'signature.png')},
        content_type='multipart/form-data',
    )
    assert response.status_code == 201

    info = admin_client.get('/api/certificates/signature').get_json()['data']
    assert info['hasSignature'] is True

    assert admin_client.delete('/api/certificates/signature').status_code == 200
    assert admin_client.get('/api/certificates/signature').get_json()['data']['hasSignature'] is False


def test_signature_rejects_tiny_files(admin_client):
    response = admin_client.post(
        '/api/certificates/signature',
        data={'signature': (io.BytesIO(b'x' * 10), 'signature.png')},
        content_type='multipart/form-data',
    )
    assert response.status_code == 400


def test_unexpected_render_error_leaves_job_retryable(app, admin_client, nomination, monkeypatch):
    original_render = CertificateRenderer.render

    def broken_render(self, *args, **kwargs):
        raise ValueError('font metrics unavailable')

    monkeypatch.setattr(CertificateRenderer, 'render', broken_render)
    response = admin_client.patch(
        f"/api/awards/admin/nominations/{nomination['id']}/status", json={'status': 'approved'}
    )
    assert response.status_code == 200
    effects = response.get_json()['data']['sideEffects']
    job_id = effects['certificateJobId']

    with app.app_context():
        job = db.session.get(NotificationLog, uuid.UUID(job_id))
        assert job.status == 'failed'
        assert job.last_error == 'font metrics unavailable'
        assert db.session.query(Certificate).count() == 0

    monkeypatch.setattr(CertificateRenderer, 'render', original_render)
    retried = admin_client.post(f'/api/admin/notifications/{job_id}/retry')
    assert retried.status_code == 200
    assert retried.get_json()['message'] == 'Notification re-queued'

    with app.app_context():
        assert db.session.get(NotificationLog, uuid.UUID(job_id)).status == 'completed'
        stored = db.session.get(Nomination, uuid.UUID(nomination['id']))
        assert stored.certificate_id.startswith('PAR-')
        assert db.session.query(Certificate).count() == 1


def test_failed_certificate_job_does_not_block_requeue(app, admin_client, nomination, monkeypatch):
    monkeypatch.setattr(CertificateRenderer, 'render', lambda self, *args, **kwargs: 1 / 0)
    _approve(admin_client, nomination['id'])
    monkeypatch.undo()

    admin_client.patch(f"/api/awards/admin/nominations/{nomination['id']}/status", json={'status': 'pending'})
    response = admin_client.patch(
        f"/api/awards/admin/nominations/{nomination['id']}/status", json={'status': 'approved'}
    )

    effects = response.get_json()['data']['sideEffects']
    assert effects['certificateQueued'] is True
    assert response.get_json()['data']['nomination']['certificateId'].startswith('PAR-')
