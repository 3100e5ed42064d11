# api/certificates.py
"""
Certificates API: public verification and download, admin generation
"""

from flask import Blueprint, request, send_file
from sqlalchemy import or_

from api.responses import failure, success
from core.database_models import db, Certificate, Nomination, parse_uuid
from core.exceptions import NotFoundError
from core.pagination import page_args, paginate
from middleware.security import current_user, require_admin, require_auth
from services.awards import awards_service
from services.certificates import certificate_service

certificates_bp = Blueprint('certificates', __name__)


@certificates_bp.route('/api/certificates/verify/<certificate_id>', methods=['GET'])
def verify(certificate_id):
    try:
        certificate = certificate_service.verify(certificate_id)
    except NotFoundError as e:
        return failure(e.message, 404, data={'valid': False})
    return success({'valid': True, 'certificate': certificate.to_dict()}, 'Certificate is valid')


@certificates_bp.route('/api/certificates/download/<filename>', methods=['GET'])
def download(filename):
    path = certificate_service.file_path(filename)
    if not path.is_file():
        raise NotFoundError("Certificate file not found")
    return send_file(path, mimetype='application/pdf', as_attachment=True, download_name=path.name)


@certificates_bp.route('/api/certificates/info/<nomination_id>', methods=['GET'])
@require_auth
def info(nomination_id):
    nomination = db.session.get(Nomination, parse_uuid(nomination_id, "Nomination not found"))
    if nomination is None:
        raise NotFoundError("Nomination not found")
    certificate = certificate_service.for_nomination(nomination)
    if certificate is None:
        raise NotFoundError("No certificate found for this nomination")
    return success({'certificate': certificate.to_dict(include_admin=current_user().is_admin)})


# Admin

@certificates_bp.route('/api/certificates/all', methods=['GET'])
@require_admin
def list_all():
    query = db.session.query(Certificate)
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Certificate.recipient_name.ilike(pattern),
            Certificate.certificate_id.ilike(pattern),
            Certificate.category_name.ilike(pattern),
        ))
    certificate_type = request.args.get('type')
    if certificate_type:
        query = query.filter(Certificate.type == certificate_type)

    page, limit = page_args(request.args, default_limit=20)
    result_page = paginate(query.order_by(Certificate.issue_date.desc()), page, limit)
    return success({
        'certificates': [c.to_dict(include_admin=True) for c in result_page.items],
        'pagination': result_page.meta(),
    })


@certificates_bp.route('/api/certificates/generate/<nomination_id>', methods=['POST'])
@require_admin
def generate(nomination_id):
    nomination = awards_service.get_nomination(nomination_id)
    certificate = certificate_service.issue(nomination)
    return success({'certificate': certificate.to_dict(include_admin=True)}, 'Certificate generated successfully')


@certificates_bp.route('/api/certificates/regenerate/<nomination_id>', methods=['POST'])
@require_admin
def regenerate(nomination_id):
    nomination = awards_service.get_nomination(nomination_id)
    certificate = certificate_service.issue(nomination, regenerate=True)
    return success({'certificate': certificate.to_dict(include_admin=True)}, 'Certificate regenerated successfully')


@certificates_bp.route('/api/certificates/delete/<nomination_id>', methods=['DELETE'])
@require_admin
def delete(nomination_id):
    nomination = awards_service.get_nomination(nomination_id)
    certificate_service.delete_for_nomination(nomination)
    return success(message='Certificate deleted successfully')


@certificates_bp.route('/api/certificates/bulk-generate', methods=['POST'])
@require_admin
def bulk_generate():
    results = certificate_service.bulk_generate(request.args.get('status'))
    message = f"Generated {len(results['success'])} certificate(s), {len(results['failed'])} failed"
    return success(results, message)


@certificates_bp.route('/api/certificates/signature', methods=['POST'])
@require_admin
def upload_signature():
    upload = request.files.get('signature')
    if upload is None or not upload.filename:
        return failure('Signature file is required', 400)
    info = certificate_service.save_signature(upload, current_user().email)
    return success({'signature': info}, 'Signature uploaded successfully', 201)


@certificates_bp.route('/api/certificates/signature', methods=['GET'])
@require_admin
def get_signature():
    info = certificate_service.signature_info()
    return success({'hasSignature': info is not None, 'signature': info})


@certificates_bp.route('/api/certificates/signature', methods=['DELETE'])
@require_admin
def delete_signature():
    certificate_service.delete_signature()
    return success(message='Signature deleted successfully')
