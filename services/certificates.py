# services/certificates.py
"""
Award certificate issuing, rendering and verification

Certificates are A4 landscape PDFs rendered with Pillow, carrying a QR code
that points at the public verification page.
"""

import json
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import qrcode
from flask import current_app
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import FileStorage
from werkzeug.local import LocalProxy

from core.database_models import db, Certificate, Nomination, utcnow
from core.exceptions import BadRequestError, NotFoundError, StorageError
from services.notifications import nomination_context, queue_email

logger = logging.getLogger(__name__)

CERTIFICATE_TYPE_BY_STATUS = {
    'winner': 'winner',
    'finalist': 'finalist',
    'approved': 'participation',
}

ID_PREFIX_BY_STATUS = {
    'winner': 'WIN',
    'finalist': 'FIN',
    'approved': 'PAR',
}

# A4 landscape at 144 dpi
PAGE_SIZE = (1684, 1190)
PAGE_DPI = 144.0


@dataclass(frozen=True)
class CertificateTheme:
    accent: Tuple[int, int, int]
    title: str
    award_line: str
    intro: str


THEMES = {
    'winner': CertificateTheme((245, 158, 11), 'CERTIFICATE OF ACHIEVEMENT', 'WINNER',
                               'This certificate is proudly presented to'),
    'finalist': CertificateTheme((37, 99, 235), 'CERTIFICATE OF RECOGNITION', 'FINALIST',
                                 'This certificate is presented to'),
    'participation': CertificateTheme((16, 185, 129), 'CERTIFICATE OF PARTICIPATION', 'NOMINEE',
                                      'This certificate is awarded to'),
}


def generate_certificate_id(nomination_id: Any, status: str, year: str) -> str:
    """{WIN|FIN|PAR|CER}-{year}-{first 6 of nomination id}-{4 random characters}"""
    prefix = ID_PREFIX_BY_STATUS.get(status, 'CER')
    short_id = str(nomination_id).replace('-', '')[:6].upper()
    alphabet = string.ascii_uppercase + string.digits
    suffix = ''.join(secrets.choice(alphabet) for _ in range(4))
    return f"{prefix}-{year}-{short_id}-{suffix}"


class CertificateRenderer:
    """Draws a certificate page and writes it as PDF"""

    def __init__(self, awards_name: str, committee_name: str):
        self.awards_name = awards_name
        self.committee_name = committee_name

    @staticmethod
    def _font(size: int):
        return ImageFont.load_default(size=size)

    @staticmethod
    def _centered(draw: ImageDraw.ImageDraw, y: int, text: str, font, fill):
        left, _, right, _ = draw.textbbox((0, 0), text, font=font)
        draw.text(((PAGE_SIZE[0] - (right - left)) / 2, y), text, font=font, fill=fill)

    @staticmethod
    def _qr_image(data: str, size: int) -> Image.Image:
        qr = qrcode.QRCode(box_size=8, border=1)
        qr.add_data(data)
        qr.make(fit=True)
        image = qr.make_image(fill_color='black', back_color='white').get_image()
        return image.convert('RGB').resize((size, size))

    def render(self, output_path: Path, *, recipient_name: str, category_name: str,
               certificate_type: str, certificate_id: str, award_year: str,
               issue_date: datetime, verification_url: str,
               signature_path: Optional[Path] = None) -> Path:
        theme = THEMES[certificate_type]
        width, height = PAGE_SIZE
        dark = (17, 24, 39)
        muted = (75, 85, 99)

        page = Image.new('RGB', PAGE_SIZE, (255, 255, 255))
        draw = ImageDraw.Draw(page)

        # Double border in the theme colour
        draw.rectangle([30, 30, width - 30, height - 30], outline=theme.accent, width=14)
        draw.rectangle([62, 62, width - 62, height - 62], outline=dark, width=3)

        self._centered(draw, 120, self.awards_name, self._font(40), theme.accent)
        self._centered(draw, 200, theme.title, self._font(64), dark)
        self._centered(draw, 330, theme.intro, self._font(30), muted)
        self._centered(draw, 390, recipient_name, self._font(80), dark)
        draw.line([width / 2 - 420, 500, width / 2 + 420, 500], fill=theme.accent, width=4)
        self._centered(draw, 540, f"{theme.award_line} - {category_name}", self._font(40), theme.accent)
        self._centered(draw, 610, f"Awards {award_year}", self._font(30), muted)

        # Signature block
        signature_x, signature_y = 180, 830
        if signature_path is not None and signature_path.is_file():
            try:
                signature = Image.open(signature_path).convert('RGBA')
                signature.thumbnail((360, 140))
                page.paste(signature, (signature_x, signature_y), signature)
            except (UnidentifiedImageError, OSError) as e:
                logger.warning(f"Signature image unusable, using signature line: {e}")
        draw.line([signature_x, 980, signature_x + 380, 980], fill=dark, width=2)
        draw.text((signature_x, 995), "Authorized Signature", font=self._font(24), fill=muted)
        draw.text((signature_x, 1030), self.committee_name, font=self._font(24), fill=muted)

        # Verification block
        qr_size = 220
        qr_x, qr_y = width - 180 - qr_size, 780
        page.paste(self._qr_image(verification_url, qr_size), (qr_x, qr_y))
        draw.text((qr_x - 40, qr_y + qr_size + 15), f"ID: {certificate_id}", font=self._font(22), fill=dark)
        draw.text((qr_x - 40, qr_y + qr_size + 45),
                  f"Issued {issue_date.strftime('%d %B %Y')}", font=self._font(22), fill=muted)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        page.save(output_path, 'PDF', resolution=PAGE_DPI)
        return output_path


class CertificateService:
    """Issues certificates for nominations and answers verification lookups"""

    SIGNATURE_INFO = 'signature-info.json'

    def __init__(self, app=None):
        self.certificates_dir: Optional[Path] = None
        self.signatures_dir: Optional[Path] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        upload_root = Path(app.config['UPLOAD_FOLDER'])
        self.certificates_dir = upload_root / 'certificates'
        self.signatures_dir = upload_root / 'signatures'
        self.certificates_dir.mkdir(parents=True, exist_ok=True)
        self.signatures_dir.mkdir(parents=True, exist_ok=True)
        app.extensions['certificates'] = self

    @property
    def renderer(self) -> CertificateRenderer:
        awards_name = current_app.config.get('AWARDS_NAME', 'AWARDS')
        return CertificateRenderer(awards_name, f"{awards_name.title()} Committee")

    def verification_url(self, certificate_id: str) -> str:
        return f"{current_app.config['FRONTEND_URL'].rstrip('/')}/verify/{certificate_id}"

    @staticmethod
    def download_url(filename: str) -> str:
        return f"/api/certificates/download/{filename}"

    def file_path(self, filename: str) -> Path:
        """Path of a certificate file; only bare file names are accepted"""
        name = Path(filename).name
        if not name or name != filename or not name.endswith('.pdf'):
            raise NotFoundError("Certificate file not found")
        return self.certificates_dir / name

    def issue(self, nomination: Nomination, regenerate: bool = False,
              notify: bool = True) -> Certificate:
        """
        Generate the certificate for a nomination

        Without ``regenerate`` an existing certificate is returned unchanged, so
        calling this repeatedly produces exactly one file.
        """
        certificate_type = CERTIFICATE_TYPE_BY_STATUS.get(nomination.status)
        if certificate_type is None:
            raise BadRequestError(
                "Certificates can only be generated for approved, finalist or winner nominations"
            )

        if nomination.certificate_file and not regenerate:
            existing = self.for_nomination(nomination)
            if existing is not None:
                return existing

        if regenerate:
            self._remove_existing(nomination)

        award_year = str(current_app.config.get('AWARD_YEAR', utcnow().year))
        certificate_id = generate_certificate_id(nomination.id, nomination.status, award_year)
        filename = f"certificate_{certificate_id}.pdf"
        output_path = self.certificates_dir / filename
        issue_date = utcnow()
        verification_url = self.verification_url(certificate_id)
        category_name = nomination.category.name if nomination.category else 'Awards'

        self.renderer.render(
            output_path,
            recipient_name=nomination.nominee_name,
            category_name=category_name,
            certificate_type=certificate_type,
            certificate_id=certificate_id,
            award_year=award_year,
            issue_date=issue_date,
            verification_url=verification_url,
            signature_path=self.signature_path(),
        )

        try:
            certificate = Certificate(
                certificate_id=certificate_id,
                nomination_id=nomination.id,
                recipient_name=nomination.nominee_name,
                recipient_email=nomination.nominator_email,
                category_name=category_name,
                type=certificate_type,
                award_year=award_year,
                issue_date=issue_date,
                filename=filename,
                verification_url=verification_url,
                metadata_json={
                    'nomineeTitle': nomination.nominee_title,
                    'nomineeCompany': nomination.nominee_company,
                    'nomineeCountry': nomination.nominee_country,
                },
            )
            db.session.add(certificate)
            nomination.certificate_id = certificate_id
            nomination.certificate_file = filename
            nomination.certificate_url = self.download_url(filename)
            nomination.certificate_generated_at = issue_date
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            output_path.unlink(missing_ok=True)
            raise

        logger.info(f"Issued {certificate_type} certificate {certificate_id} for nomination {nomination.id}")

        if notify:
            context = nomination_context(nomination)
            context.update({
                'certificate_id': certificate_id,
                'certificate_type': certificate_type,
                'download_url': f"{current_app.config['FRONTEND_URL'].rstrip('/')}{self.download_url(filename)}",
                'verification_url': verification_url,
            })
            queue_email('certificate_issued', nomination.nominator_email, context, related=nomination)

        return certificate

    def for_nomination(self, nomination: Nomination) -> Optional[Certificate]:
        if not nomination.certificate_id:
            return None
        return db.session.query(Certificate).filter_by(certificate_id=nomination.certificate_id).first()

    def _remove_existing(self, nomination: Nomination) -> None:
        if nomination.certificate_file:
            (self.certificates_dir / Path(nomination.certificate_file).name).unlink(missing_ok=True)
        existing = self.for_nomination(nomination)
        if existing is not None:
            db.session.delete(existing)
        nomination.certificate_id = None
        nomination.certificate_file = None
        nomination.certificate_url = None
        nomination.certificate_generated_at = None
        db.session.flush()

    def delete_for_nomination(self, nomination: Nomination) -> None:
        if not nomination.certificate_file and not nomination.certificate_id:
            raise NotFoundError("No certificate found for this nomination")
        self._remove_existing(nomination)
        db.session.commit()
        logger.info(f"Deleted certificate for nomination {nomination.id}")

    def verify(self, certificate_id: str) -> Certificate:
        certificate = db.session.query(Certificate).filter_by(
            certificate_id=certificate_id.strip().upper(), status='active'
        ).first()
        if certificate is None:
            raise NotFoundError("Certificate not found or has been revoked")
        certificate.record_verification()
        db.session.commit()
        return certificate

    def bulk_generate(self, status: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Issue certificates for every eligible nomination that has none"""
        statuses = [status] if status else list(CERTIFICATE_TYPE_BY_STATUS)
        invalid = [s for s in statuses if s not in CERTIFICATE_TYPE_BY_STATUS]
        if invalid:
            raise BadRequestError(f"Invalid status for certificate generation: {invalid[0]}")

        nominations = db.session.query(Nomination).filter(
            Nomination.status.in_(statuses),
            Nomination.certificate_file.is_(None),
        ).all()

        results = {'success': [], 'failed': []}
        for nomination in nominations:
            try:
                certificate = self.issue(nomination)
                results['success'].append({
                    'nominationId': str(nomination.id),
                    'nomineeName': nomination.nominee_name,
                    'certificateId': certificate.certificate_id,
                })
            except (OSError, SQLAlchemyError) as e:
                db.session.rollback()
                logger.error(f"Bulk certificate generation failed for {nomination.id}: {e}", exc_info=True)
                results['failed'].append({
                    'nominationId': str(nomination.id),
                    'nomineeName': nomination.nominee_name,
                    'error': str(e),
                })
        return results

    # Signature management

    def signature_path(self) -> Optional[Path]:
        info = self.signature_info()
        if not info:
            return None
        path = self.signatures_dir / info['filename']
        return path if path.is_file() else None

    def signature_info(self) -> Optional[Dict[str, Any]]:
        info_path = self.signatures_dir / self.SIGNATURE_INFO
        if not info_path.is_file():
            return None
        return json.loads(info_path.read_text(encoding='utf-8'))

    def save_signature(self, upload: FileStorage, uploaded_by: Optional[str] = None) -> Dict[str, Any]:
        extension = Path(upload.filename or '').suffix.lower()
        if extension not in current_app.config['SIGNATURE_EXTENSIONS']:
            raise StorageError("Signature must be a PNG or JPEG image")

        content = upload.read()
        min_size = current_app.config['SIGNATURE_MIN_BYTES']
        max_size = current_app.config['MAX_CONTENT_LENGTH']
        if len(content) < min_size:
            raise StorageError("Signature image is too small (minimum 1KB)")
        if len(content) > max_size:
            raise StorageError("Signature image is too large (maximum 5MB)")

        upload.stream.seek(0)
        try:
            Image.open(upload.stream).verify()
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise StorageError("Signature file is not a valid image")

        self.delete_signature(missing_ok=True)
        filename = f"signature{extension}"
        (self.signatures_dir / filename).write_bytes(content)

        info = {
            'filename': filename,
            'originalName': upload.filename,
            'size': len(content),
            'uploadedAt': utcnow().isoformat(),
            'uploadedBy': uploaded_by,
        }
        (self.signatures_dir / self.SIGNATURE_INFO).write_text(json.dumps(info), encoding='utf-8')
        logger.info(f"Certificate signature updated by {uploaded_by}")
        return info

    def delete_signature(self, missing_ok: bool = False) -> None:
        info = self.signature_info()
        if info is None:
            if missing_ok:
                return
            raise NotFoundError("No signature has been uploaded")
        (self.signatures_dir / info['filename']).unlink(missing_ok=True)
        (self.signatures_dir / self.SIGNATURE_INFO).unlink(missing_ok=True)


def _current_certificates() -> CertificateService:
    return current_app.extensions['certificates']


certificate_service = LocalProxy(_current_certificates)
