# services/mailer.py
"""
Outgoing mail transport

Builds MIME messages and delivers them with aiosmtplib. With
MAIL_SUPPRESS_SEND enabled, messages are appended to an in-memory outbox
instead of being sent.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any, Dict, List, Optional

import aiosmtplib
from flask import current_app
from werkzeug.local import LocalProxy

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of one SMTP transaction"""
    success: bool
    response: str
    message_id: Optional[str] = None
    error: Optional[str] = None


class Mailer:
    """SMTP delivery bound to a Flask application"""

    def __init__(self, app=None):
        self.outbox: List[MIMEMultipart] = []
        self.config: Dict[str, Any] = {}
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.config = {
            'host': app.config.get('SMTP_HOST'),
            'port': app.config.get('SMTP_PORT', 465),
            'username': app.config.get('SMTP_USER'),
            'password': app.config.get('SMTP_PASSWORD'),
            'timeout': app.config.get('SMTP_TIMEOUT', 30),
            'from_address': app.config.get('MAIL_FROM'),
            'from_name': app.config.get('MAIL_FROM_NAME'),
            'domain': app.config.get('MAIL_DOMAIN', 'localhost'),
            'suppress': app.config.get('MAIL_SUPPRESS_SEND', False),
        }
        self.outbox = []
        app.extensions['mailer'] = self

    @property
    def is_configured(self) -> bool:
        return bool(self.config.get('host') and self.config.get('username') and self.config.get('password'))

    def build_message(self, recipient: str, subject: str, html: str, text: str,
                      reply_to: Optional[str] = None,
                      headers: Optional[Dict[str, str]] = None) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = formataddr((self.config.get('from_name') or '', self.config.get('from_address')))
        msg['To'] = recipient
        msg['Date'] = formatdate(localtime=True)
        msg['Message-ID'] = f"<{uuid.uuid4()}@{self.config.get('domain', 'localhost')}>"
        if reply_to:
            msg['Reply-To'] = reply_to
        for name, value in (headers or {}).items():
            msg[name] = value

        if text:
            msg.attach(MIMEText(text, 'plain', 'utf-8'))
        if html:
            msg.attach(MIMEText(html, 'html', 'utf-8'))
        return msg

    def send(self, msg: MIMEMultipart) -> DeliveryResult:
        if self.config.get('suppress'):
            self.outbox.append(msg)
            logger.debug(f"Mail suppressed, stored in outbox: {msg['Subject']} -> {msg['To']}")
            return DeliveryResult(True, '250 Message accepted (suppressed)', msg['Message-ID'])

        if not self.is_configured:
            # 530 marks it permanent so the job is not retried
            return DeliveryResult(False, '530 SMTP credentials not configured',
                                  error='SMTP credentials not configured')

        return asyncio.run(_async_send_smtp(msg, self.config))


async def _async_send_smtp(msg: MIMEMultipart, smtp_config: Dict[str, Any]) -> DeliveryResult:
    """
    Async SMTP sending; implicit TLS on 465, STARTTLS on 587
    """
    try:
        smtp = aiosmtplib.SMTP(
            hostname=smtp_config['host'],
            port=smtp_config['port'],
            timeout=smtp_config.get('timeout', 30),
            use_tls=smtp_config.get('port') == 465,
            start_tls=True if smtp_config.get('port') == 587 else None,
        )
        await smtp.connect()

        if smtp_config.get('username') and smtp_config.get('password'):
            await smtp.login(smtp_config['username'], smtp_config['password'])

        await smtp.send_message(msg)
        await smtp.quit()

        return DeliveryResult(True, '250 Message accepted', msg['Message-ID'])

    except aiosmtplib.SMTPResponseException as e:
        return DeliveryResult(False, f"{e.code} {e.message}", error=str(e))
    except (aiosmtplib.SMTPException, OSError) as e:
        # Connection level problems are transient
        return DeliveryResult(False, f"421 {e}", error=str(e))


def _current_mailer() -> Mailer:
    return current_app.extensions['mailer']


mailer = LocalProxy(_current_mailer)
