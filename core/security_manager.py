# core/security_manager.py
"""
Security Manager for the site backend
Implements:
- Password hashing and verification (PBKDF2)
- Encryption of sensitive fields such as 2FA secrets (Fernet)
- TOTP two-factor authentication
- Threat detection for public form input
- Audit logging of security events
"""

import base64
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pyotp
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import current_app, has_request_context, request, session
from werkzeug.local import LocalProxy

from core.database_models import utcnow

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('security.audit')

PASSWORD_SCHEME = 'pbkdf2_sha256'


class ThreatLevel(Enum):
    """Security threat levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class SecurityViolation:
    """Security violation record"""
    timestamp: datetime
    violation_type: str
    severity: ThreatLevel
    description: str
    source_ip: Optional[str]
    details: Dict[str, Any]


class SecurityManager:
    """
    Security services bound to one Flask application
    """

    # Patterns that never belong in names, messages or descriptions
    THREAT_PATTERNS = {
        'xss_attempt': (
            [
                r"<script[^>]*>.*?</script>",
                r"<script[^>]*>",
                r"javascript:",
                r"<[^>]+\son\w+\s*=",
                r"data:text/html",
                r"vbscript:"
            ],
            ThreatLevel.HIGH,
        ),
        'html_injection': (
            [r"<\s*(iframe|object|embed|form)\b"],
            ThreatLevel.HIGH,
        ),
        'path_traversal': (
            [r"\.\./", r"\.\.\\"],
            ThreatLevel.MEDIUM,
        ),
    }

    def __init__(self, app=None):
        """
        Initialize security manager

        Args:
            app: Flask application instance
        """
        self.app = app
        self.cipher = None
        self.hash_iterations = 200000
        self.max_login_attempts = 5
        self.lockout_duration = None
        self.reset_code_ttl = timedelta(minutes=10)
        self.totp_issuer = 'SAP Technologies'
        self.totp_window = 1

        self._compile_threat_patterns()

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        self.hash_iterations = app.config.get('PASSWORD_HASH_ITERATIONS', 200000)
        self.max_login_attempts = app.config.get('MAX_LOGIN_ATTEMPTS', 5)
        self.lockout_duration = app.config.get('ACCOUNT_LOCKOUT_DURATION')
        self.reset_code_ttl = app.config.get('PASSWORD_RESET_CODE_TTL', self.reset_code_ttl)
        self.totp_issuer = app.config.get('TOTP_ISSUER_NAME', self.totp_issuer)
        self.totp_window = app.config.get('TOTP_VALIDITY_WINDOW', 1)
        self._init_encryption(app.config['ENCRYPTION_KEY'])
        app.extensions['security_manager'] = self
        logger.info("SecurityManager initialized")

    def _init_encryption(self, master_key: str):
        """Derive the Fernet key from the configured master key"""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b'sap-technologies-field-encryption',
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(master_key.encode()))
        self.cipher = Fernet(key)

    def _compile_threat_patterns(self):
        """Compile regex patterns for threat detection"""
        self.compiled_patterns = {}
        for threat_type, (patterns, severity) in self.THREAT_PATTERNS.items():
            self.compiled_patterns[threat_type] = (
                [re.compile(pattern, re.IGNORECASE | re.DOTALL) for pattern in patterns],
                severity,
            )

    def encrypt_sensitive_data(self, data: str) -> str:
        """Encrypt sensitive data with authenticated encryption"""
        return self.cipher.encrypt(str(data).encode('utf-8')).decode('ascii')

    def decrypt_sensitive_data(self, encrypted_data: str) -> Optional[str]:
        """
        Decrypt sensitive data with integrity verification

        Returns None when the token was produced with another key or was tampered with.
        """
        try:
            return self.cipher.decrypt(encrypted_data.encode('ascii')).decode('utf-8')
        except InvalidToken:
            logger.error("Decryption failed: invalid token or rotated encryption key")
            return None

    def hash_password(self, password: str, salt: Optional[str] = None,
                      iterations: Optional[int] = None) -> str:
        """
        Hash password with a random salt

        Returns:
            Encoded hash in the form ``pbkdf2_sha256$iterations$salt$hash``
        """
        if salt is None:
            salt = secrets.token_hex(16)
        iterations = iterations or self.hash_iterations

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode(),
            iterations=iterations,
        )
        hashed = base64.b64encode(kdf.derive(password.encode())).decode()
        return f"{PASSWORD_SCHEME}${iterations}${salt}${hashed}"

    def verify_password(self, password: str, encoded: str) -> bool:
        """Verify password against an encoded hash"""
        try:
            scheme, iterations, salt, _ = encoded.split('$', 3)
        except (AttributeError, ValueError):
            return False
        if scheme != PASSWORD_SCHEME:
            return False
        computed = self.hash_password(password, salt, int(iterations))
        return hmac.compare_digest(encoded, computed)

    def generate_2fa_secret(self, account_name: str) -> Tuple[str, str]:
        """
        Generate 2FA secret and provisioning URI

        Returns:
            Tuple of (secret, otpauth_uri)
        """
        secret = pyotp.random_base32()
        totp_uri = pyotp.totp.TOTP(secret).provisioning_uri(
            name=account_name,
            issuer_name=self.totp_issuer
        )
        return secret, totp_uri

    def verify_2fa_code(self, secret: str, code: str) -> bool:
        """Verify a TOTP code within the configured window"""
        if not secret or not code:
            return False
        return pyotp.TOTP(secret).verify(str(code).strip(), valid_window=self.totp_window)

    def lockout_until(self) -> datetime:
        return utcnow() + self.lockout_duration

    def generate_reset_code(self) -> Tuple[str, str]:
        """
        Generate a 6-digit password reset code

        Returns:
            Tuple of (code, digest); only the digest is stored
        """
        code = str(secrets.randbelow(900000) + 100000)
        return code, self.hash_reset_code(code)

    @staticmethod
    def hash_reset_code(code: str) -> str:
        digest = hashes.Hash(hashes.SHA256())
        digest.update(str(code).strip().encode())
        return digest.finalize().hex()

    def verify_reset_code(self, code: str, stored_digest: Optional[str]) -> bool:
        if not code or not stored_digest:
            return False
        return hmac.compare_digest(self.hash_reset_code(code), stored_digest)

    def reset_code_expiry(self) -> datetime:
        return utcnow() + self.reset_code_ttl

    def detect_threats(self, request_data: Dict[str, Any]) -> List[SecurityViolation]:
        """
        Detect security threats in request data

        Args:
            request_data: Flat mapping of field name to submitted value

        Returns:
            List of detected security violations
        """
        violations = []
        source_ip = request.remote_addr if has_request_context() else None

        for field_name, field_value in request_data.items():
            if not isinstance(field_value, str):
                continue
            for threat_type, (patterns, severity) in self.compiled_patterns.items():
                for pattern in patterns:
                    if pattern.search(field_value):
                        violations.append(SecurityViolation(
                            timestamp=utcnow(),
                            violation_type=threat_type,
                            severity=severity,
                            description=f'{threat_type} detected in field "{field_name}"',
                            source_ip=source_ip,
                            details={
                                'field': field_name,
                                'pattern': pattern.pattern,
                                'value_excerpt': field_value[:100]
                            }
                        ))
                        break

        return violations

    def log_security_event(self, event_type: str, details: Dict[str, Any] = None):
        """
        Log security event for audit trail

        Args:
            event_type: Type of security event
            details: Additional event details
        """
        entry = {
            'event_type': event_type,
            'details': details or {},
        }
        if has_request_context():
            entry.update({
                'user_id': session.get('user_id'),
                'source_ip': request.remote_addr,
                'resource': request.endpoint,
                'action': request.method,
            })
        audit_logger.info(f"Security event {event_type}: {entry}")


def _current_security_manager() -> SecurityManager:
    return current_app.extensions['security_manager']


# Resolves to the manager of the active application
security_manager = LocalProxy(_current_security_manager)


def init_security_manager(app) -> SecurityManager:
    """Create and register the application's security manager"""
    return SecurityManager(app)
