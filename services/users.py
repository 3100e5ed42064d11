# services/users.py
"""
User accounts: signup, credential checks with lockout, 2FA and profile management
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from api.schemas import (
    DisableTwoFactorSchema, LoginSchema, PasswordChangeSchema, PasswordResetRequestSchema,
    PasswordResetSchema, ProfileUpdateSchema, RoleUpdateSchema, SignupSchema, TwoFactorCodeSchema,
    UserStatusSchema, parse_payload
)
from core.database_models import (
    db, AwardCategory, Contact, NewsletterSubscriber, Nomination, NotificationLog,
    PartnershipRequest, Product, ProductInquiry, Project, Service, ServiceQuote, User,
    normalize_email, parse_uuid, utcnow
)
from core.exceptions import (
    AccountLockedError, AuthenticationError, BadRequestError, ConflictError, NotFoundError
)
from core.pagination import page_args, paginate
from core.security_manager import security_manager
from services.notifications import queue_admin_email, queue_email

logger = logging.getLogger(__name__)


class TwoFactorRequired(Exception):
    """Credentials were valid but the account needs a TOTP code"""

    def __init__(self, user: User):
        super().__init__('Two-factor authentication required')
        self.user = user


def get_user(user_id) -> User:
    user = db.session.get(User, parse_uuid(user_id, "User not found"))
    if user is None:
        raise NotFoundError("User not found")
    return user


def signup(payload: Dict[str, Any], ip_address: str = None, user_agent: str = None) -> User:
    data = parse_payload(SignupSchema, payload)
    if db.session.query(User.id).filter_by(email=data.email).first() is not None:
        raise ConflictError("Email already registered")

    user = User(
        name=data.name,
        email=data.email,
        password_hash=security_manager.hash_password(data.password),
        marketing_consent=data.marketing_consent,
        registration_ip=ip_address,
    )
    user.record_activity('Account created', ip_address, user_agent)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already registered")

    security_manager.log_security_event('signup', {'user_id': str(user.id)})
    context = {'name': user.name, 'email': user.email}
    queue_email('signup_welcome', user.email, context, related=user)
    queue_admin_email('signup_admin_alert', context, related=user)
    return user


def authenticate(payload: Dict[str, Any], ip_address: str = None, user_agent: str = None) -> User:
    """
    Check credentials, applying the failed-attempt lockout

    Raises:
        AuthenticationError: unknown e-mail, wrong password or wrong TOTP code
        AccountLockedError: too many recent failures
        TwoFactorRequired: password accepted, TOTP code missing
    """
    data = parse_payload(LoginSchema, payload)
    user = db.session.query(User).filter_by(email=data.email).first()

    if user is None or not user.is_active:
        security_manager.log_security_event('login_failed', {'reason': 'unknown_account', 'email': data.email})
        raise AuthenticationError("Invalid credentials")

    now = utcnow()
    if user.is_locked(now):
        security_manager.log_security_event('login_blocked', {'user_id': str(user.id)})
        raise AccountLockedError("Account temporarily locked due to too many failed login attempts. Try again later.")

    if not security_manager.verify_password(data.password, user.password_hash):
        _record_failure(user, now)
        raise AuthenticationError("Invalid credentials")

    if user.two_factor_enabled:
        if not data.totp_code:
            raise TwoFactorRequired(user)
        secret = security_manager.decrypt_sensitive_data(user.two_factor_secret or '')
        if not security_manager.verify_2fa_code(secret, data.totp_code):
            _record_failure(user, now)
            security_manager.log_security_event('2fa_failed', {'user_id': str(user.id)})
            raise AuthenticationError("Invalid 2FA code")

    user.failed_login_attempts = 0
    user.account_locked_until = None
    user.last_login = now
    user.last_login_ip = ip_address
    user.login_count = (user.login_count or 0) + 1
    user.record_activity('Logged in', ip_address, user_agent)
    db.session.commit()

    security_manager.log_security_event('login_success', {'user_id': str(user.id)})
    return user


def _record_failure(user: User, now) -> None:
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    user.last_failed_login = now
    if user.failed_login_attempts >= security_manager.max_login_attempts:
        user.account_locked_until = security_manager.lockout_until()
        user.failed_login_attempts = 0
        security_manager.log_security_event('account_locked', {'user_id': str(user.id)})
        logger.warning(f"Account {user.id} locked after repeated failed logins")
    db.session.commit()


def start_two_factor_setup(user: User):
    """Generate a new TOTP secret; it is only stored once verified"""
    secret, uri = security_manager.generate_2fa_secret(user.email)
    security_manager.log_security_event('2fa_setup_initiated', {'user_id': str(user.id)})
    return secret, uri


def activate_two_factor(user: User, pending_secret: Optional[str], payload: Dict[str, Any]) -> User:
    data = parse_payload(TwoFactorCodeSchema, payload)
    if not pending_secret:
        raise BadRequestError("Invalid setup session")
    if not security_manager.verify_2fa_code(pending_secret, data.code):
        raise BadRequestError("Invalid verification code")

    user.two_factor_secret = security_manager.encrypt_sensitive_data(pending_secret)
    user.two_factor_enabled = True
    user.record_activity('Enabled two-factor authentication')
    db.session.commit()
    security_manager.log_security_event('2fa_activated', {'user_id': str(user.id)})
    return user


def disable_two_factor(user: User, payload: Dict[str, Any]) -> User:
    data = parse_payload(DisableTwoFactorSchema, payload)
    if not user.two_factor_enabled:
        raise BadRequestError("Two-factor authentication is not enabled")
    if not security_manager.verify_password(data.password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    secret = security_manager.decrypt_sensitive_data(user.two_factor_secret or '')
    if not security_manager.verify_2fa_code(secret, data.code):
        raise BadRequestError("Invalid verification code")

    user.two_factor_secret = None
    user.two_factor_enabled = False
    user.record_activity('Disabled two-factor authentication')
    db.session.commit()
    security_manager.log_security_event('2fa_disabled', {'user_id': str(user.id)})
    return user


def update_profile(user: User, payload: Dict[str, Any]) -> User:
    data = parse_payload(ProfileUpdateSchema, payload)
    if data.email and data.email != user.email:
        taken = db.session.query(User.id).filter(User.email == data.email, User.id != user.id).first()
        if taken is not None:
            raise ConflictError("Email already registered")
        user.email = data.email
    if data.name:
        user.name = data.name
    if data.marketing_consent is not None:
        user.marketing_consent = data.marketing_consent
    user.record_activity('Updated profile')
    db.session.commit()
    return user


def change_password(user: User, payload: Dict[str, Any], ip_address: str = None) -> User:
    data = parse_payload(PasswordChangeSchema, payload)
    if not security_manager.verify_password(data.current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    if data.current_password == data.new_password:
        raise BadRequestError("New password must be different from the current password")

    user.password_hash = security_manager.hash_password(data.new_password)
    user.password_changed_at = utcnow()
    user.record_activity('Changed password', ip_address)
    db.session.commit()

    security_manager.log_security_event('password_changed', {'user_id': str(user.id)})
    queue_email('password_changed', user.email, {'name': user.name}, related=user)
    return user


def request_password_reset(payload: Dict[str, Any], ip_address: str = None) -> None:
    """
    E-mail a 6-digit reset code to an active account

    Unknown addresses are accepted silently; callers answer the same way
    whether or not the account exists. A new request replaces any earlier code.
    """
    data = parse_payload(PasswordResetRequestSchema, payload)
    user = find_by_email(data.email)
    if user is None or not user.is_active:
        security_manager.log_security_event('password_reset_unknown', {'email': data.email})
        return

    code, digest = security_manager.generate_reset_code()
    user.password_reset_digest = digest
    user.password_reset_expires = security_manager.reset_code_expiry()
    user.record_activity('Requested password reset', ip_address)
    db.session.commit()

    security_manager.log_security_event('password_reset_requested', {'user_id': str(user.id)})
    queue_email('password_reset_code', user.email, {
        'name': user.name,
        'code': code,
        'expires_minutes': int(security_manager.reset_code_ttl.total_seconds() // 60),
    }, related=user)


def reset_password(payload: Dict[str, Any], ip_address: str = None) -> User:
    """Set a new password from an e-mailed code; the code works once"""
    data = parse_payload(PasswordResetSchema, payload)
    user = find_by_email(data.email)
    now = utcnow()

    valid = (
        user is not None
        and user.is_active
        and user.password_reset_expires is not None
        and user.password_reset_expires > now
        and security_manager.verify_reset_code(data.verification_code, user.password_reset_digest)
    )
    if not valid:
        security_manager.log_security_event('password_reset_failed', {'email': data.email})
        raise BadRequestError("Invalid or expired verification code. Please request a new code.")

    user.password_hash = security_manager.hash_password(data.new_password)
    user.password_reset_digest = None
    user.password_reset_expires = None
    user.password_changed_at = now
    user.failed_login_attempts = 0
    user.account_locked_until = None
    user.record_activity('Reset password', ip_address)
    db.session.commit()

    security_manager.log_security_event('password_reset', {'user_id': str(user.id)})
    queue_email('password_changed', user.email, {'name': user.name}, related=user)
    return user


def deactivate(user: User) -> User:
    user.is_active = False
    user.record_activity('Account deactivated')
    db.session.commit()
    security_manager.log_security_event('account_deactivated', {'user_id': str(user.id)})
    return user


# Admin

def list_users(args) -> Dict[str, Any]:
    query = db.session.query(User)
    search = (args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    role = args.get('role')
    if role:
        query = query.filter(User.role == role)
    page, limit = page_args(args, default_limit=20)
    result_page = paginate(query.order_by(User.created_at.desc()), page, limit)
    return {
        'users': [u.to_dict(include_admin=True) for u in result_page.items],
        'pagination': result_page.meta(),
    }


def set_role(actor: User, user_id, payload: Dict[str, Any]) -> User:
    data = parse_payload(RoleUpdateSchema, payload)
    user = get_user(user_id)
    if user.id == actor.id and data.role != 'admin':
        raise BadRequestError("You cannot remove your own admin role")
    previous = user.role
    user.role = data.role
    db.session.commit()
    security_manager.log_security_event('role_changed', {
        'user_id': str(user.id), 'from': previous, 'to': data.role, 'by': str(actor.id)
    })
    return user


def set_active(actor: User, user_id, payload: Dict[str, Any]) -> User:
    data = parse_payload(UserStatusSchema, payload)
    user = get_user(user_id)
    if user.id == actor.id and not data.is_active:
        raise BadRequestError("You cannot deactivate your own account")
    user.is_active = data.is_active
    db.session.commit()
    security_manager.log_security_event('user_status_changed', {
        'user_id': str(user.id), 'is_active': data.is_active, 'by': str(actor.id)
    })
    return user


def dashboard() -> Dict[str, Any]:
    def count(model, *criteria):
        return db.session.query(func.count(model.id)).filter(*criteria).scalar()

    return {
        'users': {'total': count(User), 'active': count(User, User.is_active.is_(True))},
        'catalog': {
            'products': count(Product),
            'services': count(Service),
            'projects': count(Project),
        },
        'leads': {
            'contacts': count(Contact),
            'pendingContacts': count(Contact, Contact.status == 'pending'),
            'inquiries': count(ProductInquiry),
            'quotes': count(ServiceQuote),
            'partnershipRequests': count(PartnershipRequest),
            'newsletterSubscribers': count(NewsletterSubscriber, NewsletterSubscriber.is_active.is_(True)),
        },
        'awards': {
            'categories': count(AwardCategory),
            'nominations': count(Nomination),
            'pendingNominations': count(Nomination, Nomination.status == 'pending'),
        },
        'notifications': {
            'failed': count(NotificationLog, NotificationLog.status == 'failed'),
            'queued': count(NotificationLog, NotificationLog.status.in_(('queued', 'retrying'))),
        },
    }


def list_notifications(args) -> Dict[str, Any]:
    query = db.session.query(NotificationLog)
    for arg, column in (('status', NotificationLog.status), ('channel', NotificationLog.channel),
                        ('relatedId', NotificationLog.related_id)):
        value = args.get(arg)
        if value:
            query = query.filter(column == value)
    page, limit = page_args(args, default_limit=50)
    result_page = paginate(query.order_by(NotificationLog.created_at.desc()), page, limit)
    return {
        'notifications': [n.to_dict() for n in result_page.items],
        'pagination': result_page.meta(),
    }


def get_notification(notification_id) -> NotificationLog:
    job = db.session.get(NotificationLog, parse_uuid(notification_id, "Notification not found"))
    if job is None:
        raise NotFoundError("Notification not found")
    return job


def find_by_email(email: str) -> Optional[User]:
    return db.session.query(User).filter_by(email=normalize_email(email)).first()
