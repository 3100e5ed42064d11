from datetime import datetime, timezone
import re
import uuid

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, Text, Boolean, Float, ForeignKey,
    UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship

from core.exceptions import NotFoundError

db = SQLAlchemy()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def _str(value):
    return str(value) if value is not None else None


# Enumerations shared by models, validation schemas and the status workflow
USER_ROLES = ('user', 'admin', 'moderator')

NOMINATION_STATUSES = ('pending', 'approved', 'rejected', 'winner', 'finalist')
CERTIFICATE_TYPES = ('winner', 'finalist', 'participation')
CERTIFICATE_STATUSES = ('active', 'revoked', 'expired')
CATEGORY_ICON_NAMES = (
    'trophy', 'star', 'medal', 'crown', 'rocket', 'lightbulb', 'heart', 'users',
    'globe', 'flag', 'chart', 'shield', 'target', 'briefcase', 'sparkles',
    'check', 'clock', 'ballot'
)

PRODUCT_CATEGORIES = (
    'IoT Devices', 'Software Solutions', 'Web Applications', 'Mobile Apps',
    'Hardware', 'Electricals', 'Electronics', 'Automation', 'AI/ML Products', 'Other'
)
CURRENCIES = ('USD', 'EUR', 'GBP', 'UGX')
PRICE_TYPES = ('fixed', 'starting-from', 'contact-for-price')
AVAILABILITY = ('in-stock', 'pre-order', 'custom-order', 'discontinued')

SERVICE_CATEGORIES = (
    'Web Development', 'Mobile Development', 'IoT Solutions', 'Graphics Design',
    'Electrical Engineering', 'Other'
)
SERVICE_STATUSES = ('active', 'inactive', 'coming-soon')
SERVICE_PRICE_TYPES = ('fixed', 'hourly', 'project-based', 'custom')

PROJECT_CATEGORIES = (
    'E-commerce Platform', 'Web Application', 'Mobile App', 'IoT System',
    'Business Website', 'Dashboard', 'API Service', 'Other'
)
PROJECT_STATUSES = ('completed', 'in-progress', 'planned')

CONTACT_STATUSES = ('pending', 'read', 'replied', 'archived')
INQUIRY_STATUSES = ('new', 'contacted', 'resolved', 'closed')
QUOTE_STATUSES = ('new', 'contacted', 'quoted', 'converted', 'closed')
PARTNERSHIP_STATUSES = ('pending', 'reviewed', 'approved', 'rejected')
NEWSLETTER_SOURCES = ('website', 'social', 'referral', 'other')
PREFERRED_CONTACT = ('email', 'phone', 'both')
QUOTE_BUDGETS = (
    '< $5,000', '$5,000 - $10,000', '$10,000 - $25,000', '$25,000 - $50,000',
    '> $50,000', 'Not sure'
)
QUOTE_TIMELINES = ('ASAP', '1-2 weeks', '1 month', '2-3 months', '3+ months', 'Flexible')

NOTIFICATION_CHANNELS = ('email', 'certificate')
NOTIFICATION_STATUSES = ('queued', 'retrying', 'sent', 'completed', 'failed', 'skipped')


def parse_uuid(value, message: str) -> uuid.UUID:
    """UUID from a path or body value; malformed ids are reported as not found"""
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(message)


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def slugify(name: str, timestamp: int = None) -> str:
    """Lower-case, strip punctuation, hyphenate, cap at 50 chars and add a timestamp suffix"""
    base = re.sub(r'[^a-z0-9\s-]', '', (name or '').lower())
    base = re.sub(r'\s+', '-', base.strip())[:50]
    if timestamp is None:
        timestamp = int(utcnow().timestamp() * 1000)
    return f"{base}-{timestamp}"


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class User(TimestampMixin, db.Model):
    __tablename__ = 'users'

    ACTIVITY_LIMIT = 100
    ACTIVITY_KEEP = 50

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default='user')
    profile_pic = Column(String(500))
    is_active = Column(Boolean, nullable=False, default=True)
    marketing_consent = Column(Boolean, nullable=False, default=False)

    failed_login_attempts = Column(Integer, nullable=False, default=0)
    last_failed_login = Column(DateTime)
    account_locked_until = Column(DateTime)
    last_login = Column(DateTime)
    last_login_ip = Column(String(64))
    login_count = Column(Integer, nullable=False, default=0)
    registration_ip = Column(String(64))

    two_factor_secret = Column(Text)  # Fernet-encrypted
    two_factor_enabled = Column(Boolean, nullable=False, default=False)

    password_reset_digest = Column(String(64))  # SHA-256 of the e-mailed code
    password_reset_expires = Column(DateTime)
    password_changed_at = Column(DateTime)

    # Relationships
    activities = relationship(
        'UserActivity', back_populates='user', cascade='all, delete-orphan',
        order_by='UserActivity.created_at'
    )

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    def is_locked(self, now: datetime = None) -> bool:
        now = now or utcnow()
        return bool(self.account_locked_until and self.account_locked_until > now)

    def record_activity(self, action: str, ip_address: str = None, user_agent: str = None):
        """Append to the activity log, trimming to the newest entries once it grows past the limit"""
        self.activities.append(UserActivity(
            action=action, ip_address=ip_address, user_agent=(user_agent or '')[:255]
        ))
        if len(self.activities) >= self.ACTIVITY_LIMIT:
            for stale in list(self.activities[:-self.ACTIVITY_KEEP]):
                self.activities.remove(stale)

    def to_dict(self, include_admin: bool = False):
        data = {
            'id': _str(self.id),
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'profilePic': self.profile_pic,
            'isActive': self.is_active,
            'marketingConsent': self.marketing_consent,
            'twoFactorEnabled': self.two_factor_enabled,
            'lastLogin': _iso(self.last_login),
            'createdAt': _iso(self.created_at),
        }
        if include_admin:
            data.update({
                'loginCount': self.login_count,
                'lastLoginIp': self.last_login_ip,
                'failedLoginAttempts': self.failed_login_attempts,
                'accountLockedUntil': _iso(self.account_locked_until),
                'registrationIp': self.registration_ip,
            })
        return data


class UserActivity(db.Model):
    __tablename__ = 'user_activities'

    id = Column(Integer, primary_key=True)
    user_id = Column(Uuid, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    action = Column(String(200), nullable=False)
    ip_address = Column(String(64))
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship('User', back_populates='activities')

    def to_dict(self):
        return {
            'action': self.action,
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent,
            'timestamp': _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Product(TimestampMixin, db.Model):
    __tablename__ = 'products'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    short_description = Column(String(200), nullable=False)
    technical_description = Column(String(1000), nullable=False)
    technical_specs = Column(JSON, nullable=False, default=list)  # [{name, value}]
    features = Column(JSON, nullable=False, default=list)
    image = Column(String(500))
    category = Column(String(50), nullable=False, index=True)
    price_amount = Column(Float)
    price_currency = Column(String(3), nullable=False, default='USD')
    price_type = Column(String(30), nullable=False, default='contact-for-price')
    availability = Column(String(30), nullable=False, default='in-stock')
    tags = Column(JSON, nullable=False, default=list)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    views = Column(Integer, nullable=False, default=0)
    inquiries = Column(Integer, nullable=False, default=0)

    def to_dict(self, include_admin: bool = False):
        data = {
            'id': _str(self.id),
            'name': self.name,
            'shortDescription': self.short_description,
            'technicalDescription': self.technical_description,
            'technicalSpecs': list(self.technical_specs or []),
            'features': list(self.features or []),
            'image': self.image,
            'category': self.category,
            'price': {
                'amount': self.price_amount,
                'currency': self.price_currency,
                'type': self.price_type,
            },
            'availability': self.availability,
            'tags': list(self.tags or []),
            'displayOrder': self.display_order,
            'isFeatured': self.is_featured,
            'createdAt': _iso(self.created_at),
        }
        if include_admin:
            data.update({
                'isActive': self.is_active,
                'metadata': {'views': self.views, 'inquiries': self.inquiries},
                'updatedAt': _iso(self.updated_at),
            })
        return data


class Service(TimestampMixin, db.Model):
    __tablename__ = 'services'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False)
    long_description = Column(Text)
    icon = Column(String(100))
    category = Column(String(50), nullable=False, index=True)
    starting_price = Column(Float)
    currency = Column(String(3), nullable=False, default='USD')
    price_type = Column(String(30), nullable=False, default='custom')
    features = Column(JSON, nullable=False, default=list)
    technologies = Column(JSON, nullable=False, default=list)  # [{name, level}]
    duration = Column(String(100))
    images = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default='active')
    featured = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    inquiries = Column(Integer, nullable=False, default=0)

    def to_dict(self, include_admin: bool = False):
        data = {
            'id': _str(self.id),
            'title': self.title,
            'description': self.description,
            'longDescription': self.long_description,
            'icon': self.icon,
            'category': self.category,
            'price': {
                'startingPrice': self.starting_price,
                'currency': self.currency,
                'priceType': self.price_type,
            },
            'features': list(self.features or []),
            'technologies': list(self.technologies or []),
            'duration': self.duration,
            'images': list(self.images or []),
            'status': self.status,
            'featured': self.featured,
            'order': self.display_order,
            'createdAt': _iso(self.created_at),
        }
        if include_admin:
            data['metadata'] = {'views': self.views, 'inquiries': self.inquiries}
        return data


class Project(TimestampMixin, db.Model):
    __tablename__ = 'projects'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False)
    long_description = Column(Text)
    category = Column(String(50), nullable=False, default='Web Application', index=True)
    client = Column(JSON, nullable=False, default=dict)  # {name, company, industry, location, testimonial}
    technologies = Column(JSON, nullable=False, default=list)
    features = Column(JSON, nullable=False, default=list)  # [{title, description}]
    image = Column(String(500))
    images = Column(JSON, nullable=False, default=list)
    links = Column(JSON, nullable=False, default=dict)  # {live, github, demo}
    status = Column(String(20), nullable=False, default='completed')
    featured = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)
    inquiries = Column(Integer, nullable=False, default=0)

    def to_dict(self, include_admin: bool = False):
        data = {
            'id': _str(self.id),
            'title': self.title,
            'description': self.description,
            'longDescription': self.long_description,
            'category': self.category,
            'client': dict(self.client or {}),
            'technologies': list(self.technologies or []),
            'features': list(self.features or []),
            'image': self.image,
            'images': list(self.images or []),
            'links': dict(self.links or {}),
            'status': self.status,
            'featured': self.featured,
            'order': self.display_order,
            'likes': self.likes,
            'createdAt': _iso(self.created_at),
        }
        if include_admin:
            data['metadata'] = {'views': self.views, 'inquiries': self.inquiries}
        return data


class Partner(TimestampMixin, db.Model):
    __tablename__ = 'partners'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    logo = Column(String(500), nullable=False)
    website = Column(String(500))
    description = Column(String(500))
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)

    def to_dict(self, include_admin: bool = False):
        data = {
            'id': _str(self.id),
            'name': self.name,
            'logo': self.logo,
            'website': self.website,
            'description': self.description,
            'order': self.display_order,
        }
        if include_admin:
            data['isActive'] = self.is_active
        return data


# ---------------------------------------------------------------------------
# Awards
# ---------------------------------------------------------------------------

class AwardCategory(TimestampMixin, db.Model):
    __tablename__ = 'award_categories'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(500), nullable=False)
    icon = Column(String(10), nullable=False, default='🏆')
    icon_name = Column(String(20), nullable=False, default='trophy')
    is_active = Column(Boolean, nullable=False, default=True)

    # No delete cascade; a category with nominations cannot be removed
    nominations = relationship('Nomination', back_populates='category', passive_deletes='all')

    def to_dict(self, counts: dict = None):
        data = {
            'id': _str(self.id),
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'iconName': self.icon_name,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
        }
        if counts is not None:
            data.update(counts)
        return data


class Nomination(TimestampMixin, db.Model):
    __tablename__ = 'nominations'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Nominee
    nominee_name = Column(String(100), nullable=False)
    nominee_photo = Column(String(500), nullable=False)
    nominee_title = Column(String(150))
    nominee_company = Column(String(100))
    nominee_country = Column(String(100), nullable=False, default='Uganda')

    category_id = Column(Uuid, ForeignKey('award_categories.id'), nullable=False, index=True)

    nomination_reason = Column(String(1000), nullable=False)
    achievements = Column(String(1500))
    impact_description = Column(String(1000))

    # Nominator
    nominator_name = Column(String(100), nullable=False)
    nominator_email = Column(String(255), nullable=False)
    nominator_phone = Column(String(20))
    nominator_organization = Column(String(100))

    # Workflow
    status = Column(String(20), nullable=False, default='pending', index=True)
    votes = Column(Integer, nullable=False, default=0)  # always COUNT(votes rows)
    admin_notes = Column(String(500))
    reviewed_by_id = Column(Uuid, ForeignKey('users.id', ondelete='SET NULL'))
    reviewed_at = Column(DateTime)

    # Display
    slug = Column(String(80), unique=True, index=True)
    featured = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)

    # Certificate
    certificate_id = Column(String(40), unique=True)
    certificate_file = Column(String(255))
    certificate_url = Column(String(500))
    certificate_generated_at = Column(DateTime)

    # Relationships
    category = relationship('AwardCategory', back_populates='nominations')
    reviewed_by = relationship('User')
    public_votes = relationship(
        'Vote', back_populates='nomination', cascade='all, delete-orphan'
    )

    @property
    def nominee_display_name(self) -> str:
        parts = [self.nominee_name]
        if self.nominee_title:
            parts.append(f" - {self.nominee_title}")
        if self.nominee_company:
            parts.append(f" at {self.nominee_company}")
        return ''.join(parts)

    def has_voted(self, email: str) -> bool:
        return db.session.query(Vote.id).filter_by(
            nomination_id=self.id, voter_email=normalize_email(email)
        ).first() is not None

    def to_dict(self, include_admin: bool = False):
        data = {
            'id': _str(self.id),
            'nomineeName': self.nominee_name,
            'nomineePhoto': self.nominee_photo,
            'nomineeTitle': self.nominee_title,
            'nomineeCompany': self.nominee_company,
            'nomineeCountry': self.nominee_country,
            'nomineeDisplayName': self.nominee_display_name,
            'category': {
                'id': _str(self.category_id),
                'name': self.category.name if self.category else None,
                'icon': self.category.icon if self.category else None,
            },
            'nominationReason': self.nomination_reason,
            'achievements': self.achievements,
            'impactDescription': self.impact_description,
            'nominatorName': self.nominator_name,
            'status': self.status,
            'votes': self.votes,
            'slug': self.slug,
            'featured': self.featured,
            'displayOrder': self.display_order,
            'certificateId': self.certificate_id,
            'certificateUrl': self.certificate_url,
            'createdAt': _iso(self.created_at),
        }
        if include_admin:
            data.update({
                'nominatorEmail': self.nominator_email,
                'nominatorPhone': self.nominator_phone,
                'nominatorOrganization': self.nominator_organization,
                'adminNotes': self.admin_notes,
                'reviewedBy': _str(self.reviewed_by_id),
                'reviewedAt': _iso(self.reviewed_at),
                'certificateFile': self.certificate_file,
                'certificateGeneratedAt': _iso(self.certificate_generated_at),
                'updatedAt': _iso(self.updated_at),
            })
        return data


class Vote(db.Model):
    """One public vote; the unique constraint is what makes votes race-free"""
    __tablename__ = 'votes'
    __table_args__ = (
        UniqueConstraint('nomination_id', 'voter_email', name='uq_vote_nomination_email'),
    )

    id = Column(Integer, primary_key=True)
    nomination_id = Column(Uuid, ForeignKey('nominations.id', ondelete='CASCADE'), nullable=False, index=True)
    voter_email = Column(String(255), nullable=False)
    voter_name = Column(String(100))
    ip_address = Column(String(64))
    voted_at = Column(DateTime, default=utcnow, nullable=False)

    nomination = relationship('Nomination', back_populates='public_votes')


class Certificate(TimestampMixin, db.Model):
    __tablename__ = 'certificates'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    certificate_id = Column(String(40), nullable=False, unique=True, index=True)
    nomination_id = Column(Uuid, ForeignKey('nominations.id', ondelete='SET NULL'), index=True)
    recipient_name = Column(String(100), nullable=False)
    recipient_email = Column(String(255))
    category_name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    award_year = Column(String(4), nullable=False)
    issue_date = Column(DateTime, default=utcnow, nullable=False)
    filename = Column(String(255), nullable=False)
    verification_url = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False, default='active')
    verification_count = Column(Integer, nullable=False, default=0)
    last_verified_at = Column(DateTime)
    metadata_json = Column('metadata', JSON, nullable=False, default=dict)

    def record_verification(self):
        self.verification_count = (self.verification_count or 0) + 1
        self.last_verified_at = utcnow()

    def to_dict(self, include_admin: bool = False):
        data = {
            'certificateId': self.certificate_id,
            'recipientName': self.recipient_name,
            'categoryName': self.category_name,
            'type': self.type,
            'awardYear': self.award_year,
            'issueDate': _iso(self.issue_date),
            'verificationUrl': self.verification_url,
            'status': self.status,
            'verificationCount': self.verification_count,
        }
        if include_admin:
            data.update({
                'nominationId': _str(self.nomination_id),
                'recipientEmail': self.recipient_email,
                'filename': self.filename,
                'lastVerifiedAt': _iso(self.last_verified_at),
                'metadata': dict(self.metadata_json or {}),
            })
        return data


# ---------------------------------------------------------------------------
# Lead capture
# ---------------------------------------------------------------------------

class Contact(TimestampMixin, db.Model):
    __tablename__ = 'contacts'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    status = Column(String(20), nullable=False, default='pending')
    admin_notes = Column(String(500))
    ip_address = Column(String(64))
    user_agent = Column(String(255))

    def to_dict(self):
        return {
            'id': _str(self.id),
            'name': self.name,
            'email': self.email,
            'message': self.message,
            'status': self.status,
            'adminNotes': self.admin_notes,
            'ipAddress': self.ip_address,
            'createdAt': _iso(self.created_at),
        }


class NewsletterSubscriber(TimestampMixin, db.Model):
    __tablename__ = 'newsletter_subscribers'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    subscribed_at = Column(DateTime, default=utcnow, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    unsubscribed_at = Column(DateTime)
    source = Column(String(20), nullable=False, default='website')

    def to_dict(self):
        return {
            'id': _str(self.id),
            'email': self.email,
            'isActive': self.is_active,
            'source': self.source,
            'subscribedAt': _iso(self.subscribed_at),
            'unsubscribedAt': _iso(self.unsubscribed_at),
        }


class ProductInquiry(TimestampMixin, db.Model):
    __tablename__ = 'product_inquiries'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey('products.id', ondelete='SET NULL'), index=True)
    product_name = Column(String(100), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(20))
    preferred_contact = Column(String(10), nullable=False, default='email')
    message = Column(String(1000))
    status = Column(String(20), nullable=False, default='new', index=True)
    admin_notes = Column(String(500))
    ip_address = Column(String(64))
    user_agent = Column(String(255))

    def to_dict(self):
        return {
            'id': _str(self.id),
            'productId': _str(self.product_id),
            'productName': self.product_name,
            'customerEmail': self.customer_email,
            'customerPhone': self.customer_phone,
            'preferredContact': self.preferred_contact,
            'message': self.message,
            'status': self.status,
            'adminNotes': self.admin_notes,
            'createdAt': _iso(self.created_at),
        }


class ServiceQuote(TimestampMixin, db.Model):
    __tablename__ = 'service_quotes'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_id = Column(Uuid, ForeignKey('services.id', ondelete='SET NULL'), index=True)
    service_name = Column(String(100), nullable=False)
    customer_name = Column(String(100), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(20))
    company_name = Column(String(100))
    preferred_contact = Column(String(10), nullable=False, default='email')
    project_details = Column(String(2000), nullable=False)
    budget = Column(String(30))
    timeline = Column(String(30))
    user_id = Column(Uuid, ForeignKey('users.id', ondelete='SET NULL'))
    status = Column(String(20), nullable=False, default='new', index=True)
    admin_notes = Column(String(500))

    def to_dict(self):
        return {
            'id': _str(self.id),
            'serviceId': _str(self.service_id),
            'serviceName': self.service_name,
            'customerName': self.customer_name,
            'customerEmail': self.customer_email,
            'customerPhone': self.customer_phone,
            'companyName': self.company_name,
            'preferredContact': self.preferred_contact,
            'projectDetails': self.project_details,
            'budget': self.budget,
            'timeline': self.timeline,
            'status': self.status,
            'adminNotes': self.admin_notes,
            'createdAt': _iso(self.created_at),
        }


class PartnershipRequest(TimestampMixin, db.Model):
    __tablename__ = 'partnership_requests'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_name = Column(String(100), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_person = Column(String(100))
    website = Column(String(500))
    description = Column(String(2000), nullable=False)
    status = Column(String(20), nullable=False, default='pending', index=True)
    admin_notes = Column(String(500))

    def to_dict(self):
        return {
            'id': _str(self.id),
            'companyName': self.company_name,
            'contactEmail': self.contact_email,
            'contactPerson': self.contact_person,
            'website': self.website,
            'description': self.description,
            'status': self.status,
            'adminNotes': self.admin_notes,
            'createdAt': _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Background side effects
# ---------------------------------------------------------------------------

class NotificationLog(TimestampMixin, db.Model):
    """Durable record of a background e-mail or certificate job"""
    __tablename__ = 'notification_logs'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    channel = Column(String(20), nullable=False, default='email')
    template = Column(String(60), nullable=False)
    recipient = Column(String(255))
    subject = Column(String(255))
    context = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default='queued', index=True)
    attempts = Column(Integer, nullable=False, default=0)
    smtp_response_code = Column(String(10))
    last_error = Column(Text)
    related_type = Column(String(40))
    related_id = Column(String(64), index=True)
    task_id = Column(String(64))
    sent_at = Column(DateTime)

    def mark(self, status: str, error: str = None):
        self.status = status
        if error is not None:
            self.last_error = error[:2000]
        if status in ('sent', 'completed'):
            self.sent_at = utcnow()

    def to_dict(self):
        return {
            'id': _str(self.id),
            'channel': self.channel,
            'template': self.template,
            'recipient': self.recipient,
            'subject': self.subject,
            'status': self.status,
            'attempts': self.attempts,
            'smtpResponseCode': self.smtp_response_code,
            'lastError': self.last_error,
            'relatedType': self.related_type,
            'relatedId': self.related_id,
            'sentAt': _iso(self.sent_at),
            'createdAt': _iso(self.created_at),
        }
