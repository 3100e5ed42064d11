# api/schemas.py
"""
Request validation schemas

Bodies arrive as camelCase JSON or as multipart forms; every schema accepts
camelCase aliases and snake_case names alike.
"""

import json
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from flask import request
from pydantic import (
    AliasChoices, BaseModel, ConfigDict, EmailStr, Field, ValidationError,
    field_validator, model_validator
)
from pydantic.alias_generators import to_camel

from core.database_models import (
    AVAILABILITY, CATEGORY_ICON_NAMES, CONTACT_STATUSES, CURRENCIES,
    INQUIRY_STATUSES, NEWSLETTER_SOURCES, NOMINATION_STATUSES,
    PARTNERSHIP_STATUSES, PREFERRED_CONTACT, PRICE_TYPES, PRODUCT_CATEGORIES,
    PROJECT_CATEGORIES, PROJECT_STATUSES, QUOTE_BUDGETS, QUOTE_STATUSES,
    QUOTE_TIMELINES, SERVICE_CATEGORIES, SERVICE_PRICE_TYPES, SERVICE_STATUSES,
    USER_ROLES, normalize_email
)
from core.exceptions import ValidationFailed

SchemaT = TypeVar('SchemaT', bound=BaseModel)

PHONE_PATTERN = r'^[+]?[0-9\s\-()]{10,15}$'
SAFE_NAME_PATTERN = r'^[^<>"\'&]*$'


class RequestSchema(BaseModel):
    """Base for every request body"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore',
    )

    @model_validator(mode='before')
    @classmethod
    def blank_strings_to_none(cls, data: Any) -> Any:
        # Empty form fields mean "not provided"
        if isinstance(data, dict):
            return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}
        return data


def request_data() -> Dict[str, Any]:
    """
    Body of the current request as a dict

    Multipart fields holding JSON arrays or objects (technicalSpecs, tags...)
    are decoded so forms and JSON bodies validate the same way.
    """
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}

    data = {}
    for key, value in request.form.items():
        stripped = value.strip()
        if stripped[:1] in ('[', '{'):
            try:
                value = json.loads(stripped)
            except ValueError:
                pass
        data[key] = value
    return data


def parse_payload(schema: Type[SchemaT], data: Optional[Dict[str, Any]] = None) -> SchemaT:
    """Validate data against schema, raising ValidationFailed with per-field errors"""
    if data is None:
        data = request_data()
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(errors=validation_errors(e))


def _accepted_keys(name: str, field) -> set:
    keys = {name}
    if field.alias:
        keys.add(field.alias)
    validation_alias = field.validation_alias
    if isinstance(validation_alias, str):
        keys.add(validation_alias)
    elif isinstance(validation_alias, AliasChoices):
        keys.update(choice for choice in validation_alias.choices if isinstance(choice, str))
    return keys


def merge_update(schema: Type[BaseModel], current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay a partial update on the stored values of a record

    ``current`` is the record's camelCase ``to_dict()``; ``changes`` may use
    any spelling the schema accepts. Every stored spelling of a field that
    the update touches is dropped first, so the new value always wins.
    """
    merged = dict(current)
    for name, field in schema.model_fields.items():
        keys = _accepted_keys(name, field)
        if keys & changes.keys():
            for key in keys:
                merged.pop(key, None)
    merged.update(changes)
    return merged


def validation_errors(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            'field': '.'.join(str(part) for part in error['loc']) or 'body',
            'message': error['msg'],
        }
        for error in exc.errors()
    ]


# ---------------------------------------------------------------------------
# Users and auth
# ---------------------------------------------------------------------------

class SignupSchema(RequestSchema):
    name: str = Field(..., min_length=2, max_length=50, pattern=SAFE_NAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    marketing_consent: bool = False

    @field_validator('email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class LoginSchema(RequestSchema):
    email: EmailStr
    password: str = Field(..., min_length=1)
    totp_code: Optional[str] = Field(None, max_length=10)

    @field_validator('email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class ProfileUpdateSchema(RequestSchema):
    name: Optional[str] = Field(None, min_length=2, max_length=50, pattern=SAFE_NAME_PATTERN)
    email: Optional[EmailStr] = None
    marketing_consent: Optional[bool] = None

    @field_validator('email')
    @classmethod
    def lower_email(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value else value


class PasswordChangeSchema(RequestSchema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class PasswordResetRequestSchema(RequestSchema):
    email: EmailStr

    @field_validator('email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class PasswordResetSchema(RequestSchema):
    email: EmailStr
    verification_code: str = Field(
        ..., pattern=r'^\d{6}$',
        validation_alias=AliasChoices('verificationCode', 'verification_code', 'code'),
    )
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator('email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class TwoFactorCodeSchema(RequestSchema):
    code: str = Field(..., min_length=6, max_length=10)


class DisableTwoFactorSchema(RequestSchema):
    password: str = Field(..., min_length=1)
    code: str = Field(..., min_length=6, max_length=10)


class RoleUpdateSchema(RequestSchema):
    role: Literal[USER_ROLES]


class UserStatusSchema(RequestSchema):
    is_active: bool


# ---------------------------------------------------------------------------
# Awards
# ---------------------------------------------------------------------------

class CategorySchema(RequestSchema):
    name: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=10, max_length=500)
    icon: str = Field('🏆', max_length=10)
    icon_name: Literal[CATEGORY_ICON_NAMES] = 'trophy'
    is_active: bool = True


class NominationSchema(RequestSchema):
    nominee_name: str = Field(..., min_length=2, max_length=100)
    nominee_title: Optional[str] = Field(None, max_length=150)
    nominee_company: Optional[str] = Field(None, max_length=100)
    nominee_country: str = Field('Uganda', max_length=100)
    category: str = Field(..., description="Award category id")
    nomination_reason: str = Field(..., min_length=50, max_length=1000)
    achievements: Optional[str] = Field(None, max_length=1500)
    impact_description: Optional[str] = Field(None, max_length=1000)
    nominator_name: str = Field(..., min_length=2, max_length=100)
    nominator_email: EmailStr
    nominator_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    nominator_organization: Optional[str] = Field(None, max_length=100)

    @field_validator('nominator_email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('nominee_country', mode='before')
    @classmethod
    def default_country(cls, value: Any) -> Any:
        return value or 'Uganda'


class NominationUpdateSchema(NominationSchema):
    featured: bool = False
    display_order: int = Field(0, ge=0)


class VoteSchema(RequestSchema):
    voter_email: EmailStr
    voter_name: Optional[str] = Field(None, max_length=100)

    @field_validator('voter_email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class StatusUpdateSchema(RequestSchema):
    status: Literal[NOMINATION_STATUSES]
    admin_notes: Optional[str] = Field(None, max_length=500)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class ProductPrice(RequestSchema):
    amount: Optional[float] = Field(None, ge=0)
    currency: Literal[CURRENCIES] = 'USD'
    type: Literal[PRICE_TYPES] = 'contact-for-price'


class TechnicalSpec(RequestSchema):
    name: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., min_length=1, max_length=200)


class ProductSchema(RequestSchema):
    name: str = Field(..., min_length=2, max_length=100)
    short_description: str = Field(..., min_length=1, max_length=200)
    technical_description: str = Field(..., min_length=1, max_length=1000)
    technical_specs: List[TechnicalSpec] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    image: Optional[str] = Field(None, max_length=500)
    category: Literal[PRODUCT_CATEGORIES]
    price: ProductPrice = Field(default_factory=ProductPrice)
    availability: Literal[AVAILABILITY] = 'in-stock'
    tags: List[str] = Field(default_factory=list)
    display_order: int = Field(0, ge=0)
    is_active: bool = True
    is_featured: bool = False


class ServicePrice(RequestSchema):
    starting_price: Optional[float] = Field(None, ge=0)
    currency: Literal[CURRENCIES] = 'USD'
    price_type: Literal[SERVICE_PRICE_TYPES] = 'custom'


class Technology(RequestSchema):
    name: str = Field(..., min_length=1, max_length=100)
    level: Optional[str] = Field(None, max_length=50)


class ServiceSchema(RequestSchema):
    title: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    long_description: Optional[str] = Field(None, max_length=5000)
    icon: Optional[str] = Field(None, max_length=100)
    category: Literal[SERVICE_CATEGORIES]
    price: ServicePrice = Field(default_factory=ServicePrice)
    features: List[str] = Field(default_factory=list)
    technologies: List[Technology] = Field(default_factory=list)
    duration: Optional[str] = Field(None, max_length=100)
    images: List[str] = Field(default_factory=list)
    status: Literal[SERVICE_STATUSES] = 'active'
    featured: bool = False
    display_order: int = Field(0, ge=0, validation_alias=AliasChoices('order', 'displayOrder', 'display_order'))


class ProjectClient(RequestSchema):
    name: Optional[str] = Field(None, max_length=100)
    company: Optional[str] = Field(None, max_length=100)
    industry: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    testimonial: Optional[str] = Field(None, max_length=1000)


class ProjectFeature(RequestSchema):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class ProjectLinks(RequestSchema):
    live: Optional[str] = Field(None, max_length=500)
    github: Optional[str] = Field(None, max_length=500)
    demo: Optional[str] = Field(None, max_length=500)


class ProjectSchema(RequestSchema):
    title: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    long_description: Optional[str] = Field(None, max_length=5000)
    category: Literal[PROJECT_CATEGORIES] = 'Web Application'
    client: ProjectClient = Field(default_factory=ProjectClient)
    technologies: List[str] = Field(default_factory=list)
    features: List[ProjectFeature] = Field(default_factory=list)
    image: Optional[str] = Field(None, max_length=500)
    images: List[str] = Field(default_factory=list)
    links: ProjectLinks = Field(default_factory=ProjectLinks)
    status: Literal[PROJECT_STATUSES] = 'completed'
    featured: bool = False
    display_order: int = Field(0, ge=0, validation_alias=AliasChoices('order', 'displayOrder', 'display_order'))


class PartnerSchema(RequestSchema):
    name: str = Field(..., min_length=2, max_length=100)
    logo: Optional[str] = Field(None, max_length=500)
    website: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    display_order: int = Field(0, ge=0, validation_alias=AliasChoices('order', 'displayOrder', 'display_order'))


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------

class ContactSchema(RequestSchema):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    message: str = Field(..., min_length=10, max_length=1000)

    @field_validator('email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class NewsletterSchema(RequestSchema):
    email: EmailStr
    source: Literal[NEWSLETTER_SOURCES] = 'website'

    @field_validator('email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class ProductInquirySchema(RequestSchema):
    product_id: str
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    preferred_contact: Literal[PREFERRED_CONTACT] = 'email'
    message: Optional[str] = Field(None, max_length=1000)

    @field_validator('customer_email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)

    @model_validator(mode='after')
    def phone_when_requested(self):
        if self.preferred_contact in ('phone', 'both') and not self.customer_phone:
            raise ValueError('Phone number is required for the selected contact method')
        return self


class ServiceQuoteSchema(RequestSchema):
    service_id: Optional[str] = None
    service_name: str = Field(..., min_length=2, max_length=100)
    customer_name: str = Field(..., min_length=2, max_length=100)
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = Field(None, max_length=100)
    preferred_contact: Literal[PREFERRED_CONTACT] = 'email'
    project_details: str = Field(..., min_length=10, max_length=2000)
    budget: Optional[Literal[QUOTE_BUDGETS]] = None
    timeline: Optional[Literal[QUOTE_TIMELINES]] = None

    @field_validator('customer_email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


class PartnershipRequestSchema(RequestSchema):
    company_name: str = Field(..., min_length=2, max_length=100)
    contact_email: EmailStr
    contact_person: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=500)
    description: str = Field(..., min_length=10, max_length=2000)

    @field_validator('contact_email')
    @classmethod
    def lower_email(cls, value: str) -> str:
        return normalize_email(value)


LEAD_STATUSES = {
    'contacts': CONTACT_STATUSES,
    'inquiries': INQUIRY_STATUSES,
    'quotes': QUOTE_STATUSES,
    'partnership-requests': PARTNERSHIP_STATUSES,
}


class LeadStatusSchema(RequestSchema):
    status: str
    admin_notes: Optional[str] = Field(None, max_length=500)
