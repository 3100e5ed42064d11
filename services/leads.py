# services/leads.py
"""
Lead capture: contact messages, newsletter, product inquiries, service quotes
and partnership requests
"""

import logging
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import func

from api.schemas import (
    LEAD_STATUSES, ContactSchema, LeadStatusSchema, NewsletterSchema,
    PartnershipRequestSchema, ProductInquirySchema, ServiceQuoteSchema, parse_payload
)
from core.database_models import (
    db, Contact, NewsletterSubscriber, PartnershipRequest, Product, ProductInquiry,
    Service, ServiceQuote, User, normalize_email, parse_uuid, utcnow
)
from core.exceptions import BadRequestError, NotFoundError, ValidationFailed
from core.pagination import page_args, paginate
from services.notifications import queue_admin_email, queue_email

logger = logging.getLogger(__name__)

LEAD_MODELS = {
    'contacts': (Contact, 'Contact message'),
    'inquiries': (ProductInquiry, 'Inquiry'),
    'quotes': (ServiceQuote, 'Quote request'),
    'partnership-requests': (PartnershipRequest, 'Partnership request'),
}


def submit_contact(payload: Dict[str, Any], ip_address: str = None, user_agent: str = None) -> Contact:
    data = parse_payload(ContactSchema, payload)
    contact = Contact(
        name=data.name,
        email=data.email,
        message=data.message,
        ip_address=ip_address,
        user_agent=(user_agent or '')[:255],
    )
    db.session.add(contact)
    db.session.commit()
    logger.info(f"Contact message {contact.id} received from {contact.email}")

    context = {'name': contact.name, 'email': contact.email, 'message': contact.message,
               'reply_to': contact.email}
    queue_admin_email('contact_admin', context, related=contact)
    queue_email('contact_confirmation', contact.email, context, related=contact)
    return contact


def subscribe(payload: Dict[str, Any]):
    """
    Subscribe an address to the newsletter

    Returns:
        (subscriber, outcome) where outcome is 'existing', 'reactivated' or 'created'
    """
    data = parse_payload(NewsletterSchema, payload)
    subscriber = db.session.query(NewsletterSubscriber).filter_by(email=data.email).first()

    if subscriber is not None and subscriber.is_active:
        return subscriber, 'existing'

    if subscriber is not None:
        subscriber.is_active = True
        subscriber.unsubscribed_at = None
        subscriber.subscribed_at = utcnow()
        db.session.commit()
        logger.info(f"Newsletter subscription reactivated for {subscriber.email}")
        return subscriber, 'reactivated'

    subscriber = NewsletterSubscriber(email=data.email, source=data.source)
    db.session.add(subscriber)
    db.session.commit()
    logger.info(f"New newsletter subscriber {subscriber.email}")

    site_url = current_app.config.get('FRONTEND_URL', '').rstrip('/')
    queue_email('newsletter_welcome', subscriber.email,
                {'unsubscribe_url': f"{site_url}/newsletter/unsubscribe?email={subscriber.email}"},
                related=subscriber)
    return subscriber, 'created'


def unsubscribe(email: Optional[str]) -> NewsletterSubscriber:
    email = normalize_email(email)
    if not email:
        raise ValidationFailed(errors=[{'field': 'email', 'message': 'Email is required'}])
    subscriber = db.session.query(NewsletterSubscriber).filter_by(email=email).first()
    if subscriber is None:
        raise NotFoundError("Email not found in our subscription list")
    subscriber.is_active = False
    subscriber.unsubscribed_at = utcnow()
    db.session.commit()
    logger.info(f"Newsletter unsubscribe for {email}")
    return subscriber


def newsletter_stats() -> Dict[str, int]:
    total = db.session.query(func.count(NewsletterSubscriber.id)).scalar()
    active = db.session.query(func.count(NewsletterSubscriber.id)).filter_by(is_active=True).scalar()
    return {'total': total, 'active': active, 'unsubscribed': total - active}


def submit_inquiry(payload: Dict[str, Any], ip_address: str = None, user_agent: str = None) -> ProductInquiry:
    data = parse_payload(ProductInquirySchema, payload)
    product = db.session.get(Product, parse_uuid(data.product_id, "Product not found"))
    if product is None or not product.is_active:
        raise NotFoundError("Product not found")

    inquiry = ProductInquiry(
        product_id=product.id,
        product_name=product.name,
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        preferred_contact=data.preferred_contact,
        message=data.message,
        ip_address=ip_address,
        user_agent=(user_agent or '')[:255],
    )
    product.inquiries = (product.inquiries or 0) + 1
    db.session.add(inquiry)
    db.session.commit()
    logger.info(f"Product inquiry {inquiry.id} for {product.name}")

    context = {
        'product_name': inquiry.product_name,
        'customer_email': inquiry.customer_email,
        'customer_phone': inquiry.customer_phone,
        'preferred_contact': inquiry.preferred_contact,
        'message': inquiry.message,
        'reply_to': inquiry.customer_email,
    }
    queue_admin_email('product_inquiry_admin', context, related=inquiry)
    queue_email('product_inquiry_confirmation', inquiry.customer_email, context, related=inquiry)
    return inquiry


def submit_quote(payload: Dict[str, Any], user: Optional[User] = None) -> ServiceQuote:
    data = parse_payload(ServiceQuoteSchema, payload)
    service = None
    if data.service_id:
        service = db.session.get(Service, parse_uuid(data.service_id, "Service not found"))
        if service is None:
            raise NotFoundError("Service not found")

    quote = ServiceQuote(
        service_id=service.id if service else None,
        service_name=service.title if service else data.service_name,
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        company_name=data.company_name,
        preferred_contact=data.preferred_contact,
        project_details=data.project_details,
        budget=data.budget,
        timeline=data.timeline,
        user_id=user.id if user is not None else None,
    )
    if service is not None:
        service.inquiries = (service.inquiries or 0) + 1
    db.session.add(quote)
    db.session.commit()
    logger.info(f"Quote request {quote.id} for {quote.service_name}")

    context = {
        'service_name': quote.service_name,
        'customer_name': quote.customer_name,
        'customer_email': quote.customer_email,
        'company_name': quote.company_name,
        'budget': quote.budget,
        'timeline': quote.timeline,
        'project_details': quote.project_details,
        'reply_to': quote.customer_email,
    }
    queue_admin_email('service_quote_admin', context, related=quote)
    queue_email('service_quote_confirmation', quote.customer_email, context, related=quote)
    return quote


def submit_partnership(payload: Dict[str, Any]) -> PartnershipRequest:
    data = parse_payload(PartnershipRequestSchema, payload)
    partnership = PartnershipRequest(
        company_name=data.company_name,
        contact_email=data.contact_email,
        contact_person=data.contact_person,
        website=data.website,
        description=data.description,
    )
    db.session.add(partnership)
    db.session.commit()
    logger.info(f"Partnership request {partnership.id} from {partnership.company_name}")

    context = {
        'company_name': partnership.company_name,
        'contact_email': partnership.contact_email,
        'contact_person': partnership.contact_person,
        'website': partnership.website,
        'description': partnership.description,
        'reply_to': partnership.contact_email,
    }
    queue_admin_email('partnership_admin', context, related=partnership)
    queue_email('partnership_confirmation', partnership.contact_email, context, related=partnership)
    return partnership


# Admin

def _lead_model(kind: str):
    if kind not in LEAD_MODELS:
        raise NotFoundError(f"Unknown lead type: {kind}")
    return LEAD_MODELS[kind]


def get_lead(kind: str, lead_id):
    model, label = _lead_model(kind)
    lead = db.session.get(model, parse_uuid(lead_id, f"{label} not found"))
    if lead is None:
        raise NotFoundError(f"{label} not found")
    return lead


def list_leads(kind: str, args) -> Dict[str, Any]:
    model, _ = _lead_model(kind)
    query = db.session.query(model)
    status = args.get('status')
    if status:
        query = query.filter(model.status == status)
    page, limit = page_args(args, default_limit=20)
    result_page = paginate(query.order_by(model.created_at.desc()), page, limit)
    return {
        'items': [lead.to_dict() for lead in result_page.items],
        'pagination': result_page.meta(),
    }


def update_lead_status(kind: str, lead_id, payload: Dict[str, Any]):
    data = parse_payload(LeadStatusSchema, payload)
    allowed = LEAD_STATUSES[kind] if kind in LEAD_STATUSES else ()
    lead = get_lead(kind, lead_id)
    if data.status not in allowed:
        raise BadRequestError(f"Invalid status. Must be one of: {', '.join(allowed)}")
    lead.status = data.status
    if data.admin_notes is not None:
        lead.admin_notes = data.admin_notes
    db.session.commit()
    logger.info(f"{kind} {lead.id} status set to {data.status}")
    return lead


def delete_lead(kind: str, lead_id) -> None:
    lead = get_lead(kind, lead_id)
    db.session.delete(lead)
    db.session.commit()
    logger.info(f"{kind} {lead_id} deleted")


def inquiry_stats() -> Dict[str, Any]:
    by_status = dict(
        db.session.query(ProductInquiry.status, func.count(ProductInquiry.id))
        .group_by(ProductInquiry.status).all()
    )
    top_products = db.session.query(
        ProductInquiry.product_name, func.count(ProductInquiry.id).label('count')
    ).group_by(ProductInquiry.product_name).order_by(func.count(ProductInquiry.id).desc()).limit(5).all()
    return {
        'total': sum(by_status.values()),
        'byStatus': by_status,
        'topProducts': [{'productName': name, 'count': count} for name, count in top_products],
    }


def list_subscribers(args) -> Dict[str, Any]:
    query = db.session.query(NewsletterSubscriber)
    active = args.get('active')
    if active is not None:
        query = query.filter(NewsletterSubscriber.is_active.is_(active.lower() in ('true', '1')))
    page, limit = page_args(args, default_limit=50)
    result_page = paginate(query.order_by(NewsletterSubscriber.subscribed_at.desc()), page, limit)
    return {
        'subscribers': [s.to_dict() for s in result_page.items],
        'pagination': result_page.meta(),
    }
