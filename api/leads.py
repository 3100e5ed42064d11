# api/leads.py
"""
Public lead capture endpoints
"""

from flask import Blueprint, request

from api.responses import success
from api.schemas import request_data
from middleware.security import current_user, limiter, security_scan
from services import leads

leads_bp = Blueprint('leads', __name__)


@leads_bp.route('/api/contact', methods=['POST'])
@limiter.limit("5 per minute")
@security_scan()
def contact():
    message = leads.submit_contact(request_data(), request.remote_addr, request.headers.get('User-Agent'))
    return success(
        {'contact': {'id': str(message.id)}},
        "Thank you for your message! We'll get back to you soon.",
        201,
    )


@leads_bp.route('/api/newsletter/subscribe', methods=['POST'])
@limiter.limit("5 per minute")
@security_scan()
def subscribe():
    subscriber, outcome = leads.subscribe(request_data())
    if outcome == 'existing':
        return success({'subscriber': subscriber.to_dict()}, 'You are already subscribed to our newsletter')
    if outcome == 'reactivated':
        return success({'subscriber': subscriber.to_dict()}, 'Welcome back! Your subscription has been reactivated')
    return success({'subscriber': subscriber.to_dict()}, 'Thank you for subscribing to our newsletter!', 201)


@leads_bp.route('/api/newsletter/unsubscribe', methods=['POST'])
def unsubscribe():
    leads.unsubscribe(request_data().get('email'))
    return success(message='You have been unsubscribed from our newsletter')


@leads_bp.route('/api/inquiries', methods=['POST'])
@limiter.limit("10 per hour")
@security_scan()
def product_inquiry():
    inquiry = leads.submit_inquiry(request_data(), request.remote_addr, request.headers.get('User-Agent'))
    return success({'inquiry': inquiry.to_dict()}, 'Your inquiry has been submitted successfully', 201)


@leads_bp.route('/api/quotes', methods=['POST'])
@limiter.limit("10 per hour")
@security_scan()
def service_quote():
    quote = leads.submit_quote(request_data(), current_user())
    return success({'quote': quote.to_dict()}, 'Your quote request has been submitted successfully', 201)


@leads_bp.route('/api/partnership-requests', methods=['POST'])
@limiter.limit("5 per hour")
@security_scan()
def partnership_request():
    partnership = leads.submit_partnership(request_data())
    return success(
        {'partnershipRequest': partnership.to_dict()},
        'Partnership request submitted successfully',
        201,
    )
