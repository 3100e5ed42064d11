# core/email_templates.py
"""
Transactional e-mail templates

Each entry holds a Jinja2 subject line and an HTML body fragment; the
template engine sanitizes the fragment and wraps it in LAYOUT.
"""

LAYOUT = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
  body { font-family: Arial, Helvetica, sans-serif; color: #1f2937; background-color: #f3f4f6; }
  .container { max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 24px; }
  .header { border-bottom: 3px solid #f59e0b; padding-bottom: 12px; margin-bottom: 20px; }
  .header h1 { color: #111827; font-size: 22px; margin: 0; }
  .details { background-color: #f9fafb; padding: 12px; border-left: 4px solid #2563eb; }
  .footer { color: #6b7280; font-size: 12px; margin-top: 28px; border-top: 1px solid #e5e7eb; padding-top: 12px; }
  a { color: #2563eb; }
</style>
</head>
<body>
<div class="container">
  <div class="header"><h1>{{ heading }}</h1></div>
  {{ body }}
  <div class="footer">
    <p>{{ company_name }} &middot; Kampala, Uganda</p>
    <p><a href="{{ site_url }}">{{ site_url }}</a></p>
  </div>
</div>
</body>
</html>
"""

TEMPLATES = {
    # Awards
    'nomination_submitted_nominator': {
        'subject': 'Nomination received: {{ nominee_name }}',
        'heading': 'Thank you for your nomination',
        'body': """
<p>Dear {{ nominator_name }},</p>
<p>We have received your nomination of <strong>{{ nominee_name }}</strong> for the
<strong>{{ category_name }}</strong> award.</p>
<p>Our committee reviews every nomination before it is published for public voting.
You will receive another e-mail once the review is complete.</p>
""",
    },
    'nomination_submitted_admin': {
        'subject': 'New nomination: {{ nominee_name }} ({{ category_name }})',
        'heading': 'New award nomination',
        'body': """
<div class="details">
<p><strong>Nominee:</strong> {{ nominee_name }}</p>
<p><strong>Category:</strong> {{ category_name }}</p>
<p><strong>Country:</strong> {{ nominee_country }}</p>
<p><strong>Nominated by:</strong> {{ nominator_name }} ({{ nominator_email }})</p>
</div>
<p>{{ nomination_reason }}</p>
<p><a href="{{ admin_url }}">Review the nomination</a></p>
""",
    },
    'nomination_status_update': {
        'subject': 'Nomination update: {{ nominee_name }} is {{ status_label }}',
        'heading': 'Your nomination has been reviewed',
        'body': """
<p>Dear {{ nominator_name }},</p>
<p>The status of your nomination of <strong>{{ nominee_name }}</strong> in the
<strong>{{ category_name }}</strong> category is now <strong>{{ status_label }}</strong>.</p>
{% if status == 'approved' %}
<p>The nomination is now live and open for public voting:
<a href="{{ nomination_url }}">{{ nomination_url }}</a></p>
{% elif status in ('winner', 'finalist') %}
<p>Congratulations! A certificate will be sent to you shortly.</p>
{% endif %}
{% if admin_notes %}<div class="details"><p>{{ admin_notes }}</p></div>{% endif %}
""",
    },
    'nomination_deleted': {
        'subject': 'Nomination withdrawn: {{ nominee_name }}',
        'heading': 'Nomination removed',
        'body': """
<p>Dear {{ nominator_name }},</p>
<p>Your nomination of <strong>{{ nominee_name }}</strong> for the
<strong>{{ category_name }}</strong> award has been removed from the awards programme.</p>
<p>If you believe this was a mistake, please reply to this e-mail.</p>
""",
    },
    'certificate_issued': {
        'subject': 'Your {{ awards_name }} certificate',
        'heading': 'Certificate issued',
        'body': """
<p>Dear {{ nominator_name }},</p>
<p>A {{ certificate_type }} certificate has been issued to <strong>{{ nominee_name }}</strong>
for the <strong>{{ category_name }}</strong> category.</p>
<div class="details">
<p><strong>Certificate ID:</strong> {{ certificate_id }}</p>
<p><a href="{{ download_url }}">Download the certificate</a></p>
<p><a href="{{ verification_url }}">Verify the certificate</a></p>
</div>
""",
    },

    # Leads
    'contact_admin': {
        'subject': 'New contact message from {{ name }}',
        'heading': 'New contact message',
        'body': """
<div class="details">
<p><strong>Name:</strong> {{ name }}</p>
<p><strong>Email:</strong> {{ email }}</p>
</div>
<p>{{ message }}</p>
""",
    },
    'contact_confirmation': {
        'subject': 'We received your message',
        'heading': 'Thank you for contacting us',
        'body': """
<p>Hi {{ name }},</p>
<p>Thank you for reaching out. Our team will get back to you within one business day.</p>
""",
    },
    'newsletter_welcome': {
        'subject': 'Welcome to the {{ company_name }} newsletter',
        'heading': 'Welcome aboard',
        'body': """
<p>You are now subscribed to news about our products, services and projects.</p>
<p>You can unsubscribe at any time from <a href="{{ unsubscribe_url }}">this page</a>.</p>
""",
    },
    'product_inquiry_admin': {
        'subject': 'Product inquiry: {{ product_name }}',
        'heading': 'New product inquiry',
        'body': """
<div class="details">
<p><strong>Product:</strong> {{ product_name }}</p>
<p><strong>Email:</strong> {{ customer_email }}</p>
<p><strong>Phone:</strong> {{ customer_phone or 'not provided' }}</p>
<p><strong>Preferred contact:</strong> {{ preferred_contact }}</p>
</div>
<p>{{ message or '' }}</p>
""",
    },
    'product_inquiry_confirmation': {
        'subject': 'Your inquiry about {{ product_name }}',
        'heading': 'Thank you for your interest',
        'body': """
<p>We have received your inquiry about <strong>{{ product_name }}</strong>.
A member of our team will contact you by {{ preferred_contact }} shortly.</p>
""",
    },
    'service_quote_admin': {
        'subject': 'Quote request: {{ service_name }} from {{ customer_name }}',
        'heading': 'New service quote request',
        'body': """
<div class="details">
<p><strong>Service:</strong> {{ service_name }}</p>
<p><strong>Customer:</strong> {{ customer_name }} ({{ customer_email }})</p>
<p><strong>Company:</strong> {{ company_name or 'not provided' }}</p>
<p><strong>Budget:</strong> {{ budget or 'not specified' }}</p>
<p><strong>Timeline:</strong> {{ timeline or 'not specified' }}</p>
</div>
<p>{{ project_details }}</p>
""",
    },
    'service_quote_confirmation': {
        'subject': 'Your quote request for {{ service_name }}',
        'heading': 'Quote request received',
        'body': """
<p>Hi {{ customer_name }},</p>
<p>Thanks for your interest in <strong>{{ service_name }}</strong>. We will prepare a quote
and contact you within two business days.</p>
""",
    },
    'partnership_admin': {
        'subject': 'Partnership request from {{ company_name }}',
        'heading': 'New partnership request',
        'body': """
<div class="details">
<p><strong>Company:</strong> {{ company_name }}</p>
<p><strong>Contact:</strong> {{ contact_person or 'not provided' }} ({{ contact_email }})</p>
<p><strong>Website:</strong> {{ website or 'not provided' }}</p>
</div>
<p>{{ description }}</p>
""",
    },
    'partnership_confirmation': {
        'subject': 'Your partnership request',
        'heading': 'Partnership request received',
        'body': """
<p>Thank you, {{ company_name }}. Our partnerships team will review your request and respond soon.</p>
""",
    },

    # Accounts
    'signup_welcome': {
        'subject': 'Welcome to {{ company_name }}',
        'heading': 'Your account is ready',
        'body': """
<p>Hi {{ name }},</p>
<p>Your account has been created. You can now sign in, manage your profile and follow your
quote requests.</p>
""",
    },
    'signup_admin_alert': {
        'subject': 'New user registration: {{ name }}',
        'heading': 'New user registration',
        'body': """
<div class="details">
<p><strong>Name:</strong> {{ name }}</p>
<p><strong>Email:</strong> {{ email }}</p>
</div>
""",
    },
    'password_reset_code': {
        'subject': 'Your password reset code',
        'heading': 'Reset your password',
        'body': """
<p>Hi {{ name }},</p>
<p>Use this code to reset your password. It expires in {{ expires_minutes }} minutes.</p>
<div class="details"><p><strong>{{ code }}</strong></p></div>
<p>If you did not ask for a reset you can ignore this e-mail; your password stays the same.</p>
""",
    },
    'password_changed': {
        'subject': 'Your password was changed',
        'heading': 'Password changed',
        'body': """
<p>Hi {{ name }},</p>
<p>The password for your account was changed. If this was not you, contact us immediately.</p>
""",
    },
}
