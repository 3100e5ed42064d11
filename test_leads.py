from core.database_models import db, NotificationLog

from conftest import PRODUCT_PAYLOAD


def test_contact_form_queues_both_emails(app, client, outbox):
    response = client.post('/api/contact', json={
        'name': 'Sarah Namuli',
        'email': 'sarah.namuli@gmail.com',
        'message': 'We would like a quote for a company website.',
    })

    assert response.status_code == 201
    assert response.get_json()['message'] == "Thank you for your message! We'll get back to you soon."
    assert {msg['To'] for msg in outbox} == {'admin@sap-technologies.com', 'sarah.namuli@gmail.com'}


def test_contact_form_rejects_script_injection(client):
    response = client.post('/api/contact', json={
        'name': 'Mallory',
        'email': 'mallory@gmail.com',
        'message': '<script>alert(document.cookie)</script>',
    })

    assert response.status_code == 403
    assert response.get_json()['message'] == 'Security violation detected'


def test_newsletter_subscribe_flow(client, outbox):
    created = client.post('/api/newsletter/subscribe', json={'email': 'Reader@Gmail.com'})
    assert created.status_code == 201
    assert created.get_json()['data']['subscriber']['email'] == 'reader@gmail.com'
    assert len(outbox) == 1

    again = client.post('/api/newsletter/subscribe', json={'email': 'reader@gmail.com'})
    assert again.status_code == 200
    assert again.get_json()['message'] == 'You are already subscribed to our newsletter'

    left = client.post('/api/newsletter/unsubscribe', json={'email': 'READER@gmail.com'})
    assert left.status_code == 200

    back = client.post('/api/newsletter/subscribe', json={'email': 'reader@gmail.com'})
    assert back.status_code == 200
    assert back.get_json()['message'] == 'Welcome back! Your subscription has been reactivated'
    assert back.get_json()['data']['subscriber']['isActive'] is True
    assert len(outbox) == 1


def test_unsubscribe_unknown_address(client):
    response = client.post('/api/newsletter/unsubscribe', json={'email': 'stranger@gmail.com'})

    assert response.status_code == 404
    assert response.get_json()['message'] == 'Email not found in our subscription list'


def test_newsletter_stats(admin_client):
    admin_client.post('/api/newsletter/subscribe', json={'email': 'one@gmail.com'})
    admin_client.post('/api/newsletter/subscribe', json={'email': 'two@gmail.com'})
    admin_client.post('/api/newsletter/unsubscribe', json={'email': 'two@gmail.com'})

    stats = admin_client.get('/api/admin/newsletter/stats').get_json()['data']
    assert stats == {'total': 2, 'active': 1, 'unsubscribed': 1}

    active = admin_client.get('/api/admin/newsletter/subscribers', query_string={'active': 'true'})
    assert [s['email'] for s in active.get_json()['data']['subscribers']] == ['one@gmail.com']


def test_product_inquiry_requires_phone_for_phone_contact(admin_client):
    product = admin_client.post('/api/products', json=PRODUCT_PAYLOAD).get_json()['data']['product']

    response = admin_client.post('/api/inquiries', json={
        'productId': product['id'],
        'customerEmail': 'buyer@gmail.com',
        'preferredContact': 'phone',
    })
    assert response.status_code == 400

    response = admin_client.post('/api/inquiries', json={
        'productId': product['id'],
        'customerEmail': 'buyer@gmail.com',
        'customerPhone': '+256 700 123456',
        'preferredContact': 'phone',
    })
    assert response.status_code == 201
    assert response.get_json()['data']['inquiry']['productName'] == 'Smart Meter Hub'

    stats = admin_client.get('/api/admin/inquiries/stats').get_json()['data']
    assert stats['total'] == 1
    assert stats['topProducts'] == [{'productName': 'Smart Meter Hub', 'count': 1}]


def test_quote_request_and_status_workflow(app, admin_client):
    created = admin_client.post('/api/quotes', json={
        'serviceName': 'Web Development',
        'customerName': 'Daniel Mugisha',
        'customerEmail': 'daniel.mugisha@gmail.com',
        'projectDetails': 'An online store with mobile money payments.',
        'budget': '$5,000 - $10,000',
        'timeline': '1 month',
    })
    assert created.status_code == 201
    quote_id = created.get_json()['data']['quote']['id']

    invalid = admin_client.patch(f'/api/admin/quotes/{quote_id}/status', json={'status': 'archived'})
    assert invalid.status_code == 400
    assert invalid.get_json()['message'] == 'Invalid status. Must be one of: new, contacted, quoted, converted, closed'

    updated = admin_client.patch(f'/api/admin/quotes/{quote_id}/status', json={
        'status': 'quoted', 'adminNotes': 'Sent proposal'
    })
    assert updated.get_json()['data']['item']['status'] == 'quoted'

    listing = admin_client.get('/api/admin/quotes', query_string={'status': 'quoted'}).get_json()['data']
    assert [q['id'] for q in listing['items']] == [quote_id]

    assert admin_client.delete(f'/api/admin/quotes/{quote_id}').status_code == 200
    assert admin_client.get('/api/admin/quotes').get_json()['data']['items'] == []


def test_partnership_request_notifies_admin(app, client):
    response = client.post('/api/partnership-requests', json={
        'companyName': 'Nile Robotics',
        'contactEmail': 'hello@sap-technologies.com',
        'description': 'We build agricultural drones and want to co-develop IoT sensors.',
    })

    assert response.status_code == 201
    with app.app_context():
        templates = {job.template for job in db.session.query(NotificationLog).all()}
    assert templates == {'partnership_admin', 'partnership_confirmation'}
