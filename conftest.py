import io

import pytest
from PIL import Image

from app import create_app
from core.database_models import db, User
from core.security_manager import security_manager

ADMIN_EMAIL = 'admin@sap-technologies.com'
ADMIN_PASSWORD = 'AdminPass123!'
USER_PASSWORD = 'UserPass123!'


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(app):
    return app.extensions['mailer'].outbox


def make_user(app, email, password=USER_PASSWORD, role='user', name='Test User'):
    with app.app_context():
        user = User(
            name=name,
            email=email,
            password_hash=security_manager.hash_password(password),
            role=role,
        )
        db.session.add(user)
        db.session.commit()
        return str(user.id)


def login(client, email, password):
    return client.post('/api/auth/login', json={'email': email, 'password': password})


def png_upload(name='photo.png', size=(32, 32), color=(200, 40, 40), noise=False):
    buffer = io.BytesIO()
    # Noise keeps the encoded file above the signature minimum size
    image = Image.effect_noise(size, 80).convert('RGB') if noise else Image.new('RGB', size, color)
    image.save(buffer, format='PNG')
    buffer.seek(0)
    return buffer, name


@pytest.fixture
def admin_client(app, client):
    make_user(app, ADMIN_EMAIL, ADMIN_PASSWORD, role='admin', name='Site Admin')
    response = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert response.status_code == 200
    return client


@pytest.fixture
def category(admin_client):
    response = admin_client.post('/api/awards/admin/categories', json={
        'name': 'Innovation Leader',
        'description': 'Recognises outstanding technology innovators in the region',
        'iconName': 'rocket',
    })
    assert response.status_code == 201
    return response.get_json()['data']['category']


def nomination_form(category_id, **overrides):
    form = {
        'nomineeName': 'Grace Nakato',
        'nomineeTitle': 'Founder',
        'nomineeCompany': 'Kampala Solar Labs',
        'category': category_id,
        'nominationReason': 'Built affordable solar irrigation kits used by more than two thousand farmers.',
        'nominatorName': 'Peter Okello',
        'nominatorEmail': 'peter.okello@gmail.com',
    }
    form.update(overrides)
    return form


@pytest.fixture
def nomination(admin_client, category):
    data = nomination_form(category['id'])
    data['nomineePhoto'] = png_upload()
    response = admin_client.post('/api/awards/nominations', data=data, content_type='multipart/form-data')
    assert response.status_code == 201
    return response.get_json()['data']['nomination']


PRODUCT_PAYLOAD = {
    'name': 'Smart Meter Hub',
    'shortDescription': 'Prepaid smart metering gateway',
    'technicalDescription': 'LoRaWAN gateway with tamper detection and remote top-up',
    'category': 'IoT Devices',
    'technicalSpecs': [{'name': 'Range', 'value': '5 km'}],
    'features': ['Remote top-up', 'Tamper alerts'],
    'price': {'amount': 149.0, 'currency': 'USD', 'type': 'fixed'},
    'tags': ['energy', 'iot'],
}
