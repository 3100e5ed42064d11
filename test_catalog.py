import json

import pytest
from sqlalchemy.exc import OperationalError
from werkzeug.datastructures import FileStorage

from core.database_models import db
from services.catalog import products

from conftest import PRODUCT_PAYLOAD, png_upload


def test_product_round_trip(admin_client):
    created = admin_client.post('/api/products', json=PRODUCT_PAYLOAD)
    assert created.status_code == 201
    product = created.get_json()['data']['product']
    assert product['technicalSpecs'] == [{'name': 'Range', 'value': '5 km'}]
    assert product['price'] == {'amount': 149.0, 'currency': 'USD', 'type': 'fixed'}

    fetched = admin_client.get(f"/api/products/{product['id']}").get_json()['data']['product']
    assert fetched['name'] == 'Smart Meter Hub'
    assert fetched['tags'] == ['energy', 'iot']

    updated = admin_client.put(f"/api/products/{product['id']}", json={'availability': 'pre-order'})
    assert updated.status_code == 200
    body = updated.get_json()['data']['product']
    assert body['availability'] == 'pre-order'
    assert body['name'] == 'Smart Meter Hub'
    assert body['metadata']['views'] == 1


def test_product_multipart_with_image(admin_client):
    data = {key: json.dumps(value) if isinstance(value, (list, dict)) else value for key, value in PRODUCT_PAYLOAD.items()}
    data['image'] = png_upload('meter.png')

    response = admin_client.post('/api/products', data=data, content_type='multipart/form-data')

    assert response.status_code == 201
    product = response.get_json()['data']['product']
    assert product['image'].startswith('/uploads/products/')
    assert product['features'] == ['Remote top-up', 'Tamper alerts']
    assert admin_client.get(product['image']).status_code == 200


def test_inactive_products_are_hidden_from_public(admin_client):
    product = admin_client.post('/api/products', json={**PRODUCT_PAYLOAD, 'isActive': False}).get_json()['data']['product']

    listing = admin_client.get('/api/products').get_json()['data']
    assert listing['products'] == []
    assert admin_client.get(f"/api/products/{product['id']}").status_code == 404

    admin_listing = admin_client.get('/api/products/admin/all').get_json()['data']
    assert [p['id'] for p in admin_listing['products']] == [product['id']]


def test_product_validation_rejects_unknown_category(admin_client):
    response = admin_client.post('/api/products', json={**PRODUCT_PAYLOAD, 'category': 'Spaceships'})

    assert response.status_code == 400
    assert any(error['field'] == 'category' for error in response.get_json()['errors'])


def test_category_counts_and_featured_toggle(admin_client):
    product = admin_client.post('/api/products', json=PRODUCT_PAYLOAD).get_json()['data']['product']
    admin_client.post('/api/products', json={**PRODUCT_PAYLOAD, 'name': 'Solar Controller', 'category': 'Electronics'})

    categories = admin_client.get('/api/products/categories').get_json()['data']['categories']
    assert {'category': 'IoT Devices', 'count': 1} in categories

    toggled = admin_client.patch(f"/api/products/{product['id']}/featured").get_json()['data']['product']
    assert toggled['isFeatured'] is True
    featured = admin_client.get('/api/products', query_string={'featured': 'true'}).get_json()['data']
    assert [p['id'] for p in featured['products']] == [product['id']]


def test_service_accepts_order_alias(admin_client):
    response = admin_client.post('/api/services', json={
        'title': 'Mobile App Development',
        'description': 'Native and cross-platform apps',
        'category': 'Mobile Development',
        'order': 3,
        'technologies': [{'name': 'Flutter', 'level': 'expert'}],
    })

    assert response.status_code == 201
    assert response.get_json()['data']['service']['order'] == 3


def test_partner_requires_logo(admin_client):
    response = admin_client.post('/api/partners', json={'name': 'Kampala Tech Hub'})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Partner logo is required'

    created = admin_client.post(
        '/api/partners',
        data={'name': 'Kampala Tech Hub', 'logo': png_upload('logo.png')},
        content_type='multipart/form-data',
    )
    assert created.status_code == 201


def test_catalog_writes_require_admin(client):
    response = client.post('/api/products', json=PRODUCT_PAYLOAD)
    assert response.status_code == 401


def test_unknown_product_is_not_found(client):
    assert client.get('/api/products/not-a-uuid').status_code == 404


def test_partial_update_accepts_snake_case_keys(admin_client):
    product = admin_client.post('/api/products', json=PRODUCT_PAYLOAD).get_json()['data']['product']

    response = admin_client.put(f"/api/products/{product['id']}", json={
        'short_description': 'Prepaid metering for estates',
        'is_featured': True,
    })

    assert response.status_code == 200
    body = response.get_json()['data']['product']
    assert body['shortDescription'] == 'Prepaid metering for estates'
    assert body['isFeatured'] is True
    assert body['technicalDescription'] == PRODUCT_PAYLOAD['technicalDescription']


def test_service_order_update_through_any_alias(admin_client):
    service = admin_client.post('/api/services', json={
        'title': 'Cloud Hosting',
        'description': 'Managed hosting and backups',
        'category': 'Web Development',
        'order': 1,
    }).get_json()['data']['service']

    snake = admin_client.put(f"/api/services/{service['id']}", json={'display_order': 5})
    assert snake.status_code == 200
    assert snake.get_json()['data']['service']['order'] == 5

    camel = admin_client.put(f"/api/services/{service['id']}", json={'displayOrder': 7})
    assert camel.get_json()['data']['service']['order'] == 7


def test_failed_update_removes_new_upload(app, tmp_path, admin_client, monkeypatch):
    product = admin_client.post('/api/products', json=PRODUCT_PAYLOAD).get_json()['data']['product']
    folder = tmp_path / 'uploads' / 'products'

    def fail_commit():
        raise OperationalError('UPDATE products', {}, Exception('database is locked'))

    with app.app_context():
        monkeypatch.setattr(db.session, 'commit', fail_commit)
        buffer, name = png_upload('replacement.png')
        with pytest.raises(OperationalError):
            products.update(product['id'], {}, upload=FileStorage(stream=buffer, filename=name))
        monkeypatch.undo()

        assert products.get(product['id']).image is None

    assert list(folder.glob('*')) == []
