from conftest import PRODUCT_PAYLOAD


def _approve(client, nomination_id):
    response = client.patch(
        f'/api/awards/admin/nominations/{nomination_id}/status', json={'status': 'approved'}
    )
    assert response.status_code == 200


def _product(client, **overrides):
    response = client.post('/api/products', json={**PRODUCT_PAYLOAD, **overrides})
    assert response.status_code == 201
    return response.get_json()['data']['product']


def test_search_requires_two_characters(client):
    response = client.get('/api/search', query_string={'q': ' s '})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Search query must be at least 2 characters'


def test_search_rejects_unknown_type(client):
    response = client.get('/api/search', query_string={'q': 'solar', 'type': 'people'})

    assert response.status_code == 400
    assert response.get_json()['message'] == (
        'Invalid search type. Must be one of: all, products, services, projects, awards'
    )


def test_search_all_covers_catalog_and_published_awards(admin_client, nomination):
    product = _product(admin_client, name='Solar Pump Controller', category='Automation')
    _product(admin_client, name='Smart Meter Hub')

    before = admin_client.get('/api/search', query_string={'q': 'SOLAR'}).get_json()['data']
    assert [p['id'] for p in before['results']['products']] == [product['id']]
    assert before['results']['awards'] == []

    _approve(admin_client, nomination['id'])
    after = admin_client.get('/api/search', query_string={'q': 'solar'}).get_json()['data']
    assert after['query'] == 'solar'
    assert [n['id'] for n in after['results']['awards']] == [nomination['id']]
    assert after['totalResults'] == 2
    assert set(after['results']) == {'products', 'services', 'projects', 'awards'}


def test_search_single_type(admin_client):
    _product(admin_client)

    data = admin_client.get('/api/search', query_string={'q': 'meter', 'type': 'products'}).get_json()['data']

    assert list(data['results']) == ['products']
    assert data['totalResults'] == 1


def test_name_matches_rank_ahead_of_description_matches(admin_client):
    described = _product(admin_client, name='Irrigation Kit', shortDescription='Gateway for smart meter networks')
    named = _product(admin_client, name='Meter Gateway', displayOrder=5)

    data = admin_client.get('/api/search/products', query_string={'q': 'meter'}).get_json()['data']
    ids = [p['id'] for p in data['results']]

    assert ids.index(named['id']) < ids.index(described['id'])
    assert data['pagination']['totalItems'] == 2


def test_product_search_price_filter_and_sort(admin_client):
    cheap = _product(admin_client, name='Meter Lite', price={'amount': 49.0, 'currency': 'USD', 'type': 'fixed'})
    _product(admin_client, name='Meter Pro', price={'amount': 499.0, 'currency': 'USD', 'type': 'fixed'})
    middle = _product(admin_client)

    data = admin_client.get('/api/search/products', query_string={
        'q': 'meter', 'maxPrice': '200', 'sort': 'price-desc',
    }).get_json()['data']

    assert [p['id'] for p in data['results']] == [middle['id'], cheap['id']]


def test_product_search_skips_inactive_items(admin_client):
    _product(admin_client, isActive=False)

    data = admin_client.get('/api/search/products', query_string={'q': 'meter'}).get_json()['data']

    assert data['results'] == []


def test_product_search_rejects_bad_price(client):
    response = client.get('/api/search/products', query_string={'q': 'meter', 'minPrice': 'cheap'})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'minPrice must be a number'


def test_service_search_hides_inactive_services(admin_client):
    for title, status in (('Solar Installation', 'active'), ('Solar Maintenance', 'inactive')):
        response = admin_client.post('/api/services', json={
            'title': title,
            'description': 'Panels, inverters and batteries',
            'category': 'Electrical Engineering',
            'status': status,
        })
        assert response.status_code == 201

    data = admin_client.get('/api/search/services', query_string={'q': 'solar'}).get_json()['data']

    assert [s['title'] for s in data['results']] == ['Solar Installation']


def test_award_search_ignores_non_public_status_filter(admin_client, nomination):
    pending = admin_client.get('/api/search/awards', query_string={'q': 'Nakato', 'status': 'pending'})
    assert pending.get_json()['data']['results'] == []

    _approve(admin_client, nomination['id'])
    approved = admin_client.get('/api/search/awards', query_string={
        'q': 'Nakato', 'status': 'approved', 'category': nomination['category']['id'],
    }).get_json()['data']

    assert [n['id'] for n in approved['results']] == [nomination['id']]
    assert 'nominatorEmail' not in approved['results'][0]
