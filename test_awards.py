import uuid

from core.database_models import db, Certificate, Nomination, NotificationLog, Vote

from conftest import nomination_form, png_upload


def _set_status(client, nomination_id, status, **extra):
    return client.patch(
        f'/api/awards/admin/nominations/{nomination_id}/status',
        json={'status': status, **extra},
    )


def test_nomination_requires_photo(admin_client, category):
    response = admin_client.post(
        '/api/awards/nominations',
        data=nomination_form(category['id']),
        content_type='multipart/form-data',
    )

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Nominee photo is required'


def test_nomination_validation_reports_fields(admin_client, category):
    data = nomination_form(category['id'], nominationReason='Too short')
    data['nomineePhoto'] = png_upload()
    response = admin_client.post('/api/awards/nominations', data=data, content_type='multipart/form-data')

    body = response.get_json()
    assert response.status_code == 400
    assert body['status'] == 'error'
    assert any(error['field'] == 'nominationReason' for error in body['errors'])


def test_nomination_submission_stores_photo_and_notifies(app, admin_client, nomination):
    assert nomination['status'] == 'pending'
    assert nomination['nomineePhoto'].startswith('/uploads/awards/')

    photo = admin_client.get(nomination['nomineePhoto'])
    assert photo.status_code == 200

    with app.app_context():
        templates = {job.template for job in db.session.query(NotificationLog).all()}
    assert {'nomination_submitted_nominator', 'nomination_submitted_admin'} <= templates


def test_pending_nomination_is_hidden_and_cannot_receive_votes(client, nomination):
    assert client.get(f"/api/awards/nominations/{nomination['id']}").status_code == 404

    response = client.post(
        f"/api/awards/nominations/{nomination['id']}/vote",
        json={'voterEmail': 'voter@gmail.com'},
    )
    assert response.status_code == 400
    assert response.get_json()['message'] == 'This nomination is not available for voting'


def test_duplicate_vote_is_rejected_case_insensitively(app, admin_client, nomination):
    assert _set_status(admin_client, nomination['id'], 'approved').status_code == 200

    first = admin_client.post(
        f"/api/awards/nominations/{nomination['id']}/vote",
        json={'voterEmail': 'Jane.Voter@Gmail.com', 'voterName': 'Jane'},
    )
    assert first.status_code == 200
    assert first.get_json()['data']['nomination']['totalVotes'] == 1

    second = admin_client.post(
        f"/api/awards/nominations/{nomination['id']}/vote",
        json={'voterEmail': 'jane.voter@gmail.com'},
    )
    assert second.status_code == 400
    assert second.get_json()['message'] == 'You have already voted for this nomination'

    status = admin_client.get(
        f"/api/awards/nominations/{nomination['id']}/vote-status",
        query_string={'email': 'JANE.VOTER@gmail.com'},
    ).get_json()['data']
    assert status == {'hasVoted': True, 'totalVotes': 1}


def test_vote_total_matches_vote_rows(app, admin_client, nomination):
    _set_status(admin_client, nomination['id'], 'approved')
    for voter in ('a.voter@gmail.com', 'b.voter@gmail.com', 'c.voter@gmail.com'):
        response = admin_client.post(
            f"/api/awards/nominations/{nomination['id']}/vote", json={'voterEmail': voter}
        )
        assert response.status_code == 200

    with app.app_context():
        stored = db.session.get(Nomination, uuid.UUID(nomination['id']))
        rows = db.session.query(Vote).filter_by(nomination_id=stored.id).count()
        assert stored.votes == rows == 3


def test_vote_status_requires_email(client, nomination):
    response = client.get(f"/api/awards/nominations/{nomination['id']}/vote-status")
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Email is required'


def test_public_listing_only_shows_published_statuses(admin_client, category, nomination):
    listing = admin_client.get('/api/awards/nominations').get_json()['data']
    assert listing['nominations'] == []

    _set_status(admin_client, nomination['id'], 'approved')

    listing = admin_client.get('/api/awards/nominations', query_string={'status': 'pending'}).get_json()['data']
    assert [n['id'] for n in listing['nominations']] == [nomination['id']]
    assert listing['pagination']['totalItems'] == 1
    assert 'nominatorEmail' not in listing['nominations'][0]

    detail = admin_client.get(f"/api/awards/nominations/{nomination['slug']}")
    assert detail.status_code == 200


def test_status_transitions_follow_review_workflow(admin_client, nomination):
    response = _set_status(admin_client, nomination['id'], 'winner')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Cannot change status from pending to winner'

    assert _set_status(admin_client, nomination['id'], 'rejected').status_code == 200
    assert _set_status(admin_client, nomination['id'], 'finalist').status_code == 400
    assert _set_status(admin_client, nomination['id'], 'pending').status_code == 200
    assert _set_status(admin_client, nomination['id'], 'approved').status_code == 200


def test_certificate_generated_once_across_approval_and_win(app, admin_client, nomination):
    approved = _set_status(admin_client, nomination['id'], 'approved', adminNotes='Strong nomination')
    effects = approved.get_json()['data']['sideEffects']
    assert effects['certificateQueued'] is True
    assert len(effects['notificationIds']) == 1

    winner = _set_status(admin_client, nomination['id'], 'winner')
    data = winner.get_json()['data']
    assert data['nomination']['status'] == 'winner'
    assert data['sideEffects']['certificateQueued'] is False

    with app.app_context():
        certificates = db.session.query(Certificate).all()
        assert len(certificates) == 1
        stored = db.session.get(Nomination, uuid.UUID(nomination['id']))
        assert stored.certificate_id == certificates[0].certificate_id
        assert stored.certificate_file is not None
        job = db.session.get(NotificationLog, uuid.UUID(effects['certificateJobId']))
        assert job.status == 'completed'


def test_category_with_nominations_cannot_be_deleted(admin_client, category, nomination):
    response = admin_client.delete(f"/api/awards/admin/categories/{category['id']}")

    assert response.status_code == 400
    assert response.get_json()['message'] == (
        'Cannot delete category. It has 1 nomination(s). Please reassign or delete the nominations first.'
    )


def test_duplicate_category_name_is_rejected(admin_client, category):
    response = admin_client.post('/api/awards/admin/categories', json={
        'name': 'innovation leader',
        'description': 'Same name with different capitalisation',
    })
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Category with this name already exists'


def test_delete_nomination_removes_votes_and_photo(app, admin_client, nomination):
    _set_status(admin_client, nomination['id'], 'approved')
    admin_client.post(f"/api/awards/nominations/{nomination['id']}/vote", json={'voterEmail': 'fan@gmail.com'})
    photo_path = app.extensions['upload_storage'].resolve(nomination['nomineePhoto'])
    assert photo_path.is_file()

    response = admin_client.delete(f"/api/awards/admin/nominations/{nomination['id']}")
    assert response.status_code == 200

    assert not photo_path.exists()
    with app.app_context():
        assert db.session.query(Vote).count() == 0
        assert db.session.get(Nomination, uuid.UUID(nomination['id'])) is None
        assert db.session.query(NotificationLog).filter_by(template='nomination_deleted').count() == 1


def test_admin_routes_require_admin_role(client, category):
    client.post('/api/auth/logout')
    response = client.get('/api/awards/admin/nominations')
    assert response.status_code == 401


def test_stats_summarise_nominations(admin_client, nomination):
    _set_status(admin_client, nomination['id'], 'approved')
    admin_client.post(f"/api/awards/nominations/{nomination['id']}/vote", json={'voterEmail': 'fan@gmail.com'})

    stats = admin_client.get('/api/awards/admin/stats').get_json()['data']
    assert stats['generalStats']['totalNominations'] == 1
    assert stats['generalStats']['approvedNominations'] == 1
    assert stats['generalStats']['totalVotes'] == 1
    assert stats['topNominations'][0]['id'] == nomination['id']


def test_category_update_keeps_unsent_fields(admin_client, category):
    response = admin_client.put(f"/api/awards/admin/categories/{category['id']}", json={'is_active': False})

    assert response.status_code == 200
    updated = response.get_json()['data']['category']
    assert updated['isActive'] is False
    assert updated['name'] == category['name']
    assert updated['iconName'] == 'rocket'

    listing = admin_client.get('/api/awards/categories').get_json()['data']['categories']
    assert category['id'] not in [c['id'] for c in listing]


def test_empty_category_can_be_deleted(app, admin_client, category):
    response = admin_client.delete(f"/api/awards/admin/categories/{category['id']}")

    assert response.status_code == 200
    assert response.get_json()['message'] == 'Category deleted successfully'
    listing = admin_client.get('/api/awards/categories').get_json()['data']['categories']
    assert listing == []
    missing = admin_client.delete(f"/api/awards/admin/categories/{category['id']}")
    assert missing.status_code == 404


def test_admin_edit_changes_only_sent_fields(admin_client, nomination):
    response = admin_client.put(
        f"/api/awards/admin/nominations/{nomination['id']}",
        json={'nominee_company': 'New Co', 'displayOrder': 3},
    )

    assert response.status_code == 200
    edited = response.get_json()['data']['nomination']
    assert edited['nomineeCompany'] == 'New Co'
    assert edited['displayOrder'] == 3
    assert edited['nomineeName'] == nomination['nomineeName']
    assert edited['category']['id'] == nomination['category']['id']
    assert edited['nomineePhoto'] == nomination['nomineePhoto']


def test_admin_edit_replaces_photo_and_removes_old_file(app, admin_client, nomination):
    storage = app.extensions['upload_storage']
    old_path = storage.resolve(nomination['nomineePhoto'])
    assert old_path.is_file()

    response = admin_client.put(
        f"/api/awards/admin/nominations/{nomination['id']}",
        data={'nomineeTitle': 'Chief Engineer', 'nomineePhoto': png_upload('new.png', color=(20, 120, 220))},
        content_type='multipart/form-data',
    )

    assert response.status_code == 200
    edited = response.get_json()['data']['nomination']
    assert edited['nomineeTitle'] == 'Chief Engineer'
    assert edited['nomineePhoto'] != nomination['nomineePhoto']
    assert edited['nomineePhoto'].startswith('/uploads/awards/')
    assert not old_path.exists()
    assert storage.resolve(edited['nomineePhoto']).is_file()
    assert admin_client.get(edited['nomineePhoto']).status_code == 200
