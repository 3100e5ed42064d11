from datetime import timedelta

import pyotp

from core.database_models import db, NotificationLog, User, utcnow

from conftest import ADMIN_EMAIL, USER_PASSWORD, login, make_user


def test_signup_starts_session(client):
    response = client.post('/api/auth/signup', json={
        'name': 'Amina Wasswa',
        'email': 'Amina.Wasswa@Gmail.com',
        'password': 'S3curePassw0rd',
    })

    assert response.status_code == 201
    assert response.get_json()['data']['user']['email'] == 'amina.wasswa@gmail.com'

    check = client.get('/api/auth/check').get_json()['data']
    assert check['authenticated'] is True


def test_signup_rejects_duplicate_email(client):
    make_user(client.application, 'taken@gmail.com')

    response = client.post('/api/auth/signup', json={
        'name': 'Someone Else',
        'email': 'TAKEN@gmail.com',
        'password': 'S3curePassw0rd',
    })

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Email already registered'


def test_login_with_wrong_password(client):
    make_user(client.application, 'member@gmail.com')

    response = login(client, 'member@gmail.com', 'wrong-password')

    assert response.status_code == 401
    assert response.get_json() == {'status': 'fail', 'message': 'Invalid credentials'}


def test_account_locks_after_repeated_failures(app, client):
    make_user(app, 'member@gmail.com')

    for _ in range(5):
        assert login(client, 'member@gmail.com', 'wrong-password').status_code == 401

    locked = login(client, 'member@gmail.com', USER_PASSWORD)
    assert locked.status_code == 423
    assert locked.get_json()['message'] == (
        'Account temporarily locked due to too many failed login attempts. Try again later.'
    )

    with app.app_context():
        user = db.session.query(User).filter_by(email='member@gmail.com').one()
        assert user.account_locked_until is not None
        assert user.failed_login_attempts == 0


def test_successful_login_resets_failures(app, client):
    make_user(app, 'member@gmail.com')
    login(client, 'member@gmail.com', 'wrong-password')

    assert login(client, 'member@gmail.com', USER_PASSWORD).status_code == 200
    with app.app_context():
        user = db.session.query(User).filter_by(email='member@gmail.com').one()
        assert user.failed_login_attempts == 0
        assert user.login_count == 1


def test_two_factor_enrolment_and_login(app, client):
    make_user(app, 'secure@gmail.com')
    login(client, 'secure@gmail.com', USER_PASSWORD)

    secret = client.post('/api/auth/setup-2fa').get_json()['data']['secret']
    bad = client.post('/api/auth/verify-2fa', json={'code': '000000'})
    assert bad.status_code == 400

    enabled = client.post('/api/auth/verify-2fa', json={'code': pyotp.TOTP(secret).now()})
    assert enabled.status_code == 200
    assert enabled.get_json()['data']['user']['twoFactorEnabled'] is True

    client.post('/api/auth/logout')
    challenge = login(client, 'secure@gmail.com', USER_PASSWORD)
    assert challenge.status_code == 200
    assert challenge.get_json()['data'] == {'requires2fa': True}
    assert client.get('/api/auth/check').get_json()['data']['authenticated'] is False

    response = client.post('/api/auth/login', json={
        'email': 'secure@gmail.com',
        'password': USER_PASSWORD,
        'totpCode': pyotp.TOTP(secret).now(),
    })
    assert response.status_code == 200

    with app.app_context():
        stored = db.session.query(User).filter_by(email='secure@gmail.com').one()
        assert stored.two_factor_secret != secret


def test_profile_password_and_deactivation(app, client):
    make_user(app, 'member@gmail.com')
    login(client, 'member@gmail.com', USER_PASSWORD)

    profile = client.put('/api/users/profile', json={'name': 'Renamed Member'})
    assert profile.get_json()['data']['user']['name'] == 'Renamed Member'

    wrong = client.put('/api/users/password', json={'currentPassword': 'nope', 'newPassword': 'AnotherPass99'})
    assert wrong.status_code == 401
    assert wrong.get_json()['message'] == 'Current password is incorrect'

    changed = client.put('/api/users/password', json={
        'currentPassword': USER_PASSWORD, 'newPassword': 'AnotherPass99'
    })
    assert changed.status_code == 200

    activity = client.get('/api/users/activity').get_json()['data']['activities']
    assert activity[0]['action'] == 'Changed password'

    assert client.delete('/api/users/account').status_code == 200
    assert login(client, 'member@gmail.com', 'AnotherPass99').status_code == 401


def test_protected_routes_require_login(client):
    response = client.get('/api/users/profile')
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Authentication required'


def test_admin_user_management(app, admin_client):
    member_id = make_user(app, 'member@gmail.com')

    listing = admin_client.get('/api/admin/users').get_json()['data']
    assert {u['email'] for u in listing['users']} == {ADMIN_EMAIL, 'member@gmail.com'}

    promoted = admin_client.put(f'/api/admin/users/{member_id}/role', json={'role': 'moderator'})
    assert promoted.get_json()['data']['user']['role'] == 'moderator'

    disabled = admin_client.patch(f'/api/admin/users/{member_id}/status', json={'isActive': False})
    assert disabled.get_json()['data']['user']['isActive'] is False


def test_admin_cannot_demote_self(app, admin_client):
    with app.app_context():
        admin_id = str(db.session.query(User).filter_by(email=ADMIN_EMAIL).one().id)

    response = admin_client.put(f'/api/admin/users/{admin_id}/role', json={'role': 'user'})
    assert response.status_code == 400


def test_regular_user_cannot_reach_admin(app, client):
    make_user(app, 'member@gmail.com')
    login(client, 'member@gmail.com', USER_PASSWORD)

    response = client.get('/api/admin/dashboard')
    assert response.status_code == 403
    assert response.get_json()['message'] == 'Admin access required'


def test_security_headers_and_unknown_route(client):
    response = client.get('/api/does-not-exist')

    assert response.status_code == 404
    assert response.get_json()['message'] == 'Route /api/does-not-exist not found'
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['Cache-Control'] == 'no-store'


def test_health_check(client):
    body = client.get('/health').get_json()
    assert body['status'] == 'healthy'
    detailed = client.get('/health/detailed').get_json()
    assert detailed['components']['database'] == 'healthy'
    assert detailed['components']['redis'] == 'disabled'


NEW_PASSWORD = 'Fresh-Passw0rd!'


def _reset_jobs(app):
    with app.app_context():
        jobs = db.session.query(NotificationLog).filter_by(template='password_reset_code').all()
        return {str(job.id): job.context['code'] for job in jobs}


def _reset(client, code, email='member@gmail.com', password=NEW_PASSWORD):
    return client.post('/api/auth/reset-password', json={
        'email': email, 'verificationCode': code, 'newPassword': password,
    })


def test_forgot_password_answers_the_same_for_unknown_email(app, client, outbox):
    response = client.post('/api/auth/forgot-password', json={'email': 'nobody@gmail.com'})

    assert response.status_code == 200
    assert response.get_json()['message'] == (
        'If an account with that email exists, you will receive a password reset code shortly.'
    )
    assert _reset_jobs(app) == {}
    assert outbox == []


def test_password_reset_with_emailed_code(app, client, outbox):
    make_user(app, 'member@gmail.com')

    requested = client.post('/api/auth/forgot-password', json={'email': 'Member@Gmail.com'})
    assert requested.status_code == 200
    [code] = _reset_jobs(app).values()
    assert len(code) == 6 and code.isdigit()
    assert len(outbox) == 1

    with app.app_context():
        user = db.session.query(User).filter_by(email='member@gmail.com').one()
        assert user.password_reset_digest != code

    response = _reset(client, code)
    assert response.status_code == 200
    assert response.get_json()['message'] == (
        'Password has been reset successfully. You can now log in with your new password.'
    )

    assert login(client, 'member@gmail.com', USER_PASSWORD).status_code == 401
    assert login(client, 'member@gmail.com', NEW_PASSWORD).status_code == 200
    with app.app_context():
        user = db.session.query(User).filter_by(email='member@gmail.com').one()
        assert user.password_reset_digest is None
        assert user.password_changed_at is not None
        assert db.session.query(NotificationLog).filter_by(template='password_changed').count() == 1

    reused = _reset(client, code, password='Another-Passw0rd!')
    assert reused.status_code == 400


def test_password_reset_rejects_wrong_and_expired_codes(app, client):
    make_user(app, 'member@gmail.com')
    client.post('/api/auth/forgot-password', json={'email': 'member@gmail.com'})
    [code] = _reset_jobs(app).values()

    wrong = _reset(client, '000000' if code != '000000' else '111111')
    assert wrong.status_code == 400
    assert wrong.get_json()['message'] == 'Invalid or expired verification code. Please request a new code.'

    with app.app_context():
        user = db.session.query(User).filter_by(email='member@gmail.com').one()
        user.password_reset_expires = utcnow() - timedelta(minutes=1)
        db.session.commit()

    assert _reset(client, code).status_code == 400
    assert login(client, 'member@gmail.com', USER_PASSWORD).status_code == 200


def test_resend_reset_code_replaces_the_previous_code(app, client):
    make_user(app, 'member@gmail.com')
    client.post('/api/auth/forgot-password', json={'email': 'member@gmail.com'})
    first_jobs = _reset_jobs(app)

    response = client.post('/api/auth/resend-reset-code', json={'email': 'member@gmail.com'})
    assert response.status_code == 200
    assert response.get_json()['message'] == (
        'If an account with that email exists, you will receive a new verification code.'
    )

    jobs = _reset_jobs(app)
    [new_id] = set(jobs) - set(first_jobs)
    [old_code] = first_jobs.values()
    if old_code != jobs[new_id]:
        assert _reset(client, old_code).status_code == 400
    assert _reset(client, jobs[new_id]).status_code == 200


def test_reset_code_must_be_six_digits(client):
    response = _reset(client, 'abc')

    assert response.status_code == 400
    assert any(error['field'] == 'verificationCode' for error in response.get_json()['errors'])
