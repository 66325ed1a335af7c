from sqlalchemy import select
from werkzeug.security import check_password_hash

from models import User, db

from conftest import PASSWORD, make_user


def test_register_then_login(app):
    client = app.test_client()
    response = client.post('/register', data={'username': 'carol', 'email': 'carol@example.com', 'password': 'hunter22'})
    assert response.status_code == 302
    assert response.headers['Location'].endswith('/login')

    with app.app_context():
        user = db.session.scalar(select(User).filter_by(username='carol'))
        assert user.password_hash != 'hunter22'
        assert check_password_hash(user.password_hash, 'hunter22')

    response = client.post('/login', data={'username': 'carol', 'password': 'hunter22'})
    assert response.status_code == 302
    assert response.headers['Location'].endswith('/dashboard')


def test_register_ajax_reports_errors_as_json(app, user):
    client = app.test_client()
    headers = {'X-Requested-With': 'XMLHttpRequest'}
    response = client.post('/register', data={'username': 'alice', 'email': 'new@example.com', 'password': 'hunter22'}, headers=headers)
    assert response.status_code == 400
    assert response.get_json() == {'success': False, 'errors': {'username': ['Username already taken.']}}

    response = client.post('/register', data={'username': 'dave', 'email': 'alice@example.com', 'password': 'hunter22'}, headers=headers)
    assert response.get_json()['errors'] == {'email': ['Email already in use.']}

    response = client.post('/register', data={'username': 'dave', 'email': 'dave@example.com', 'password': 'hunter22'}, headers=headers)
    assert response.get_json() == {'success': True}


def test_register_invalid_form_rerenders(app):
    response = app.test_client().post('/register', data={'username': 'x', 'email': 'bad', 'password': '1'})
    assert response.status_code == 400
    assert b'Register' in response.data


def test_login_with_wrong_password(app, user):
    response = app.test_client().post('/login', data={'username': user.username, 'password': 'wrong'})
    assert response.status_code == 401
    assert b'Invalid username or password.' in response.data


def test_guest_is_redirected_to_login(app):
    response = app.test_client().get('/dashboard')
    assert response.status_code == 302
    location = response.headers['Location']
    assert location.startswith('/login')
    assert 'next=' in location


def test_logout_clears_session(client):
    client.get('/logout')
    assert client.get('/profiles').status_code == 302


def test_update_account(app, client, session):
    response = client.post('/user/update', data={'username': 'alice2', 'email': 'alice2@example.com'})
    assert response.status_code == 302
    session.expire_all()
    user = session.scalar(select(User).filter_by(username='alice2'))
    assert user is not None and user.email == 'alice2@example.com'


def test_update_account_rejects_taken_email(app, client, session):
    make_user(session, 'bob')
    client.post('/user/update', data={'username': 'alice', 'email': 'bob@example.com'})
    session.expire_all()
    assert session.scalar(select(User).filter_by(username='alice')).email == 'alice@example.com'


def test_password_change(client, session, user):
    user_id = user.id
    client.post('/user/password/update', data={
        'current_password': 'wrong', 'new_password': 'brand-new-pass', 'password_confirmation': 'brand-new-pass',
    })
    session.expire_all()
    assert check_password_hash(session.get(User, user_id).password_hash, PASSWORD)

    client.post('/user/password/update', data={
        'current_password': PASSWORD, 'new_password': 'brand-new-pass', 'password_confirmation': 'brand-new-pass',
    })
    session.expire_all()
    assert check_password_hash(session.get(User, user_id).password_hash, 'brand-new-pass')


def test_password_change_requires_min_length(client, session, user):
    user_id = user.id
    client.post('/user/password/update', data={
        'current_password': PASSWORD, 'new_password': 'short', 'password_confirmation': 'short',
    })
    session.expire_all()
    assert check_password_hash(session.get(User, user_id).password_hash, PASSWORD)


def test_login_follows_local_next(app, user):
    response = app.test_client().post('/login?next=/profiles', data={'username': user.username, 'password': PASSWORD})
    assert response.headers['Location'].endswith('/profiles')


def test_login_ignores_off_site_next(app, user):
    for target in ('//evil.example/x', '/\\evil.example/x', 'https://evil.example/x'):
        response = app.test_client().post(f'/login?next={target}', data={'username': user.username, 'password': PASSWORD})
        assert response.status_code == 302
        location = response.headers['Location']
        assert 'evil.example' not in location
        assert location.endswith('/dashboard')


def test_register_page_renders(app):
    response = app.test_client().get('/register')
    assert response.status_code == 200
    assert b'<h1>Register</h1>' in response.data


def test_account_page_renders(client, user):
    response = client.get('/user/edit')
    assert response.status_code == 200
    assert b'My Account' in response.data
    assert user.email.encode() in response.data
