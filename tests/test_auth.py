"""
Accounts and bearer tokens.
"""
import pytest

from services.auth_tokens import register_user, authenticate, hash_token, bearer_token_from_header
from services.errors import ConflictError, ValidationError, AuthError
from tests.factories import UserFactory


class TestAccounts:

    def test_register_normalizes_email_and_grants_user_role(self, db):
        user = register_user(db, '  Jane@Example.com ', 'longenough', full_name='Jane')
        assert user.email == 'jane@example.com'
        assert user.roles == {'user'}
        assert not user.is_admin

    def test_duplicate_email(self, db):
        register_user(db, 'dup@example.com', 'longenough')
        with pytest.raises(ConflictError):
            register_user(db, 'DUP@example.com', 'longenough')

    @pytest.mark.parametrize("email, password", [
        ('not-an-email', 'longenough'),
        ('a@example.com', 'short'),
        ('', ''),
    ])
    def test_invalid_credentials(self, db, email, password):
        with pytest.raises(ValidationError):
            register_user(db, email, password)

    def test_authenticate(self, db):
        UserFactory.create(db, email='login@example.com')
        user = authenticate(db, 'login@example.com', UserFactory.DEFAULT_PASSWORD)
        assert user.email == 'login@example.com'

        with pytest.raises(AuthError):
            authenticate(db, 'login@example.com', 'wrong-password')

    def test_token_is_stored_hashed(self, db):
        user_id = UserFactory.create(db)
        token = UserFactory.headers(db, user_id)['Authorization'].split(' ', 1)[1]
        row = db.execute("SELECT token_hash FROM api_tokens WHERE user_id = %s", (user_id,)).fetchone()
        assert row['token_hash'] == hash_token(token)
        assert token not in row['token_hash']

    @pytest.mark.parametrize("header, expected", [
        ('Bearer abc', 'abc'),
        ('Bearer   ', None),
        ('Basic abc', None),
        (None, None),
    ])
    def test_bearer_header_parsing(self, header, expected):
        assert bearer_token_from_header(header) == expected


class TestAuthRoutes:

    def test_register_login_me_logout(self, client):
        resp = client.post('/api/auth/register', json={
            'email': 'flow@example.com', 'password': 'longenough', 'fullName': 'Flow'
        })
        assert resp.status_code == 201
        assert resp.get_json()['user']['roles'] == ['user']

        resp = client.post('/api/auth/login', json={'email': 'flow@example.com', 'password': 'longenough'})
        assert resp.status_code == 200
        headers = {'Authorization': f"Bearer {resp.get_json()['token']}"}

        me = client.get('/api/auth/me', headers=headers)
        assert me.status_code == 200
        assert me.get_json()['user']['fullName'] == 'Flow'

        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    def test_bad_login_is_401(self, client):
        resp = client.post('/api/auth/login', json={'email': 'ghost@example.com', 'password': 'whatever1'})
        assert resp.status_code == 401
        assert resp.get_json()['success'] is False

    def test_garbage_token_is_401(self, client):
        assert client.get('/api/auth/me', headers={'Authorization': 'Bearer nope'}).status_code == 401


class TestSupplierSignup:

    def test_signup_creates_supplier_profile(self, client):
        resp = client.post('/api/suppliers/signup', json={
            'email': 'factory@example.com',
            'password': 'longenough',
            'companyName': 'Band Works BV',
            'contactPhone': '+31 10 123 4567',
        })
        assert resp.status_code == 201
        data = resp.get_json()
        assert sorted(data['user']['roles']) == ['supplier', 'user']
        assert data['supplier']['companyName'] == 'Band Works BV'
        assert data['supplier']['contactEmail'] == 'factory@example.com'

        listed = client.get('/api/suppliers').get_json()['suppliers']
        assert listed == [{'id': data['supplier']['id'], 'companyName': 'Band Works BV'}]

    def test_signup_requires_company(self, client):
        resp = client.post('/api/suppliers/signup', json={'email': 'x@example.com', 'password': 'longenough'})
        assert resp.status_code == 400
