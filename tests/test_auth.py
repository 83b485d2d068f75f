import pytest
from candycost.models import AuditLog
from conftest import USER_EMAIL, USER_PASSWORD


def register(client, **overrides):
    payload = {'email': 'joao@confeitaria.com', 'password': 'Bolo#2024', 'firstName': 'João'}
    payload.update(overrides)
    return client.post('/api/auth/register', json=payload)


def test_register_logs_user_in(client):
    response = register(client)

    assert response.status_code == 201
    assert response.get_json()['user']['role'] == 'user'
    me = client.get('/api/auth/user')
    assert me.status_code == 200
    assert me.get_json()['email'] == 'joao@confeitaria.com'


@pytest.mark.parametrize('password', ['curta1!', 'semmaiuscula1!', 'SEMMINUSCULA1!', 'SemNumero!!', 'SemEspecial12'])
def test_register_rejects_weak_password(client, password):
    response = register(client, password=password)
    assert response.status_code == 400
    assert 'senha' in response.get_json()['message'].lower()


def test_register_rejects_duplicate_email(client):
    register(client)
    response = register(client)
    assert response.status_code == 400


def test_register_rejects_invalid_email(client):
    response = register(client, email='sem-arroba')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Email inválido'


def test_login_with_wrong_password(app, user_client):
    response = app.test_client().post('/api/auth/login', json={'email': USER_EMAIL, 'password': 'Errada#123'})

    assert response.status_code == 401
    with app.app_context():
        assert AuditLog.query.filter_by(action='LOGIN_FAILURE').count() == 1


def test_logout_ends_session(user_client):
    assert user_client.post('/api/auth/logout').status_code == 200
    assert user_client.get('/api/auth/user').status_code == 401


def test_logout_redirect(user_client):
    response = user_client.get('/api/logout')
    assert response.status_code == 302
    assert user_client.get('/api/products').status_code == 401


def test_non_admin_is_forbidden(app, user_client):
    response = user_client.get('/api/admin/users')

    assert response.status_code == 403
    with app.app_context():
        assert AuditLog.query.filter_by(action='ACCESS_DENIED').count() == 1


def test_admin_routes_require_login(client):
    assert client.get('/api/admin/users').status_code == 401


def test_admin_lists_and_promotes_users(admin_client, user_client):
    users = admin_client.get('/api/admin/users').get_json()
    assert {u['email'] for u in users} == {USER_EMAIL, 'admin@confeitaria.com'}

    response = admin_client.post('/api/admin/promote-user', json={'email': USER_EMAIL})

    assert response.status_code == 200
    assert response.get_json()['user']['role'] == 'admin'
    assert user_client.get('/api/admin/users').status_code == 200


def test_admin_cannot_delete_self(admin_client):
    me = admin_client.get('/api/auth/user').get_json()
    assert admin_client.delete(f"/api/admin/users/{me['id']}").status_code == 400


def test_admin_resets_password(app, admin_client, user_client):
    user = user_client.get('/api/auth/user').get_json()

    response = admin_client.put(f"/api/admin/users/{user['id']}/reset-password", json={'newPassword': 'Nova@Senha1'})

    assert response.status_code == 200
    login = app.test_client().post('/api/auth/login', json={'email': USER_EMAIL, 'password': 'Nova@Senha1'})
    assert login.status_code == 200


def test_profile_and_password_change(app, user_client):
    updated = user_client.put('/api/user/profile', json={'firstName': 'Mariana'}).get_json()
    assert updated['firstName'] == 'Mariana'

    wrong = user_client.put('/api/user/change-password', json={
        'currentPassword': 'Errada#123', 'newPassword': 'Outra@Senha9'
    })
    assert wrong.status_code == 400

    ok = user_client.put('/api/user/change-password', json={
        'currentPassword': USER_PASSWORD, 'newPassword': 'Outra@Senha9'
    })
    assert ok.status_code == 200
    login = app.test_client().post('/api/auth/login', json={'email': USER_EMAIL, 'password': 'Outra@Senha9'})
    assert login.status_code == 200


def test_unknown_route_is_json_404(user_client):
    response = user_client.get('/api/nao-existe')
    assert response.status_code == 404
    assert response.get_json()['message'] == 'Recurso não encontrado'
