import pytest
from werkzeug.security import generate_password_hash
from candycost import create_app
from candycost.models import db, User

USER_EMAIL = 'maria@confeitaria.com'
USER_PASSWORD = 'Doce@2024'
ADMIN_EMAIL = 'admin@confeitaria.com'
ADMIN_PASSWORD = 'Admin#2024'


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SECRET_KEY': 'test-secret',
    })
    yield app


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def create_user(app, email, password, role='user', first_name='Maria'):
    with app.app_context():
        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            first_name=first_name,
            last_name='Silva',
            role=role
        )
        db.session.add(user)
        db.session.commit()
        return user.id


def login(client, email, password):
    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def user_client(app):
    create_user(app, USER_EMAIL, USER_PASSWORD)
    return login(app.test_client(), USER_EMAIL, USER_PASSWORD)


@pytest.fixture
def admin_client(app):
    create_user(app, ADMIN_EMAIL, ADMIN_PASSWORD, role='admin', first_name='Ana')
    return login(app.test_client(), ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def api(user_client):
    """Small helpers that build catalog data through the HTTP API."""

    class Api:
        client = user_client

        def ingredient(self, name='Farinha', price=12.5, quantity=5, unit='kg', category='Secos'):
            response = user_client.post('/api/ingredients', json={
                'name': name, 'category': category, 'quantity': quantity, 'unit': unit, 'price': price
            })
            assert response.status_code == 201, response.get_json()
            return response.get_json()

        def product(self, name='Bolo', margin=60, minutes=0, is_also_ingredient=False, **extra):
            payload = {
                'name': name, 'category': 'Bolos', 'marginPercentage': margin,
                'preparationTimeMinutes': minutes, 'isAlsoIngredient': is_also_ingredient
            }
            payload.update(extra)
            response = user_client.post('/api/products', json=payload)
            assert response.status_code == 201, response.get_json()
            return response.get_json()

        def recipe(self, product_id, lines):
            return user_client.post(f'/api/products/{product_id}/recipes', json={'recipes': lines})

        def history(self, **params):
            return user_client.get('/api/price-history', query_string=params).get_json()

    return Api()
