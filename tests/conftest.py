import pytest
from flask import g

from app import create_app
from auth import hash_password
from config import TestConfig
from models import Image, Restaurant, User, Visit, db


@pytest.fixture
def app():
    app = create_app(TestConfig)

    # Requests reuse the fixture's app context, so drop the user Flask-Login cached on g
    @app.before_request
    def forget_cached_user():
        g.pop('_login_user', None)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(email, password='password123', admin=False, first_name=None, last_name=None):
        user = User(
            email=email,
            password=hash_password(password) if password else None,
            admin=admin,
            first_name=first_name,
            last_name=last_name,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user('alice@example.com', first_name='Alice', last_name='Martin')


@pytest.fixture
def bob(make_user):
    return make_user('bob@example.com', first_name='Bob')


@pytest.fixture
def admin(make_user):
    return make_user('root@example.com', admin=True)


@pytest.fixture
def restaurant(app):
    place = Restaurant(name='Chez Léon', latitude=50.8476, longitude=4.3542,
                       address='Rue des Bouchers 18, Bruxelles')
    db.session.add(place)
    db.session.commit()
    return place


@pytest.fixture
def visit(alice, restaurant):
    review = Visit(user_id=alice.id, restaurant_id=restaurant.id, rating=4,
                   review='Great mussels', price='€€')
    db.session.add(review)
    db.session.flush()
    db.session.add_all([
        Image(url='https://img.example.com/1.jpg', caption='Mussels', visit_id=review.id),
        Image(url='https://img.example.com/2.jpg', visit_id=review.id),
    ])
    db.session.commit()
    return review


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess['_user_id'] = user.email
    return _login
