"""Shared fixtures: app wired to the in-memory store, bearer headers, seeded catalogue"""

from datetime import datetime, timedelta

import pytest

from app import create_app
from tests.fakes import FakeStore
from utils.auth import issue_token


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def app(store):
    return create_app('testing', store=store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def make(user_id):
        token = issue_token(user_id, app.config['SECRET_KEY'])
        return {'Authorization': f'Bearer {token}'}
    return make


@pytest.fixture
def class_start():
    """A start time two days ahead at 18:00"""
    day = datetime.now() + timedelta(days=2)
    return day.replace(hour=18, minute=0, second=0, microsecond=0)


@pytest.fixture
def gym(store, class_start):
    """
    One Funcional and one Yoga class scheduled at `class_start`, and a
    package with 4 Yoga + 8 Funcional credits
    """
    funcional = store.add_class('Funcional Avanzado', 'Funcional Avanzado', capacity=10)
    yoga = store.add_class('Yoga Flow', 'Yoga', capacity=10)
    package_id = store.add_package('Mixto', [('Yoga', 4), ('Funcional', 8)])
    return {
        'funcional_class': funcional,
        'yoga_class': yoga,
        'funcional': store.add_schedule(funcional, class_start),
        'yoga': store.add_schedule(yoga, class_start),
        'package': package_id,
    }
