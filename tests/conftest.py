"""
SchoolHub - Test Configuration and Fixtures
"""
import os
import tempfile
from datetime import date

# Configure before the application is imported
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['STORAGE_MODE'] = 'local'
os.environ['UPLOAD_DIR'] = tempfile.mkdtemp(prefix='schoolhub-uploads-')

import pytest
from faker import Faker
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from schoolhub.config.db import Base, get_db
from schoolhub.core.security import create_access_token, get_password_hash
from schoolhub.main import app
from schoolhub.models.models import Book, Student, User
from schoolhub.services.storage import LocalStorage, get_storage

fake = Faker()

test_engine = create_engine(
    'sqlite://',
    connect_args={'check_same_thread': False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=test_engine, autoflush=False, autocommit=False)

PASSWORD = 'secret123'


@pytest.fixture
def db_session():
    """Fresh in-memory database for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path), '/uploads')


@pytest.fixture
def client(db_session, storage):
    """Test client sharing the test session and a tmp_path storage"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    def _make(role='user', username=None, password=PASSWORD, **fields):
        user = User(
            username=username or f'user_{fake.unique.user_name()}',
            name=fake.name(),
            email=fake.unique.email(),
            password_hash=get_password_hash(password),
            role=role,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token({'username': user.username, 'id': user.id})
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def make_book(db_session):
    def _make(owner=None, **fields):
        values = {
            'title': fake.sentence(nb_words=3).rstrip('.'),
            'author': fake.name(),
            'url': fake.image_url(),
            'likes': 0,
        }
        values.update(fields)
        book = Book(user_id=owner.id if owner else None, **values)
        db_session.add(book)
        db_session.commit()
        db_session.refresh(book)
        return book
    return _make


def student_payload(**overrides):
    payload = {
        'firstName': 'John',
        'lastName': 'Doe',
        'dateOfBirth': '2012-01-01',
        'streetAddress': '123 Main St',
        'city': 'Lisbon',
        'postalCode': '1000-001',
        'country': 'Portugal',
        'nationality': 'Portuguese',
        'passportNumber': 'PT123456',
        'passportExpiryDate': '2030-01-01',
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_student(db_session):
    def _make(guardian, **fields):
        values = {
            'first_name': fake.first_name(),
            'last_name': fake.last_name(),
            'date_of_birth': date(2012, 1, 1),
            'street_address': fake.street_address(),
            'city': 'Lisbon',
            'postal_code': '1000-001',
            'country': 'Portugal',
            'nationality': 'Portuguese',
            'passport_number': fake.bothify('PT######'),
            'passport_expiry_date': date(2030, 1, 1),
        }
        values.update(fields)
        student = Student(user_id=guardian.id if guardian else None, **values)
        db_session.add(student)
        db_session.commit()
        db_session.refresh(student)
        return student
    return _make
