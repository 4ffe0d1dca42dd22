"""
Pytest configuration and fixtures for record access tests.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from record_access import RecordAccessor, SoftDeleteConfig
from record_access.models import Base
from tests.models import Tag, User


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    # Create all tables
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def accessor(db_session):
    """Accessor with the default is_deleted = 'N' visibility rule."""
    return RecordAccessor(db_session, SoftDeleteConfig())


@pytest.fixture
def seed_users(db_session):
    """
    Ten visible users with ids 1..10.

    user_id = id % 3, so the groups are 1 -> 4 rows, 2 -> 3 rows, 0 -> 3 rows.
    """
    users = []
    for i in range(1, 11):
        user = User(id=i, user_id=i % 3, user_name=f"user{i}")
        user.set_default_values()
        users.append(user)
    db_session.add_all(users)
    db_session.commit()
    return users


@pytest.fixture
def seed_tags(db_session):
    """Three tags (table without soft delete flag)."""
    tags = [Tag(id=i, name=name) for i, name in enumerate(["red", "green", "blue"], start=1)]
    db_session.add_all(tags)
    db_session.commit()
    return tags
