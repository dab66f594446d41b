# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ENCRYPTION_KEY", "dGVzdC1lbmNyeXB0aW9uLWtleS0zMi1ieXRlcyEhISE=")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from secret_santa.core.security import create_access_token  # noqa: E402
from secret_santa.db.session import Base  # noqa: E402
from secret_santa.db.session import get_db as app_get_session  # noqa: E402
from secret_santa.main import app as fastapi_app  # noqa: E402
from secret_santa.models import Exclusion, Group, Participant, User  # noqa: E402

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[[str], User]:
    """Return a factory persisting users by display name."""

    def _make_user(name: str) -> User:
        user = User(name=name)
        db_session.add(user)
        db_session.flush()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def owner(make_user: Callable[[str], User]) -> User:
    return make_user("Alice")


@pytest.fixture()
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Return a helper building bearer headers for a user."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture()
def owner_headers(owner: User, auth_headers: Callable[[User], dict[str, str]]) -> dict[str, str]:
    return auth_headers(owner)


@pytest.fixture()
def group(db_session: Session, owner: User) -> Group:
    """A group owned by ``owner`` with the owner as first participant."""
    group = Group(name="Office exchange", budget="20 EUR", owner_id=owner.id)
    db_session.add(group)
    db_session.flush()
    db_session.add(Participant(group_id=group.id, user_id=owner.id))
    db_session.flush()
    db_session.refresh(group)
    return group


@pytest.fixture()
def members(
    db_session: Session,
    group: Group,
    owner: User,
    make_user: Callable[[str], User],
) -> list[tuple[User, Participant]]:
    """Owner plus three more users, all participants of ``group``."""
    result: list[tuple[User, Participant]] = []
    for user in [owner, make_user("Bob"), make_user("Carol"), make_user("Dave")]:
        participant = db_session.query(Participant).filter_by(
            group_id=group.id, user_id=user.id
        ).one_or_none()
        if participant is None:
            participant = Participant(group_id=group.id, user_id=user.id)
            db_session.add(participant)
            db_session.flush()
        result.append((user, participant))
    return result


@pytest.fixture()
def drawn_pairs(
    db_session: Session,
    group: Group,
    members: list[tuple[User, Participant]],
) -> list[tuple[User, Participant]]:
    """Members with a fixed cycle Alice -> Bob -> Carol -> Dave -> Alice, drawn."""
    participants = [participant for _, participant in members]
    for index, participant in enumerate(participants):
        participant.giftee_id = participants[(index + 1) % len(participants)].id
    group.is_drawn = True
    db_session.flush()
    return members


@pytest.fixture()
def exclude(db_session: Session, group: Group) -> Callable[[Participant, Participant], Exclusion]:
    """Return a helper persisting an exclusion between two participants of ``group``."""

    def _exclude(a: Participant, b: Participant) -> Exclusion:
        exclusion = Exclusion(group_id=group.id, participant_a_id=a.id, participant_b_id=b.id)
        db_session.add(exclusion)
        db_session.flush()
        return exclusion

    return _exclude
