# tests/conftest.py
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.db import get_db, make_engine
from app.models.base import Base

# -----------------------------------------------------------------------------
# IMPORTANT: ensure all ORM tables are registered in metadata before create_all
# -----------------------------------------------------------------------------
import app.models.project  # noqa: F401
import app.models.profile  # noqa: F401
import app.models.production_batch  # noqa: F401
import app.models.element  # noqa: F401
import app.models.element_event  # noqa: F401
import app.models.delivery  # noqa: F401
import app.models.delivery_item  # noqa: F401
import app.models.notification  # noqa: F401


@pytest.fixture(scope="session")
def engine():
    """
    Default: one shared in-memory SQLite connection (StaticPool), schema from metadata.
    Point TEST_DATABASE_URL at a Postgres database to run the same suite there.
    """
    url = settings.test_database_url
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}

    eng = make_engine(url, **kwargs)
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture()
def db(engine):
    """
    Isolation pattern (SQLAlchemy 2.x):
      - connection per test
      - OUTER transaction begun before anything else
      - session joins it with create_savepoint: commit()/rollback() inside
        code under test only release/rollback a SAVEPOINT

    Teardown rolls back the outer transaction, so nothing survives a test.
    """
    connection = engine.connect()
    outer = connection.begin()

    session = Session(
        bind=connection,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )

    try:
        yield session
    finally:
        session.close()
        if outer.is_active:
            outer.rollback()
        connection.close()


@pytest.fixture()
def client(db):
    """TestClient whose requests run inside the test's `db` transaction."""
    from app.main import app

    def _override_get_db():
        try:
            yield db
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_db, None)
