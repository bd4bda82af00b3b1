import pytest
import os
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SHOPIFY_API_SECRET", "test-shopify-secret")

import b2bportal.models  # noqa: F401
from b2bportal.core.deps import get_db, get_platform
from b2bportal.db.base import Base
from b2bportal.main import app
from b2bportal.services.commerce_platform import StubCommercePlatform


@pytest.fixture()
def stub_platform():
    return StubCommercePlatform()


@pytest.fixture()
def test_context(stub_platform):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_platform] = lambda: stub_platform

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
