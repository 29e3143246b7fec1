import os
import sys
import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'test_powerbrief.db'}")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("META_TOKEN_ENCRYPTION_KEY", "0123456789abcdef" * 4)

from powerbrief.auth.dependencies import AuthContext, get_current_user, get_optional_user
from powerbrief.db.base import Base, SessionLocal, engine, init_db
from powerbrief.db.deps import get_session
from powerbrief.db.models import Brand, UgcCreator
from powerbrief.main import app
from powerbrief.services.token_crypto import calculate_expiration, encrypt_token


TEST_USER_ID = "00000000-0000-0000-0000-0000000000aa"
OTHER_USER_ID = "00000000-0000-0000-0000-0000000000bb"


@pytest.fixture(scope="session", autouse=True)
def create_schema() -> None:
    Base.metadata.drop_all(bind=engine)
    init_db()


@pytest.fixture()
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        with engine.begin() as connection:
            for table in reversed(Base.metadata.sorted_tables):
                connection.execute(table.delete())


@pytest.fixture()
def auth_context() -> AuthContext:
    return AuthContext(user_id=TEST_USER_ID, email="owner@example.com", full_name="Test Owner")


@pytest.fixture()
def override_dependencies(db_session, auth_context):
    def get_session_override():
        try:
            yield db_session
        finally:
            pass

    def get_user_override():
        return auth_context

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_current_user] = get_user_override
    app.dependency_overrides[get_optional_user] = get_user_override
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_client(override_dependencies):
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def brand(db_session) -> Brand:
    record = Brand(user_id=TEST_USER_ID, name="Acme Skincare", email_identifier="acme")
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


@pytest.fixture()
def connected_brand(db_session, brand) -> Brand:
    sealed = encrypt_token("meta-access-token")
    brand.meta_access_token = sealed.encrypted_token
    brand.meta_access_token_iv = sealed.iv
    brand.meta_access_token_auth_tag = sealed.auth_tag
    brand.meta_access_token_expires_at = calculate_expiration(3600)
    brand.meta_default_ad_account_id = "act_123"
    db_session.commit()
    db_session.refresh(brand)
    return brand


@pytest.fixture()
def creator(db_session, brand) -> UgcCreator:
    record = UgcCreator(
        brand_id=brand.id,
        user_id=TEST_USER_ID,
        name="Casey Creator",
        email="casey@example.com",
        status="Active",
        contract_status="not signed",
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


def random_id() -> str:
    return str(uuid.uuid4())
