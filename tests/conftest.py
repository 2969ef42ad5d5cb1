import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.db.dal import Database
from app.main import create_app
from app.models.user import User


@pytest.fixture
def settings(tmp_path) -> Settings:
    s = Settings(
        data_dir=tmp_path,
        db_path=tmp_path / "test.sqlite3",
        debug=False,
        seed_demo_data=True,
        rate_broadcast_interval_seconds=3600,
        smtp_host=None,
        sms_gateway_url=None,
        payment_key_id="key_test",
        payment_key_secret="test-secret",
    )
    s.init_post_load()
    return s


@pytest.fixture
def app(settings):
    return create_app(settings_override=settings)


@pytest.fixture
def client(app):
    # No lifespan: side effects run inline, so audit rows are visible immediately
    return TestClient(app)


@pytest.fixture
def live_client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app, settings) -> Database:
    return Database(settings.db_path)


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    return _bearer("demo-admin-token")


@pytest.fixture
def john_headers() -> dict:
    return _bearer("demo-john-token")


@pytest.fixture
def jane_headers() -> dict:
    return _bearer("demo-jane-token")


@pytest.fixture
def john(db) -> User:
    return User.from_row(db.get_user_by_token("demo-john-token"))


@pytest.fixture
def admin(db) -> User:
    return User.from_row(db.get_user_by_token("demo-admin-token"))


@pytest.fixture
def jane(db) -> User:
    return User.from_row(db.get_user_by_token("demo-jane-token"))
