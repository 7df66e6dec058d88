import os
import sys
from pathlib import Path
from typing import Callable, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("AUTHCORE_ENVIRONMENT", "test")
os.environ.setdefault("AUTHCORE_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTHCORE_JWT_SECRET", "test-access-secret-0123456789abcdefghijklmnop")
os.environ.setdefault("AUTHCORE_JWT_REFRESH_SECRET", "test-refresh-secret-0123456789abcdefghijklmn")
os.environ.setdefault("AUTHCORE_REDIS_URL", "")
os.environ.setdefault("AUTHCORE_REDIS_TOKEN", "")
os.environ.setdefault("AUTHCORE_AUDIT_TOPIC_ARN", "")
os.environ.setdefault("AUTHCORE_AUDIT_WORKER_ENABLED", "false")
os.environ.setdefault("AUTHCORE_COOKIE_SECURE", "false")
os.environ.setdefault("AUTHCORE_LOG_JSON", "false")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from authcore.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from authcore.core.database import build_engine, engine, session_scope  # noqa: E402
from authcore.events_engine.dispatcher import AuditDispatcher  # noqa: E402
from authcore.events_engine.publisher import QueueEventPublisher  # noqa: E402
from authcore.main import create_app  # noqa: E402
from authcore.models import Base  # noqa: E402
from authcore.schemas.audit import AuditEvent  # noqa: E402
from authcore.services.bootstrap import bootstrap_admin  # noqa: E402
from authcore.services.cache import InMemoryPermissionCache, PermissionCacheService  # noqa: E402
from authcore.services.credentials import CredentialStore  # noqa: E402
from authcore.services.resolver import PermissionResolver  # noqa: E402
from authcore.services.role_store import RoleStore  # noqa: E402
from authcore.services.roles import RequestContext, RoleService  # noqa: E402
from authcore.services.signer import Signer, SignerConfig  # noqa: E402

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "correct horse battery staple"


class RecordingSink:
    """Audit sink that keeps events in memory."""

    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    def append(self, event: AuditEvent) -> None:
        self.events.append(event)

    def emit(self, action_type: str, *, performed_by=None, **fields) -> None:  # noqa: ANN001, ANN003
        self.append(AuditEvent(action_type=action_type, performed_by=performed_by, **fields))

    def actions(self) -> List[str]:
        return [event.action_type for event in self.events]


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def settings():
    return get_settings()


@pytest.fixture()
def signer(settings) -> Signer:  # noqa: ANN001
    return Signer(SignerConfig.from_settings(settings))


@pytest.fixture()
def permission_cache() -> InMemoryPermissionCache:
    return InMemoryPermissionCache()


@pytest.fixture()
def audit_dispatcher() -> AuditDispatcher:
    return AuditDispatcher(publisher=QueueEventPublisher(maxsize=1000), default_source="authcore")


@pytest.fixture()
def app(settings, permission_cache, audit_dispatcher):  # noqa: ANN001
    return create_app(settings, permission_cache=permission_cache, audit_dispatcher=audit_dispatcher)


@pytest.fixture()
def client(app) -> TestClient:  # noqa: ANN001
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def admin(client):  # noqa: ANN001
    with session_scope() as session:
        return bootstrap_admin(session, username=ADMIN_USERNAME, password=ADMIN_PASSWORD)


@pytest.fixture()
def admin_headers(client, admin) -> dict:  # noqa: ANN001
    response = client.post("/api/v1/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    response.raise_for_status()
    # Tests that exercise refresh set their own cookies.
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture()
def make_principal() -> Callable[..., object]:
    """Create a committed principal and return its id."""

    def factory(username: str, password: str = "s3cret-password", **kwargs):  # noqa: ANN001
        with session_scope() as session:
            principal = CredentialStore(session).create_principal(username=username, password=password)
            for field, value in kwargs.items():
                setattr(principal, field, value)
            return principal.id

    return factory


# Service-level fixtures. These hold a session open, so do not mix them with
# ``client`` in the same test.


@pytest.fixture()
def session():
    with session_scope() as db_session:
        yield db_session


@pytest.fixture()
def audit_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def cache_service(session, permission_cache) -> PermissionCacheService:  # noqa: ANN001
    return PermissionCacheService(permission_cache, PermissionResolver(RoleStore(session)), ttl_seconds=300)


@pytest.fixture()
def role_service(session, cache_service, audit_sink) -> RoleService:  # noqa: ANN001
    return RoleService(session, cache_service=cache_service, audit=audit_sink)


@pytest.fixture()
def context() -> RequestContext:
    return RequestContext(ip_address="127.0.0.1", user_agent="pytest")


@pytest.fixture()
def file_sessions(tmp_path):  # noqa: ANN001
    """Session factory over a file-backed database, so sessions get separate connections."""

    file_engine = build_engine(f"sqlite:///{tmp_path / 'authcore.db'}")
    Base.metadata.create_all(bind=file_engine)
    yield sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False, future=True)
    file_engine.dispose()
