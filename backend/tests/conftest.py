from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from email.message import EmailMessage

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.core.config import Settings, settings
from app.core.passwords import PasswordHasher
from app.models.base import Base
from app.providers.mail import (
    MailAuthenticationError,
    MailConnectionError,
    MailTransport,
    TransportConfig,
)
from app.repositories.memory_account_store import InMemoryAccountStore
from app.services.email_delivery import EmailDeliveryService
from app.services.identity import IdentityOrchestrator
from app.services.verification_challenges import VerificationChallengeManager

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# In-memory SQLite shared across the session's connections
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Lowest bcrypt cost; keeps hashing fast in tests
FAST_BCRYPT_ROUNDS = 4


def make_settings(**overrides) -> Settings:
    """Build isolated Settings for a test.

    Defaults to production mode with a configured sender, so real
    delivery (through the fake transport) is used.
    """
    values: dict = {
        "environment": "production",
        "database_password": "not-the-default-password",
        "auth_secret": TEST_AUTH_SECRET,
        "email_user": "sender@gmail.com",
        "email_app_password": "app-password",
        "email_retry_delay_seconds": 0,
    }
    values.update(overrides)
    return Settings(**values)


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeMailServer:
    """Transport factory that records activity instead of using the network.

    Failures are scripted per hostname: add a host to ``failing_verify``
    or ``failing_send`` to make that stage raise.

    Attributes:
        configs: Every TransportConfig a transport was built for.
        verified: Configs whose verify() was called, in order.
        sent: (config, message) pairs for every send() call, in order.
    """

    def __init__(self) -> None:
        self.configs: list[TransportConfig] = []
        self.verified: list[TransportConfig] = []
        self.sent: list[tuple[TransportConfig, EmailMessage]] = []
        self.failing_verify: set[str] = set()
        self.failing_send: set[str] = set()

    def __call__(self, config: TransportConfig) -> MailTransport:
        self.configs.append(config)
        return _FakeTransport(config, self)

    @property
    def delivered(self) -> list[tuple[TransportConfig, EmailMessage]]:
        """Sends that succeeded."""
        return [
            (config, message)
            for config, message in self.sent
            if config.hostname not in self.failing_send
        ]


class _FakeTransport(MailTransport):
    def __init__(self, config: TransportConfig, server: FakeMailServer) -> None:
        super().__init__(config)
        self._server = server

    async def verify(self) -> None:
        self._server.verified.append(self.config)
        if self.config.hostname in self._server.failing_verify:
            raise MailAuthenticationError(
                "535 Username and Password not accepted",
                smtp_code=535,
                command="verify",
            )

    async def send(self, message: EmailMessage) -> str:
        self._server.sent.append((self.config, message))
        if self.config.hostname in self._server.failing_send:
            raise MailConnectionError("Connection refused", command="send")
        return str(message["Message-ID"])


# =============================================================================
# Unit fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock for challenge expiry."""
    return FakeClock()


@pytest.fixture
def store() -> InMemoryAccountStore:
    """Empty in-memory account store."""
    return InMemoryAccountStore()


@pytest.fixture
def mail_server() -> FakeMailServer:
    """Recording transport factory."""
    return FakeMailServer()


@pytest.fixture
def password_hasher() -> PasswordHasher:
    """Fast bcrypt hasher."""
    return PasswordHasher(rounds=FAST_BCRYPT_ROUNDS)


@pytest.fixture
def make_orchestrator(
    store: InMemoryAccountStore,
    mail_server: FakeMailServer,
    password_hasher: PasswordHasher,
    clock: FakeClock,
) -> Callable[..., IdentityOrchestrator]:
    """Build an orchestrator over the shared fakes.

    Keyword arguments are Settings overrides (see make_settings).
    """

    def build(**overrides) -> IdentityOrchestrator:
        test_settings = make_settings(**overrides)
        return IdentityOrchestrator(
            store=store,
            challenges=VerificationChallengeManager(store, now=clock),
            email_service=EmailDeliveryService(
                test_settings, mail_server, retry_delay=0
            ),
            password_hasher=password_hasher,
            settings=test_settings,
        )

    return build


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """In-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    store: InMemoryAccountStore,
    mail_server: FakeMailServer,
    password_hasher: PasswordHasher,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the app with fake collaborators.

    Sets up:
    - In-memory account store instead of the SQL store
    - Email service over the recording transport factory
    - Test signing secret, non-secure cookies, rate limiting off
    """
    from app.api.deps import (
        get_account_store,
        get_email_service,
        get_password_hasher,
    )
    from app.core.rate_limiting import limiter
    from app.main import app

    app.dependency_overrides[get_account_store] = lambda: store
    app.dependency_overrides[get_email_service] = lambda: EmailDeliveryService(
        settings, mail_server, retry_delay=0
    )
    app.dependency_overrides[get_password_hasher] = lambda: password_hasher

    original_auth_secret = settings.auth_secret
    original_cookie_secure = settings.auth_cookie_secure
    original_limiter_enabled = limiter.enabled
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.auth_cookie_secure = False
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup
    settings.auth_secret = original_auth_secret
    settings.auth_cookie_secure = original_cookie_secure
    limiter.enabled = original_limiter_enabled
    app.dependency_overrides.clear()
