import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storefront.core.config import settings
from storefront.core.email import Notification, TemplateKind
from storefront.models import Order, OrderItem, Product, User
from storefront.models.base import Base
from storefront.services.account_service import AccountService
from storefront.services.entitlement_service import EntitlementService
from storefront.services.purchase_service import PurchaseService
from storefront.services.token_service import TokenService

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_PASSWORD = "Str0ng!Pass"  # nosec B105

# bcrypt cost 4 keeps hashing fast in tests
_BCRYPT_ROUNDS = 4


def create_test_jwt(
    user_id: uuid.UUID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    iat: datetime | None = None,
) -> str:
    """Create a signed session JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.
        iat: Issued-at time. Defaults to now.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": "model-storefront",
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": iat or now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeNotificationSink:
    """Records notifications; ``fail`` makes every send report failure."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []
        self.fail = False

    async def send(self, notification: Notification) -> bool:
        self.sent.append(notification)
        return not self.fail

    def of(self, template: TemplateKind) -> list[Notification]:
        return [n for n in self.sent if n.template is template]


class FakeUrlIssuer:
    """Signed-URL issuer that returns a predictable URL per key."""

    def __init__(self) -> None:
        self.issued: list[str] = []

    def issue(self, key: str) -> str:
        self.issued.append(key)
        return f"https://files.test/{key}?signature=test"


class FakeClock:
    """Controllable clock; starts at the current second."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test, created from the ORM metadata."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}", echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> FakeNotificationSink:
    return FakeNotificationSink()


@pytest.fixture
def url_issuer() -> FakeUrlIssuer:
    return FakeUrlIssuer()


@pytest.fixture
def token_service(db_session: AsyncSession, clock: FakeClock) -> TokenService:
    return TokenService(db_session, clock=clock)


@pytest.fixture
def account_service(
    db_session: AsyncSession,
    notifier: FakeNotificationSink,
    token_service: TokenService,
) -> AccountService:
    return AccountService(
        db_session,
        notifier=notifier,
        tokens=token_service,
        link_base_url="https://shop.test",
    )


@pytest.fixture
def purchase_service(
    db_session: AsyncSession,
    notifier: FakeNotificationSink,
    token_service: TokenService,
) -> PurchaseService:
    return PurchaseService(
        db_session,
        notifier=notifier,
        tokens=token_service,
        link_base_url="https://shop.test",
    )


@pytest.fixture
def entitlement_service(
    db_session: AsyncSession,
    token_service: TokenService,
    url_issuer: FakeUrlIssuer,
) -> EntitlementService:
    return EntitlementService(db_session, tokens=token_service, url_issuer=url_issuer)


# =============================================================================
# Data
# =============================================================================


@pytest_asyncio.fixture
async def product(db_session: AsyncSession) -> Product:
    """A catalog product priced at 1000 yen."""
    product = Product(
        name="ロボット",
        name_en="robot",
        price=1000,
        image_url="https://images.test/robot.png",
    )
    db_session.add(product)
    await db_session.commit()
    return product


@pytest_asyncio.fixture
async def other_product(db_session: AsyncSession) -> Product:
    product = Product(name="ドラゴン", name_en="dragon", price=2500)
    db_session.add(product)
    await db_session.commit()
    return product


async def make_user(
    db: AsyncSession,
    email: str,
    *,
    verified: bool = True,
    password: str | None = TEST_PASSWORD,
) -> User:
    """Insert and commit a user with a hashed password."""
    from storefront.core.auth import hash_password

    user = User(
        email=email,
        name="Test User",
        password_hash=hash_password(password) if password else None,
        email_verified=datetime.now(UTC) if verified else None,
    )
    db.add(user)
    await db.commit()
    return user


async def make_order(
    db: AsyncSession,
    product: Product,
    *,
    email: str,
    user_id: uuid.UUID | None = None,
    order_number: str | None = None,
) -> Order:
    """Insert and commit a paid order for one product."""
    order = Order(
        order_number=order_number or f"ORD{uuid.uuid4().hex[:9]}",
        order_email=email,
        user_id=user_id,
        is_paid=True,
        paid_at=datetime.now(UTC),
        total_amount=product.price,
        items=[
            OrderItem(
                product_id=product.id,
                name=product.name,
                name_en=product.name_en,
                price=product.price,
            )
        ],
    )
    db.add(order)
    await db.commit()
    return order


@pytest_asyncio.fixture
async def verified_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "member@example.com")


# =============================================================================
# API clients
# =============================================================================


@pytest_asyncio.fixture
async def client(
    session_factory,
    notifier: FakeNotificationSink,
    url_issuer: FakeUrlIssuer,
    clock: FakeClock,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with test DB and fake collaborators.

    No session cookie; use ``client.cookies.set(...)`` or ``auth_cookies``
    to authenticate.
    """
    from storefront.api.deps import get_clock
    from storefront.core.database import get_db
    from storefront.core.email import get_notification_sink
    from storefront.core.storage import get_signed_url_issuer
    from storefront.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: notifier
    app.dependency_overrides[get_signed_url_issuer] = lambda: url_issuer
    app.dependency_overrides[get_clock] = lambda: clock

    original_auth_secret = settings.auth_secret
    original_cookie_secure = settings.auth_cookie_secure
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    # httpx only returns Secure cookies over https
    settings.auth_cookie_secure = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    settings.auth_secret = original_auth_secret
    settings.auth_cookie_secure = original_cookie_secure
    app.dependency_overrides.clear()


def auth_cookies(user_id: uuid.UUID, **jwt_kwargs) -> dict[str, str]:
    """Cookie mapping carrying a valid session for ``user_id``."""
    return {settings.auth_cookie_name: create_test_jwt(user_id, **jwt_kwargs)}


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable for other tests to avoid
    flaky failures from rate limit triggers.
    """
    from storefront.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled


@pytest.fixture(autouse=True)
def fast_bcrypt() -> Iterator[None]:
    original_rounds = settings.bcrypt_rounds
    settings.bcrypt_rounds = _BCRYPT_ROUNDS
    yield
    settings.bcrypt_rounds = original_rounds
