"""Shared fixtures: per-test SQLite database, scripted gateway, recorded notifications."""

import os

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("PAYMENT_GATEWAY", "manual")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_stayledger")

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from stayledger import database
from stayledger.core.exceptions import GatewayUnavailable
from stayledger.database import close_db, commit, configure_engine, init_db
from stayledger.gateways.manual import ManualGateway
from stayledger.models.property import Property
from stayledger.services.booking_service import booking_service
from stayledger.services.gateway_service import gateway_service
from stayledger.services.notification_service import notification_service
from stayledger.services.payment_service import payment_service
from stayledger.utils.dates import today_utc


class RecordingSender:
    """Notification sender that keeps every delivered event."""

    def __init__(self):
        self.sent: list[tuple[str, dict]] = []
        self.fail = False

    async def send(self, event, payload):
        if self.fail:
            raise httpx.ConnectError("notification service down")
        self.sent.append((event, payload))

    def events(self, name: str) -> list[dict]:
        return [payload for event, payload in self.sent if event == name]


class ScriptedGateway(ManualGateway):
    """Manual gateway that can be told to be unavailable for the next N calls."""

    def __init__(self):
        super().__init__()
        self.unavailable_initializations = 0
        self.unavailable_verifications = 0
        self.initialize_calls = 0
        self.verify_calls = 0
        # Awaited inside initialize_transaction, while the network call is "in flight"
        self.during_initialize = None

    async def initialize_transaction(self, amount, currency, reference, metadata=None):
        self.initialize_calls += 1
        if self.unavailable_initializations:
            self.unavailable_initializations -= 1
            raise GatewayUnavailable("manual", "scripted outage")
        if self.during_initialize is not None:
            await self.during_initialize()
        return await super().initialize_transaction(amount, currency, reference, metadata)

    async def verify_transaction(self, reference):
        self.verify_calls += 1
        if self.unavailable_verifications:
            self.unavailable_verifications -= 1
            raise GatewayUnavailable("manual", "scripted outage")
        return await super().verify_transaction(reference)


@pytest.fixture(autouse=True)
def gateway():
    gateway_service.reset()
    scripted = ScriptedGateway()
    gateway_service.register(scripted)
    yield scripted
    gateway_service.reset()


@pytest.fixture(autouse=True)
def sender():
    original = notification_service.sender
    notification_service.reset()
    recording = RecordingSender()
    notification_service.sender = recording
    yield recording
    notification_service.sender = original
    notification_service.reset()


@pytest.fixture
async def engine(tmp_path):
    engine = configure_engine(f"sqlite+aiosqlite:///{tmp_path / 'stayledger.db'}")
    await init_db()
    yield engine
    await close_db()


@pytest.fixture
def session_maker(engine):
    return database.get_session_maker()


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(engine):
    from stayledger.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def stay():
    """Dates relative to a month from today: ``stay(0, 3)`` is a 3-night stay."""

    def make(offset: int = 0, nights: int = 3) -> tuple[date, date]:
        check_in = today_utc() + timedelta(days=30 + offset)
        return check_in, check_in + timedelta(days=nights)

    return make


@pytest.fixture
def make_property(db):
    async def factory(**overrides) -> Property:
        values = {
            "realtor_id": uuid4(),
            "title": "Lekki Phase 1 Two-Bedroom",
            "nightly_rate": 50_000,
            "currency": "NGN",
            "cleaning_fee": 5_000,
            "security_deposit": 20_000,
            "tax_rate_percent": Decimal("0"),
            "max_occupancy": 4,
            "is_active": True,
            "is_approved": True,
        }
        values.update(overrides)
        prop = Property(**values)
        db.add(prop)
        await commit(db)
        return prop

    return factory


@pytest.fixture
async def listing(make_property):
    """Scenario property: 50,000/night, cleaning 5,000, deposit 20,000, no tax."""
    return await make_property()


@pytest.fixture
def book(db, listing, stay):
    # Captured now: a rollback in the test expires the instance
    default_property_id = listing.id

    async def factory(offset: int = 0, nights: int = 3, prop=None, **kwargs):
        check_in, check_out = stay(offset, nights)
        booking = await booking_service.create_booking(
            db,
            property_id=prop.id if prop is not None else default_property_id,
            guest_id=kwargs.pop("guest_id", uuid4()),
            check_in=kwargs.pop("check_in", check_in),
            check_out=kwargs.pop("check_out", check_out),
            guest_count=kwargs.pop("guest_count", 2),
            **kwargs,
        )
        await commit(db)
        return booking

    return factory


@pytest.fixture
def settle(db):
    """Record a received bank transfer, as an operator would."""

    async def record(reference, amount=None, currency=None):
        payment = await payment_service.record_transfer(
            db, reference, amount=amount, currency=currency
        )
        await commit(db)
        return payment

    return record


@pytest.fixture
def decline(db):
    async def record(reference):
        payment = await payment_service.decline_transfer(db, reference)
        await commit(db)
        return payment

    return record


@pytest.fixture
def pay(db, settle):
    """Initialize, settle and verify a booking's payment through the manual gateway."""

    async def run(booking, amount=None, currency=None):
        payment = await payment_service.initialize(db, booking.id)
        await commit(db)
        await settle(payment.reference, amount=amount, currency=currency)
        result = await payment_service.verify(db, payment.reference)
        await commit(db)
        return result

    return run


@pytest.fixture
def paid_booking(book, pay):
    async def factory(**kwargs):
        booking = await book(**kwargs)
        await pay(booking)
        return booking

    return factory
