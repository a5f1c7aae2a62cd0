"""Backend fixtures: in-memory SQLite database, seeded devices, API client."""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPERATOR_TOKEN", "integration-operator-token")
os.environ.setdefault("SWEEP_INTERVAL_SECONDS", "0")

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from serra_backend import models  # noqa: F401  registers every table on Base.metadata
from serra_backend.config import settings
from serra_backend.database import Base, get_db
from serra_backend.main import app
from serra_backend.models.actuator import Actuator
from serra_backend.models.device import Device
from serra_backend.services import discovery_service, identity_service, liveness_service
from serra_backend.services.discovery_service import ActuatorAnnouncement

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
SECRET = "ab" * 32


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@dataclass
class SeededDevice:
    device: Device
    secret: str
    relay: Actuator
    fan: Actuator

    @property
    def composite_id(self) -> str:
        return self.device.composite_device_id


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def register_device(db_session) -> Callable[..., Device]:
    def _register(project_id: str = "PROJ1", slot_number: int = 3, name: str = "Greenhouse North", **kwargs) -> Device:
        return identity_service.issue_identity(db_session, project_id, slot_number, name, **kwargs)

    return _register


@pytest.fixture
def seeded_device(db_session, register_device) -> SeededDevice:
    """Bound, online device at T0 with one relay and one PWM actuator."""
    device = register_device(now=T0)
    liveness_service.record_heartbeat(db_session, device.composite_device_id, SECRET, firmware_version="3.2.0", now=T0)
    discovery_service.register_actuators(
        db_session,
        device,
        [
            ActuatorAnnouncement(local_id="relay_1", actuator_type="relay"),
            ActuatorAnnouncement(local_id="fan_pwm", actuator_type="pwm", supports_pwm=True),
        ],
        now=T0,
    )
    db_session.commit()
    actuators = {a.local_id: a for a in db_session.query(Actuator).filter(Actuator.device_id == device.id)}
    return SeededDevice(device=device, secret=SECRET, relay=actuators["relay_1"], fan=actuators["fan_pwm"])


@pytest.fixture
def client(db_session) -> Iterator[TestClient]:
    def _override_get_db():
        try:
            yield db_session
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def operator_headers() -> dict:
    return {"Authorization": f"Bearer {settings.OPERATOR_TOKEN}"}


@pytest.fixture
def device_headers() -> Callable[..., dict]:
    def _headers(composite_id: str, secret: str = SECRET) -> dict:
        return {"x-composite-device-id": composite_id, "x-device-key": secret}

    return _headers
