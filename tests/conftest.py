import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from clinic_booking.core.cache import booking_cache
from clinic_booking.core.security import create_access_token
from clinic_booking.db.base import Base
from clinic_booking.db.models import Booking, Doctor, Profile, ProfileRole, Service  # noqa: F401
from clinic_booking.db.session import get_db
from clinic_booking.main import app

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    booking_cache.reset()


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client() -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_profile(db_session):
    def _make(email: str, role: ProfileRole = ProfileRole.CUSTOMER, full_name: str | None = None) -> Profile:
        profile = Profile(email=email, full_name=full_name or email.split("@")[0], role=role.value)
        db_session.add(profile)
        db_session.commit()
        db_session.refresh(profile)
        return profile

    return _make


@pytest.fixture()
def make_service(db_session):
    def _make(
        name: str = "Laser Hair Removal",
        base_price: str = "100.00",
        duration_minutes: int = 30,
        session_options: list[int] | None = None,
        is_active: bool = True,
    ) -> Service:
        service = Service(
            name=name,
            base_price=Decimal(base_price),
            duration_minutes=duration_minutes,
            session_options=session_options if session_options is not None else [1, 3, 6, 10],
            is_active=is_active,
        )
        db_session.add(service)
        db_session.commit()
        db_session.refresh(service)
        return service

    return _make


@pytest.fixture()
def make_doctor(db_session):
    def _make(full_name: str = "Dr. Ada Lovelace", is_active: bool = True) -> Doctor:
        doctor = Doctor(full_name=full_name, is_active=is_active, locations=["London"])
        db_session.add(doctor)
        db_session.commit()
        db_session.refresh(doctor)
        return doctor

    return _make


@pytest.fixture()
def auth_headers():
    def _headers(profile: Profile) -> dict[str, str]:
        token = create_access_token(subject=str(profile.id), extra_claims={"email": profile.email})
        return {"Authorization": f"Bearer {token}"}

    return _headers
