"""Shared fixtures: in-memory SQLite schema, a seeded warehouse, and an HTTP client."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from clictools.core.security import create_access_token, get_password_hash
from clictools.db.base import Base
from clictools.db.session import build_engine, get_db
from clictools.main import create_app
from clictools.models import Location, LocationType, Product, User, UserRoleEnum

TEST_PASSWORD = "secret"


@pytest.fixture
async def engine():
    eng = build_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def warehouse(session_maker):
    """
    Committed sample data. Ids are exposed as plain ints.

        Bodega Principal (BP)
          R01: N1 [B10, B2, B1], N2 [B1, S1 [S1-B1]], N3 [B1], N4 (empty)
          R02: N1 [B1]
    """
    async with session_maker() as s:
        hashed = get_password_hash(TEST_PASSWORD)
        users = {
            "alice": User(name="alice", email="alice@example.com", hashed_password=hashed,
                          role=UserRoleEnum.WAREHOUSE.value),
            "bob": User(name="bob", email="bob@example.com", hashed_password=hashed,
                        role=UserRoleEnum.WAREHOUSE.value),
            "admin": User(name="admin", email="admin@example.com", hashed_password=hashed,
                          role=UserRoleEnum.ADMIN.value),
            "viewer": User(name="viewer", email="viewer@example.com", hashed_password=hashed,
                           role=UserRoleEnum.VIEWER.value),
        }
        s.add_all(users.values())
        s.add_all([
            Product(id="P100", description="Tornillo hexagonal"),
            Product(id="P200", description="Tuerca de seguridad"),
            Product(id="P900", description="Tornillo descontinuado", is_active=False),
        ])

        locs: dict[str, Location] = {}

        async def add(key, name, code, location_type, parent=None):
            loc = Location(
                name=name, code=code, location_type=location_type,
                parent_id=locs[parent].id if parent else None,
            )
            s.add(loc)
            await s.flush()
            locs[key] = loc

        await add("building", "Bodega Principal", "BP", LocationType.BUILDING)
        await add("r01", "Rack 01", "R01", LocationType.RACK, "building")
        await add("r02", "Rack 02", "R02", LocationType.RACK, "building")
        await add("l1", "Nivel 1", "R01-N1", LocationType.SHELF, "r01")
        await add("l2", "Nivel 2", "R01-N2", LocationType.SHELF, "r01")
        await add("l3", "Nivel 3", "R01-N3", LocationType.SHELF, "r01")
        await add("l4", "Nivel 4", "R01-N4", LocationType.SHELF, "r01")
        # inserted out of natural order on purpose
        await add("l1_b10", "B10", "R01-N1-B10", LocationType.BIN, "l1")
        await add("l1_b2", "B02", "R01-N1-B2", LocationType.BIN, "l1")
        await add("l1_b1", "B01", "R01-N1-B1", LocationType.BIN, "l1")
        await add("l2_s1", "Sub 1", "R01-N2-S1", LocationType.SHELF, "l2")
        await add("l2_b1", "B01", "R01-N2-B1", LocationType.BIN, "l2")
        await add("l2_s1_b1", "B01", "R01-N2-S1-B1", LocationType.BIN, "l2_s1")
        await add("l3_b1", "B01", "R01-N3-B1", LocationType.BIN, "l3")
        await add("r02_l1", "Nivel 1", "R02-N1", LocationType.SHELF, "r02")
        await add("r02_l1_b1", "B01", "R02-N1-B1", LocationType.BIN, "r02_l1")

        await s.commit()
        return SimpleNamespace(
            **{f"{k}_id": u.id for k, u in users.items()},
            **{k: loc.id for k, loc in locs.items()},
        )


@pytest.fixture
async def db(session_maker, warehouse):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(session_maker, warehouse):
    app = create_app()

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(warehouse):
    """Bearer header for one of the seeded users: ``auth_headers("alice")``."""
    roles = {
        "alice": UserRoleEnum.WAREHOUSE.value,
        "bob": UserRoleEnum.WAREHOUSE.value,
        "admin": UserRoleEnum.ADMIN.value,
        "viewer": UserRoleEnum.VIEWER.value,
    }

    def _headers(name: str) -> dict[str, str]:
        token = create_access_token(
            subject=getattr(warehouse, f"{name}_id"),
            name=name,
            email=f"{name}@example.com",
            role=roles[name],
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
