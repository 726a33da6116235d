"""
conftest.py — Shared pytest fixtures for the Voltline backend test suite.

The engine tests are pure unit tests over plain dicts (the same shape
``row_to_dict`` produces from ORM rows). The CRUD route tests run against an
in-memory SQLite database (aiosqlite) through the ``api_client`` fixture,
which overrides ``get_db`` and signs requests as an Admin user.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``voltline.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import itertools
import pytest
import pytest_asyncio

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any voltline imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Cable calculation fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def default_settings():
    """
    CalculationSettings with every default.

    Defaults:
      volt drop 5% (400 V) / 3% (230 V), safety margin 1.15,
      max 400 A and preferred 300 A per cable, grouping 0.80 / 0.70 / 0.65,
      default material Aluminium, installation method air.
    """
    from voltline.services.cable_optimization_engine import CalculationSettings
    return CalculationSettings()


@pytest.fixture(scope="session")
def copper_settings():
    """Defaults, but with copper as the project material."""
    from voltline.services.cable_optimization_engine import CalculationSettings
    return CalculationSettings(default_cable_material="Copper")


@pytest.fixture
def cable_rates():
    """
    Project cable rates (R/m) for a handful of aluminium and copper sizes.

    Termination is priced per end, so a single run carries two terminations.
    """
    return [
        {"cable_type": "Aluminium", "cable_size": "35mm²", "supply_rate_per_meter": 60.0,
         "install_rate_per_meter": 40.0, "termination_cost_per_end": 150.0},
        {"cable_type": "Aluminium", "cable_size": "50mm²", "supply_rate_per_meter": 80.0,
         "install_rate_per_meter": 45.0, "termination_cost_per_end": 180.0},
        {"cable_type": "Aluminium", "cable_size": "70mm²", "supply_rate_per_meter": 100.0,
         "install_rate_per_meter": 55.0, "termination_cost_per_end": 200.0},
        {"cable_type": "Aluminium", "cable_size": "95mm²", "supply_rate_per_meter": 130.0,
         "install_rate_per_meter": 65.0, "termination_cost_per_end": 250.0},
        {"cable_type": "Aluminium", "cable_size": "120mm²", "supply_rate_per_meter": 160.0,
         "install_rate_per_meter": 75.0, "termination_cost_per_end": 280.0},
        {"cable_type": "Aluminium", "cable_size": "150mm²", "supply_rate_per_meter": 190.0,
         "install_rate_per_meter": 85.0, "termination_cost_per_end": 320.0},
        {"cable_type": "Aluminium", "cable_size": "185mm²", "supply_rate_per_meter": 230.0,
         "install_rate_per_meter": 95.0, "termination_cost_per_end": 360.0},
        {"cable_type": "Aluminium", "cable_size": "240mm²", "supply_rate_per_meter": 290.0,
         "install_rate_per_meter": 110.0, "termination_cost_per_end": 420.0},
        {"cable_type": "Copper", "cable_size": "16mm²", "supply_rate_per_meter": 55.0,
         "install_rate_per_meter": 40.0, "termination_cost_per_end": 90.0},
    ]


# ---------------------------------------------------------------------------
# Project / tenant fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tenants():
    """Three shops listed out of shop-number order."""
    return [
        {"id": "t-12", "shop_number": "Shop 12", "shop_name": "Pharmacy", "db_size_allowance": "80A TPN DB"},
        {"id": "t-3", "shop_number": "Shop 3", "shop_name": "Bakery", "db_size_allowance": "60A SPN"},
        {"id": "t-7", "shop_number": "Shop 7A", "shop_name": "Bookshop", "db_size_allowance": None},
    ]


# ---------------------------------------------------------------------------
# Cost report fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def cost_categories():
    """Two categories deliberately given out of display order."""
    return [
        {"id": "cat-b", "code": "B", "description": "SUBSTATIONS", "display_order": 2},
        {"id": "cat-a", "code": "A", "description": "LOW VOLTAGE RETICULATION", "display_order": 1},
    ]


@pytest.fixture
def cost_line_items():
    """
    Category A: budget 100 000, previous 110 000, anticipated 120 000.
    Category B: budget  50 000, previous  50 000, anticipated  40 000.
    """
    return [
        {"category_id": "cat-a", "original_budget": 60000.0, "previous_report": 70000.0, "anticipated_final": 75000.0},
        {"category_id": "cat-a", "original_budget": 40000.0, "previous_report": 40000.0, "anticipated_final": 45000.0},
        {"category_id": "cat-b", "original_budget": 50000.0, "previous_report": 50000.0, "anticipated_final": 40000.0},
    ]


@pytest.fixture
def cost_variations():
    """A 12 000 debit (approved), a 2 000 credit (approved) and a 5 000 pending debit."""
    return [
        {"code": "VO-01", "description": "Additional DB", "total_amount": 12000.0, "is_credit": False, "status": "approved"},
        {"code": "VO-02", "description": "Omit light fittings", "total_amount": 2000.0, "is_credit": True, "status": "approved"},
        {"code": "VO-03", "description": "Generator feed", "total_amount": 5000.0, "is_credit": False, "status": "pending"},
    ]


# ---------------------------------------------------------------------------
# Database-backed API fixtures
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Each client gets its own address so the per-IP rate limit never trips
_client_hosts = itertools.count(1)


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database with every table created."""
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool
    from voltline.db import Base
    from voltline.models import orm_models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(db_engine):
    """
    httpx AsyncClient on the app with ``get_db`` bound to the test database.

    An Admin user is inserted directly and its JWT set on every request.
    """
    from httpx import ASGITransport, AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from voltline.db import get_db
    from voltline.main import app
    from voltline.models.orm_models import Role, User
    from voltline.api.auth_routes import create_access_token

    sessions = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with sessions() as session:
        role = Role(name="Admin")
        session.add(role)
        await session.flush()
        user = User(email="admin@voltline.test", hashed_password="x", full_name="Site Admin", role_id=role.id)
        session.add(user)
        await session.commit()
        token = create_access_token({"sub": user.id, "email": user.email, "role": "Admin"})

    async def _get_test_db():
        async with sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app, client=(f"10.0.0.{next(_client_hosts)}", 50000))
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver",
        headers={"Authorization": f"Bearer {token}"},
    ) as client:
        yield client
    app.dependency_overrides.pop(get_db, None)
