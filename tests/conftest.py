"""Pytest fixtures for payroll run engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from mypayroll.api.app import create_app
from mypayroll.api.dependencies import get_db_session
from mypayroll.database import make_session_factory
from mypayroll.models import (
    Base,
    Company,
    Department,
    Employee,
    LeaveBalance,
    LeaveType,
    Outlet,
)

# In-memory SQLite shared by every connection of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with make_session_factory(engine)() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def company(session: AsyncSession) -> Company:
    """Company with default payroll settings (22 working days, 8h/day)."""
    company = Company(name="Kedai Maju Sdn Bhd", registration_no="201901000001")
    session.add(company)
    await session.commit()
    return company


@pytest_asyncio.fixture
async def department(session: AsyncSession, company: Company) -> Department:
    department = Department(company_id=company.id, name="Operations")
    session.add(department)
    await session.commit()
    return department


@pytest_asyncio.fixture
async def other_department(session: AsyncSession, company: Company) -> Department:
    department = Department(company_id=company.id, name="Sales")
    session.add(department)
    await session.commit()
    return department


@pytest_asyncio.fixture
async def outlet(session: AsyncSession, company: Company) -> Outlet:
    outlet = Outlet(company_id=company.id, name="Outlet Bangsar")
    session.add(outlet)
    await session.commit()
    return outlet


EmployeeFactory = Callable[..., Awaitable[Employee]]


@pytest.fixture
def make_employee(session: AsyncSession, company: Company) -> EmployeeFactory:
    """Factory for committed employees; keyword arguments override defaults."""
    company_id = company.id
    counter = {"n": 0}

    async def _make(**overrides: Any) -> Employee:
        counter["n"] += 1
        values: dict[str, Any] = {
            "company_id": company_id,
            "emp_code": f"E{counter['n']:03d}",
            "name": f"Employee {counter['n']}",
            "hire_date": date(2022, 1, 1),
            "date_of_birth": date(1990, 5, 1),
            "default_basic_salary": Decimal("3000"),
        }
        values.update(overrides)
        employee = Employee(**values)
        session.add(employee)
        await session.commit()
        return employee

    return _make


@pytest_asyncio.fixture
async def annual_leave(session: AsyncSession, company: Company) -> LeaveType:
    leave_type = LeaveType(
        company_id=company.id, code="AL", name="Annual Leave", is_paid=True, is_encashable=True
    )
    session.add(leave_type)
    await session.commit()
    return leave_type


@pytest_asyncio.fixture
async def unpaid_leave(session: AsyncSession, company: Company) -> LeaveType:
    leave_type = LeaveType(company_id=company.id, code="UL", name="Unpaid Leave", is_paid=False)
    session.add(leave_type)
    await session.commit()
    return leave_type


@pytest.fixture
def make_balance(session: AsyncSession) -> Callable[..., Awaitable[LeaveBalance]]:
    """Factory for committed leave balances."""

    async def _make(
        employee: Employee, leave_type: LeaveType, year: int, entitled: str, used: str = "0"
    ) -> LeaveBalance:
        balance = LeaveBalance(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            year=year,
            entitled_days=Decimal(entitled),
            used_days=Decimal(used),
        )
        session.add(balance)
        await session.commit()
        return balance

    return _make


@pytest_asyncio.fixture
async def client(engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, with sessions from the test database."""
    app = create_app()
    factory = make_session_factory(engine)

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
