"""
SmartPOS Platform Test Configuration

Provides shared fixtures for async testing with:
- In-memory SQLite database
- Test client with async support
- Authenticated sessions (super admin, owner, staff)
- Data factories for tenants, branches, users, applications and sales
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
import uuid

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.security import get_password_hash, create_access_token
from app.main import app
from app.models.application import TenantApplication, ApplicationStatus
from app.models.branch import Branch
from app.models.commerce import Product, Sale, Expense
from app.models.tenant import Tenant, BusinessType
from app.models.user import User, UserRole


# Test database URL - SQLite in-memory with async support
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEFAULT_PASSWORD = "testpassword123"


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create an async engine for testing with in-memory SQLite."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    """Bearer header for a regular session of ``user``."""
    token = create_access_token({"sub": user.id, "tenant_id": user.tenant_id})
    return {"Authorization": f"Bearer {token}"}


# -----------------------------------------------------------------------------
# Data Factories
# -----------------------------------------------------------------------------

class TenantFactory:
    """Factory for creating test tenants."""

    @staticmethod
    async def create(
        db: AsyncSession,
        business_name: str = None,
        slug: str = None,
        subscription_end: datetime = None,
        is_active: bool = True,
        business_type: BusinessType = BusinessType.RETAIL,
        **kwargs
    ) -> Tenant:
        suffix = uuid.uuid4().hex[:6]
        tenant = Tenant(
            id=str(uuid.uuid4()),
            business_name=business_name or f"Test Business {suffix}",
            slug=slug if slug is not None else f"biz-{suffix}",
            business_type=business_type,
            subscription_start=datetime.utcnow() - timedelta(days=30),
            subscription_end=subscription_end or datetime.utcnow() + timedelta(days=90),
            is_active=is_active,
            **kwargs
        )
        db.add(tenant)
        await db.commit()
        await db.refresh(tenant)
        return tenant


class BranchFactory:
    """Factory for creating test branches."""

    @staticmethod
    async def create(
        db: AsyncSession,
        tenant_id: str,
        name: str = None,
        is_main: bool = False,
        is_active: bool = True,
        created_at: datetime = None
    ) -> Branch:
        branch = Branch(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=name or f"Branch {uuid.uuid4().hex[:6]}",
            address="12 Market Road",
            is_main=is_main,
            is_active=is_active,
            created_at=created_at or datetime.utcnow()
        )
        db.add(branch)
        await db.commit()
        await db.refresh(branch)
        return branch


class UserFactory:
    """Factory for creating test users."""

    @staticmethod
    async def create(
        db: AsyncSession,
        tenant_id: str,
        username: str = None,
        role: UserRole = UserRole.CASHIER,
        branch_id: str = None,
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            branch_id=branch_id,
            username=username or f"user_{uuid.uuid4().hex[:8]}",
            hashed_password=get_password_hash(password),
            role=role,
            full_name=f"Test {role.value.title()}",
            is_active=is_active
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


class SuperAdminFactory:
    """Factory for creating platform super admins."""

    @staticmethod
    async def create(
        db: AsyncSession,
        username: str = "platform",
        password: str = DEFAULT_PASSWORD
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            tenant_id=None,
            username=username,
            hashed_password=get_password_hash(password),
            role=UserRole.OWNER,
            is_super_admin=True,
            full_name="Platform Admin",
            is_active=True
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


class ApplicationFactory:
    """Factory for creating tenant applications."""

    @staticmethod
    async def create(
        db: AsyncSession,
        business_name: str = None,
        business_email: str = None,
        status: ApplicationStatus = ApplicationStatus.PENDING,
        desired_username: str = None,
        password: str = DEFAULT_PASSWORD
    ) -> TenantApplication:
        suffix = uuid.uuid4().hex[:6]
        application = TenantApplication(
            id=str(uuid.uuid4()),
            business_name=business_name or f"Applicant {suffix}",
            business_email=business_email or f"hello-{suffix}@example.com",
            business_phone="08030000000",
            business_address="4 Allen Avenue",
            business_type=BusinessType.RESTAURANT,
            owner_full_name="Ada Obi",
            owner_email=f"owner-{suffix}@example.com",
            desired_username=desired_username,
            hashed_password=get_password_hash(password),
            status=status
        )
        db.add(application)
        await db.commit()
        await db.refresh(application)
        return application


class SaleFactory:
    """Factory for creating sales against a branch."""

    @staticmethod
    async def create(
        db: AsyncSession,
        tenant_id: str,
        branch_id: str,
        amount: str = "100.00",
        payment_status: str = "completed",
        cashier_id: str = None
    ) -> Sale:
        sale = Sale(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            branch_id=branch_id,
            cashier_id=cashier_id,
            receipt_number=f"RCP-{uuid.uuid4().hex[:8].upper()}",
            final_amount=Decimal(amount),
            payment_status=payment_status
        )
        db.add(sale)
        await db.commit()
        await db.refresh(sale)
        return sale


class ProductFactory:
    """Factory for creating products stocked at a branch."""

    @staticmethod
    async def create(db: AsyncSession, tenant_id: str, branch_id: str, name: str = None) -> Product:
        product = Product(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            branch_id=branch_id,
            name=name or f"Product {uuid.uuid4().hex[:6]}",
            price=Decimal("250.00"),
            stock_quantity=10
        )
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product


class ExpenseFactory:
    """Factory for creating branch expenses."""

    @staticmethod
    async def create(db: AsyncSession, tenant_id: str, branch_id: str, amount: str = "50.00") -> Expense:
        expense = Expense(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            branch_id=branch_id,
            description="Diesel for generator",
            amount=Decimal(amount)
        )
        db.add(expense)
        await db.commit()
        await db.refresh(expense)
        return expense


# -----------------------------------------------------------------------------
# Pre-configured Test Data Fixtures
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_tenant(db_session: AsyncSession) -> Tenant:
    """Create a test tenant."""
    return await TenantFactory.create(db_session, business_name="Mama Put Kitchen", slug="mama-put")


@pytest_asyncio.fixture
async def main_branch(db_session: AsyncSession, test_tenant: Tenant) -> Branch:
    """Create the tenant's main branch."""
    return await BranchFactory.create(
        db_session,
        tenant_id=test_tenant.id,
        name="Mama Put Kitchen",
        is_main=True,
        created_at=datetime.utcnow() - timedelta(days=60)
    )


@pytest_asyncio.fixture
async def owner_user(db_session: AsyncSession, test_tenant: Tenant, main_branch: Branch) -> User:
    """Create the tenant's owner."""
    return await UserFactory.create(
        db_session,
        tenant_id=test_tenant.id,
        username="mamaput_admin",
        role=UserRole.OWNER,
        branch_id=main_branch.id
    )


@pytest_asyncio.fixture
async def cashier_user(db_session: AsyncSession, test_tenant: Tenant, main_branch: Branch) -> User:
    """Create a cashier at the main branch."""
    return await UserFactory.create(
        db_session,
        tenant_id=test_tenant.id,
        username="cashier1",
        role=UserRole.CASHIER,
        branch_id=main_branch.id
    )


@pytest_asyncio.fixture
async def super_admin(db_session: AsyncSession) -> User:
    """Create a platform super admin."""
    return await SuperAdminFactory.create(db_session)


@pytest_asyncio.fixture
async def owner_headers(owner_user: User) -> dict:
    return auth_headers(owner_user)


@pytest_asyncio.fixture
async def cashier_headers(cashier_user: User) -> dict:
    return auth_headers(cashier_user)


@pytest_asyncio.fixture
async def admin_headers(super_admin: User) -> dict:
    return auth_headers(super_admin)
