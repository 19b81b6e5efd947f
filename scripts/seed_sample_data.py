"""
Sample data seeding script for the SmartPOS platform.
Creates a platform admin and a demo business provisioned through the normal
application flow, with a second branch, staff and some sales.
"""
import asyncio
import sys
from pathlib import Path
from datetime import datetime, timedelta
from decimal import Decimal
import random

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import AsyncSessionLocal
from app.core.security import get_password_hash
from app.models.application import TenantApplication
from app.models.commerce import Product, Sale
from app.models.tenant import Tenant, BusinessType
from app.models.user import User, UserRole
from app.services.application_service import ApplicationService
from app.services.branch_service import BranchService


# Sample data configurations
ADMIN_USERNAME = "platform"
ADMIN_PASSWORD = "admin123"

DEMO_BUSINESS = "Mama Put Kitchen"
DEMO_SLUG = "mama-put"
DEMO_EMAIL = "hello@mamaput.ng"
OWNER_USERNAME = "mamaput_admin"
OWNER_PASSWORD = "owner123"

EXTRA_BRANCHES = [
    {"name": "Ikeja Branch", "address": "14 Allen Avenue, Ikeja", "phone": "08031112222"},
    {"name": "Lekki Branch", "address": "3 Admiralty Way, Lekki", "phone": "08033334444"},
]

STAFF = [
    {"username": "chioma", "full_name": "Chioma Okafor", "role": UserRole.MANAGER},
    {"username": "tunde", "full_name": "Tunde Bakare", "role": UserRole.CASHIER},
    {"username": "aisha", "full_name": "Aisha Bello", "role": UserRole.CASHIER},
    {"username": "kitchen1", "full_name": "Emeka Eze", "role": UserRole.KITCHEN},
]

MENU = [
    ("Jollof Rice", "1500.00"),
    ("Fried Plantain", "500.00"),
    ("Pepper Soup", "2000.00"),
    ("Egusi & Pounded Yam", "2500.00"),
    ("Chapman", "800.00"),
]


async def create_super_admin(db: AsyncSession) -> User:
    """Create the platform super admin."""
    print("Creating platform admin...")

    result = await db.execute(select(User).where(User.username == ADMIN_USERNAME, User.is_super_admin == True))
    admin = result.scalar_one_or_none()

    if not admin:
        admin = User(
            username=ADMIN_USERNAME,
            hashed_password=get_password_hash(ADMIN_PASSWORD),
            full_name="Platform Admin",
            role=UserRole.OWNER,
            is_super_admin=True,
            tenant_id=None,
            is_active=True
        )
        db.add(admin)
        await db.commit()
        print(f"✓ Created platform admin: {admin.username}")
    else:
        print(f"✓ Platform admin already exists: {admin.username}")

    return admin


async def provision_demo_tenant(db: AsyncSession, admin: User) -> Tenant:
    """Submit and approve an application for the demo business."""
    print("\nProvisioning demo business...")

    result = await db.execute(select(Tenant).where(Tenant.slug == DEMO_SLUG))
    tenant = result.scalar_one_or_none()
    if tenant:
        print(f"✓ Business already exists: /{tenant.slug}")
        return tenant

    service = ApplicationService(db)

    result = await db.execute(select(TenantApplication).where(TenantApplication.business_email == DEMO_EMAIL))
    application = result.scalar_one_or_none()
    if not application:
        application = await service.submit({
            "business_name": DEMO_BUSINESS,
            "business_email": DEMO_EMAIL,
            "business_phone": "08030000000",
            "business_address": "4 Broad Street, Lagos Island",
            "business_type": BusinessType.RESTAURANT,
            "owner_full_name": "Ada Obi",
            "owner_email": "ada@mamaput.ng",
            "desired_username": OWNER_USERNAME,
            "password": OWNER_PASSWORD,
        })
        print(f"✓ Submitted application {application.id}")

    provisioned = await service.approve(application.id, slug=DEMO_SLUG, subscription_months=12, reviewer=admin)
    tenant = provisioned["tenant"]
    print(f"✓ Approved: /{tenant.slug} until {tenant.subscription_end:%Y-%m-%d}")
    return tenant


async def create_branches_and_staff(db: AsyncSession, tenant: Tenant) -> list:
    """Open extra branches and spread staff across them."""
    print("\nCreating branches and staff...")

    service = BranchService(db)
    existing = {branch.name for branch in await service.list_branches(tenant.id)}
    for branch_data in EXTRA_BRANCHES:
        if branch_data["name"] not in existing:
            await service.create(tenant.id, **branch_data)
            print(f"  ✓ Opened {branch_data['name']}")

    branches = await service.list_active(tenant.id)

    for index, staff in enumerate(STAFF):
        result = await db.execute(
            select(User).where(User.tenant_id == tenant.id, User.username == staff["username"])
        )
        if result.scalar_one_or_none():
            continue
        db.add(User(
            tenant_id=tenant.id,
            branch_id=branches[index % len(branches)].id,
            username=staff["username"],
            hashed_password=get_password_hash(OWNER_PASSWORD),
            full_name=staff["full_name"],
            role=staff["role"],
            is_active=True
        ))
    await db.commit()
    print(f"✓ {len(branches)} active branches, {len(STAFF)} staff")
    return branches


async def create_sales(db: AsyncSession, tenant: Tenant, branches: list, num_sales: int = 60):
    """Stock every branch with the menu and record recent sales."""
    print(f"\nCreating {num_sales} sales...")

    for branch in branches:
        for name, price in MENU:
            db.add(Product(
                tenant_id=tenant.id,
                branch_id=branch.id,
                name=name,
                price=Decimal(price),
                stock_quantity=random.randint(10, 80)
            ))

    now = datetime.utcnow()
    for i in range(num_sales):
        _, price = random.choice(MENU)
        quantity = random.randint(1, 4)
        db.add(Sale(
            tenant_id=tenant.id,
            branch_id=random.choice(branches).id,
            receipt_number=f"RCP-{now:%Y%m%d}-{i:04d}",
            final_amount=Decimal(price) * quantity,
            payment_status="voided" if random.random() < 0.05 else "completed",
            created_at=now - timedelta(days=random.randint(0, 30), minutes=random.randint(0, 600))
        ))

    await db.commit()
    print(f"✓ Created {len(MENU) * len(branches)} products and {num_sales} sales")


async def main():
    """Main seeding function."""
    print("=" * 60)
    print("SmartPOS - Sample Data Seeding Script")
    print("=" * 60)

    async with AsyncSessionLocal() as db:
        try:
            admin = await create_super_admin(db)
            tenant = await provision_demo_tenant(db, admin)
            branches = await create_branches_and_staff(db, tenant)
            await create_sales(db, tenant, branches)

            print("\n" + "=" * 60)
            print("✓ Sample data seeding completed successfully!")
            print("=" * 60)
            print(f"\nPlatform admin (slug 'admin'):")
            print(f"  Username: {ADMIN_USERNAME}")
            print(f"  Password: {ADMIN_PASSWORD}")
            print(f"\nBusiness owner (slug '{DEMO_SLUG}'):")
            print(f"  Username: {OWNER_USERNAME}")
            print(f"  Password: {OWNER_PASSWORD}")
            print("=" * 60)

        except Exception as e:
            print(f"\n✗ Error during seeding: {str(e)}")
            import traceback
            traceback.print_exc()
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main())
