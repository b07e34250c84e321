"""
Database seeding utilities for reference and demo data.

Seeds:
- Base tenant (VendHub Demo)
- Roles (admin, manager, operator, accountant, technician, viewer) and the
  '<area>:view' / '<area>:manage' permission codes granted to them
- Demo products with fiscal (IKPU) codes
- Two demo machines with slots

Usage:
  python -m src.db.run_migrations upgrade head
  python -m src.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Tuple
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import get_app_settings
from src.db.session import get_session_maker, tenant_context

logger = logging.getLogger(__name__)

PERMISSION_AREAS = [
    "machines",
    "products",
    "inventory",
    "orders",
    "promo",
    "payments",
    "fiscal",
    "contracts",
    "maintenance",
    "reports",
    "users",
    "roles",
]
ALL_PERMISSIONS = [f"{area}:{action}" for area in PERMISSION_AREAS for action in ("view", "manage")]


def _codes(areas: List[str], *actions: str) -> List[str]:
    return [f"{a}:{act}" for a in areas for act in actions]


ROLE_PERMISSIONS: Dict[str, Tuple[str, List[str]]] = {
    "admin": ("Administrator", ALL_PERMISSIONS),
    "manager": (
        "Fleet manager",
        _codes(["machines", "products", "inventory", "orders", "promo", "contracts", "maintenance"], "view", "manage")
        + _codes(["payments", "fiscal", "reports", "users"], "view"),
    ),
    "operator": (
        "Field operator refilling machines",
        _codes(["machines", "inventory"], "view", "manage") + _codes(["products", "orders", "maintenance"], "view"),
    ),
    "accountant": (
        "Finance and fiscalization",
        _codes(["payments", "fiscal", "contracts"], "view", "manage") + _codes(["orders", "reports", "promo"], "view"),
    ),
    "technician": (
        "Maintenance technician",
        _codes(["maintenance"], "view", "manage") + _codes(["machines", "inventory", "products"], "view"),
    ),
    "viewer": ("Read-only access", _codes([a for a in PERMISSION_AREAS if a not in ("users", "roles")], "view")),
}

# sku, name, category, unit, purchase, selling, ikpu
DEMO_PRODUCTS = [
    ("COF-AMER", "Americano", "hot_drinks", "pcs", 4000, 12000, "10202001001000000"),
    ("COF-CAPP", "Cappuccino", "hot_drinks", "pcs", 5500, 15000, "10202001002000000"),
    ("TEA-BLK", "Black tea", "hot_drinks", "pcs", 1500, 8000, "10202002001000000"),
    ("SNK-CHOC", "Chocolate bar", "snacks", "pcs", 6000, 10000, "10801001001000000"),
    ("DRK-WTR05", "Water 0.5 l", "cold_drinks", "pcs", 1800, 5000, "22010001001000000"),
    ("ING-BEANS", "Coffee beans", "coffee_beans", "kg", 180000, 0, None),
]

# machine_number, name, type, address, lat, lng, slots [(slot, sku, capacity)]
DEMO_MACHINES = [
    (
        "VM-0001", "Tashkent City Mall #1", "coffee", "Tashkent, Furkat st. 6", 41.3157, 69.2485,
        [("A1", "COF-AMER", 200), ("A2", "COF-CAPP", 200), ("A3", "TEA-BLK", 150)],
    ),
    (
        "VM-0002", "Chilanzar Metro", "combo", "Tashkent, Chilanzar metro station", 41.2756, 69.2040,
        [("B1", "SNK-CHOC", 40), ("B2", "DRK-WTR05", 60), ("B3", "COF-AMER", 150)],
    ),
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with reference and demo data. Safe to run repeatedly.

    Work is committed inside the tenant context: leaving the context rolls back
    anything still pending.
    """
    settings = get_app_settings()
    async with get_session_maker()() as session:
        tenant_id = await _ensure_base_tenant(session, name="VendHub Demo", slug=settings.DEFAULT_TENANT_SLUG)
        await session.commit()
        async with tenant_context(session, tenant_id):
            await _seed_security(session)
            products = await _seed_products(session)
            await _seed_machines(session, products)
            await session.commit()
    logger.info("Seeded tenant %s (%s)", settings.DEFAULT_TENANT_SLUG, tenant_id)


async def _ensure_base_tenant(session: AsyncSession, name: str, slug: str) -> UUID:
    """
    Ensure a tenant row exists. RLS on tenants requires setting app.tenant_id
    to the same id being inserted (WITH CHECK id = current_setting()).
    """
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if row:
        return row[0]

    tenant_id = uuid4()
    await session.execute(text("SELECT set_config('app.tenant_id', :tid, false)"), {"tid": str(tenant_id)})
    await session.execute(
        text("INSERT INTO tenants (id, name, slug) VALUES (:id, :name, :slug) ON CONFLICT (slug) DO NOTHING"),
        {"id": str(tenant_id), "name": name, "slug": slug},
    )
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if not row:
        raise RuntimeError("Failed to create or load base tenant")
    return row[0]


async def _seed_security(session: AsyncSession) -> None:
    """Insert permission codes and roles, then grant each role its codes."""
    for code in ALL_PERMISSIONS:
        await session.execute(
            text(
                """
                INSERT INTO permissions (tenant_id, code, description)
                VALUES (current_setting('app.tenant_id', true)::uuid, :code, :desc)
                ON CONFLICT ON CONSTRAINT uq_permissions_tenant_code DO NOTHING
                """
            ),
            {"code": code, "desc": code.replace(":", " ").title()},
        )

    perm_rows = await session.execute(text("SELECT code, id FROM permissions"))
    perm_ids = {code: pid for code, pid in perm_rows.all()}

    for role_name, (description, codes) in ROLE_PERMISSIONS.items():
        await session.execute(
            text(
                """
                INSERT INTO roles (tenant_id, name, description)
                VALUES (current_setting('app.tenant_id', true)::uuid, :name, :desc)
                ON CONFLICT ON CONSTRAINT uq_roles_tenant_name DO NOTHING
                """
            ),
            {"name": role_name, "desc": description},
        )
        role_id = (await session.execute(text("SELECT id FROM roles WHERE name = :name"), {"name": role_name})).scalar_one()
        for code in codes:
            await session.execute(
                text(
                    """
                    INSERT INTO role_permissions (tenant_id, role_id, permission_id)
                    VALUES (current_setting('app.tenant_id', true)::uuid, :rid, :pid)
                    ON CONFLICT ON CONSTRAINT uq_role_permissions_tenant_role_permission DO NOTHING
                    """
                ),
                {"rid": str(role_id), "pid": str(perm_ids[code])},
            )


async def _seed_products(session: AsyncSession) -> Dict[str, UUID]:
    """Insert demo products and return a mapping sku -> id."""
    result: Dict[str, UUID] = {}
    for sku, name, category, unit, purchase, selling, ikpu in DEMO_PRODUCTS:
        await session.execute(
            text(
                """
                INSERT INTO products (tenant_id, sku, name, category, unit_of_measure, is_ingredient,
                                      purchase_price, selling_price, ikpu_code)
                VALUES (current_setting('app.tenant_id', true)::uuid, :sku, :name, :category, :unit, :ingredient,
                        :purchase, :selling, :ikpu)
                ON CONFLICT ON CONSTRAINT uq_products_tenant_sku DO NOTHING
                """
            ),
            {
                "sku": sku,
                "name": name,
                "category": category,
                "unit": unit,
                "ingredient": ikpu is None,
                "purchase": purchase,
                "selling": selling or None,
                "ikpu": ikpu,
            },
        )
        res = await session.execute(text("SELECT id FROM products WHERE sku = :sku"), {"sku": sku})
        result[sku] = res.scalar_one()
    return result


async def _seed_machines(session: AsyncSession, products: Dict[str, UUID]) -> None:
    """Insert demo machines, their slots and matching machine-level stock rows."""
    for number, name, mtype, address, lat, lng, slots in DEMO_MACHINES:
        await session.execute(
            text(
                """
                INSERT INTO machines (tenant_id, machine_number, name, type, address, latitude, longitude)
                VALUES (current_setting('app.tenant_id', true)::uuid, :num, :name, :type, :addr, :lat, :lng)
                ON CONFLICT ON CONSTRAINT uq_machines_tenant_machine_number DO NOTHING
                """
            ),
            {"num": number, "name": name, "type": mtype, "addr": address, "lat": lat, "lng": lng},
        )
        machine_id = (
            await session.execute(text("SELECT id FROM machines WHERE machine_number = :num"), {"num": number})
        ).scalar_one()

        for slot_number, sku, capacity in slots:
            price = next(p[5] for p in DEMO_PRODUCTS if p[0] == sku)
            params = {
                "mid": str(machine_id),
                "slot": slot_number,
                "pid": str(products[sku]),
                "cap": capacity,
                "qty": capacity // 2,
                "min": capacity // 10,
                "price": price,
            }
            await session.execute(
                text(
                    """
                    INSERT INTO machine_slots (tenant_id, machine_id, slot_number, product_id, capacity,
                                               current_quantity, min_quantity, price)
                    VALUES (current_setting('app.tenant_id', true)::uuid, :mid, :slot, :pid, :cap, :qty, :min, :price)
                    ON CONFLICT ON CONSTRAINT uq_machine_slots_tenant_machine_slot DO NOTHING
                    """
                ),
                params,
            )
            await session.execute(
                text(
                    """
                    INSERT INTO machine_inventory (tenant_id, machine_id, product_id, slot_number,
                                                   current_quantity, min_stock_level, max_capacity)
                    VALUES (current_setting('app.tenant_id', true)::uuid, :mid, :pid, :slot, :qty, :min, :cap)
                    ON CONFLICT ON CONSTRAINT uq_machine_inventory_tenant_machine_product_slot DO NOTHING
                    """
                ),
                {k: v for k, v in params.items() if k != "price"},
            )


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
