"""
Scheduled jobs runner.

Runs the periodic housekeeping tasks for every active tenant, each inside its
own tenant-scoped session. Meant to be invoked by cron or a platform scheduler:

    python -m src.jobs                      # all jobs, all tenants
    python -m src.jobs fiscal-queue         # one job
    python -m src.jobs --tenant <uuid> sla  # one tenant

Listing tenants happens outside any tenant context, so the database role used
here must be able to read the tenants table (the migration owner can).
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import configure_logging, log_context
from src.db.models.tenancy import Tenant
from src.db.session import get_session_maker, tenant_session
from src.services.contracts import ContractService
from src.services.fiscal import FiscalService
from src.services.maintenance import MaintenanceService
from src.services.promo import PromoService

logger = logging.getLogger(__name__)

Job = Callable[[AsyncSession], Awaitable[int]]

JOBS: Dict[str, Job] = {
    "promo-expire": lambda s: PromoService(s).expire_codes(),
    "commissions-overdue": lambda s: ContractService(s).mark_overdue(),
    "sla": lambda s: MaintenanceService(s).check_sla_breaches(),
    "maintenance-schedules": lambda s: MaintenanceService(s).check_scheduled_maintenance(),
    "fiscal-queue": lambda s: FiscalService(s).process_due_queue(),
}


async def list_tenant_ids() -> List[UUID]:
    async with get_session_maker()() as session:
        result = await session.execute(select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.created_at))
        return list(result.scalars().all())


async def run_for_tenant(tenant_id: UUID, job_names: Sequence[str]) -> Dict[str, int]:
    """Run the named jobs for one tenant; a failing job is logged and the rest still run."""
    results: Dict[str, int] = {}
    with log_context(tenant_id=str(tenant_id), correlation_id=f"jobs-{tenant_id}"):
        for name in job_names:
            try:
                async with tenant_session(tenant_id) as session:
                    results[name] = await JOBS[name](session)
            except (SQLAlchemyError, HTTPException):
                logger.exception("Job %s failed for tenant %s", name, tenant_id)
                results[name] = -1
            else:
                logger.info("Job %s for tenant %s affected %s record(s)", name, tenant_id, results[name])
    return results


# PUBLIC_INTERFACE
async def run_jobs(job_names: Optional[Sequence[str]] = None, tenant_ids: Optional[Sequence[UUID]] = None) -> Dict[str, Dict[str, int]]:
    """Run jobs (all by default) for the given tenants (all active ones by default)."""
    names = list(job_names or JOBS)
    tenants = list(tenant_ids or await list_tenant_ids())
    summary: Dict[str, Dict[str, int]] = {}
    for tenant_id in tenants:
        summary[str(tenant_id)] = await run_for_tenant(tenant_id, names)
    logger.info("Jobs %s completed for %d tenant(s)", ", ".join(names), len(tenants))
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m src.jobs", description="Run VendHub scheduled jobs.")
    parser.add_argument("jobs", nargs="*", metavar="job", help=f"One of: {', '.join(sorted(JOBS))}")
    parser.add_argument("--tenant", action="append", type=UUID, dest="tenants", help="Limit to a tenant id (repeatable)")
    return parser


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> None:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    unknown = [name for name in args.jobs if name not in JOBS]
    if unknown:
        parser.error(f"unknown job(s): {', '.join(unknown)}")
    asyncio.run(run_jobs(args.jobs, args.tenants))


if __name__ == "__main__":
    main()
