"""Project and tenant (shop) routes."""
import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from voltline.db import get_db
from voltline.api.deps import get_current_user, require_admin, require_role, row_to_dict
from voltline.models.orm_models import Project, Tenant, User
from voltline.services.cable_schedule_engine import sort_tenants_by_shop_number

router = APIRouter(prefix="/api/projects", tags=["Projects"])
logger = logging.getLogger("voltline-api")


class ProjectCreate(BaseModel):
    name: str
    project_number: Optional[str] = None
    client_name: Optional[str] = None


class TenantCreate(BaseModel):
    shop_number: str
    shop_name: str
    shop_category: Optional[str] = None
    area: Optional[float] = None
    db_size_allowance: Optional[str] = None


class TenantUpdate(BaseModel):
    shop_number: Optional[str] = None
    shop_name: Optional[str] = None
    shop_category: Optional[str] = None
    area: Optional[float] = None
    db_size_allowance: Optional[str] = None


async def get_project_or_404(db: AsyncSession, project_id: str) -> Project:
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("")
async def list_projects(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Project).order_by(Project.created_at.desc()))
    return [row_to_dict(p) for p in result.scalars().all()]


@router.post("")
async def create_project(
    payload: ProjectCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    if not payload.name.strip():
        raise HTTPException(status_code=422, detail="Project name is required")
    project = Project(**payload.model_dump(), created_by=user.id)
    db.add(project)
    await db.flush()
    logger.info("Project created", extra={"project_id": project.id})
    return row_to_dict(project)


@router.get("/{project_id}/tenants")
async def list_tenants(
    project_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Tenant).where(Tenant.project_id == project_id))
    return sort_tenants_by_shop_number(row_to_dict(t) for t in result.scalars().all())


@router.post("/{project_id}/tenants")
async def create_tenant(
    project_id: str,
    payload: TenantCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    await get_project_or_404(db, project_id)
    tenant = Tenant(project_id=project_id, **payload.model_dump())
    db.add(tenant)
    await db.flush()
    return row_to_dict(tenant)


@router.put("/tenants/{tenant_id}")
async def update_tenant(
    tenant_id: str,
    payload: TenantUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    tenant = await db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(tenant, field, value)
    await db.flush()
    return row_to_dict(tenant)


@router.delete("/tenants/{tenant_id}")
async def delete_tenant(
    tenant_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    tenant = await db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    await db.delete(tenant)
    return {"status": "deleted", "id": tenant_id}


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Remove a project with its schedules, reports and handover records."""
    project = await get_project_or_404(db, project_id)
    await db.delete(project)
    logger.warning("Project deleted", extra={"project_id": project_id})
    return {"status": "deleted", "id": project_id}
