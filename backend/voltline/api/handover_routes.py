"""Handover routes — tenant documents, exclusions and the completion dashboard."""
import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from voltline.db import get_db
from voltline.api.deps import get_current_user, require_role, row_to_dict
from voltline.api.project_routes import get_project_or_404
from voltline.models.orm_models import HandoverDocument, HandoverDocumentExclusion, Tenant, User
from voltline.services.handover_engine import (
    EXCLUSION_REASONS,
    MAX_UPLOAD_BYTES,
    TENANT_DOCUMENT_TYPES,
    build_handover_dashboard,
    tenant_completion,
)

router = APIRouter(prefix="/api/handover", tags=["Handover"])
logger = logging.getLogger("voltline-api")


class DocumentCreate(BaseModel):
    document_name: str
    document_type: str
    source_type: str = "tenant"
    source_id: Optional[str] = None
    file_url: Optional[str] = None
    file_size: Optional[int] = None
    notes: Optional[str] = None


class ExclusionCreate(BaseModel):
    tenant_id: str
    document_type: str
    exclusion_reason: str = "by_tenant"
    notes: Optional[str] = None


async def load_handover_data(db: AsyncSession, project_id: str):
    """(tenants, tenant documents newest first, exclusions) as dicts."""
    tenants = (await db.execute(select(Tenant).where(Tenant.project_id == project_id))).scalars().all()
    documents = (await db.execute(
        select(HandoverDocument)
        .where(HandoverDocument.project_id == project_id, HandoverDocument.source_type == "tenant")
        .order_by(HandoverDocument.created_at.desc())
    )).scalars().all()
    exclusions = (await db.execute(
        select(HandoverDocumentExclusion).where(HandoverDocumentExclusion.project_id == project_id)
    )).scalars().all()
    return (
        [row_to_dict(t) for t in tenants],
        [row_to_dict(d) for d in documents],
        [row_to_dict(e) for e in exclusions],
    )


@router.get("/document-types")
async def document_types():
    return TENANT_DOCUMENT_TYPES


@router.get("/projects/{project_id}/documents")
async def list_documents(
    project_id: str,
    document_type: Optional[str] = None,
    source_id: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(HandoverDocument).where(HandoverDocument.project_id == project_id)
    if document_type:
        query = query.where(HandoverDocument.document_type == document_type)
    if source_id:
        query = query.where(HandoverDocument.source_id == source_id)
    result = await db.execute(query.order_by(HandoverDocument.created_at.desc()))
    return [row_to_dict(d) for d in result.scalars().all()]


@router.post("/projects/{project_id}/documents")
async def add_document(
    project_id: str,
    payload: DocumentCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    await get_project_or_404(db, project_id)
    if payload.file_size is not None and payload.file_size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File exceeds the 50 MB limit")
    if payload.source_type == "tenant":
        if payload.document_type not in TENANT_DOCUMENT_TYPES:
            raise HTTPException(status_code=422, detail=f"Unknown tenant document type: {payload.document_type}")
        if not payload.source_id or not await db.get(Tenant, payload.source_id):
            raise HTTPException(status_code=404, detail="Tenant not found")

    doc = HandoverDocument(project_id=project_id, added_by=user.id, **payload.model_dump())
    db.add(doc)
    await db.flush()
    logger.info(f"Handover document added: {payload.document_type}", extra={"project_id": project_id})
    return row_to_dict(doc)


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    doc = await db.get(HandoverDocument, document_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    await db.delete(doc)
    return {"status": "deleted", "id": document_id}


@router.post("/projects/{project_id}/exclusions")
async def add_exclusion(
    project_id: str,
    payload: ExclusionCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """Mark a document type as not required for a tenant (e.g. supplied by the tenant)."""
    await get_project_or_404(db, project_id)
    if payload.document_type not in TENANT_DOCUMENT_TYPES:
        raise HTTPException(status_code=422, detail=f"Unknown tenant document type: {payload.document_type}")
    if payload.exclusion_reason not in EXCLUSION_REASONS:
        raise HTTPException(status_code=422, detail=f"exclusion_reason must be one of {list(EXCLUSION_REASONS)}")

    existing = await db.execute(select(HandoverDocumentExclusion).where(
        HandoverDocumentExclusion.tenant_id == payload.tenant_id,
        HandoverDocumentExclusion.document_type == payload.document_type,
    ))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Exclusion already recorded")

    exclusion = HandoverDocumentExclusion(project_id=project_id, created_by=user.id, **payload.model_dump())
    db.add(exclusion)
    await db.flush()
    return row_to_dict(exclusion)


@router.delete("/exclusions/{exclusion_id}")
async def delete_exclusion(
    exclusion_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    exclusion = await db.get(HandoverDocumentExclusion, exclusion_id)
    if not exclusion:
        raise HTTPException(status_code=404, detail="Exclusion not found")
    await db.delete(exclusion)
    return {"status": "deleted", "id": exclusion_id}


@router.get("/tenants/{tenant_id}/status")
async def tenant_status(
    tenant_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tenant = await db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    _, documents, exclusions = await load_handover_data(db, tenant.project_id)
    return tenant_completion(row_to_dict(tenant), documents, exclusions)


@router.get("/projects/{project_id}/dashboard")
async def dashboard(
    project_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tenants, documents, exclusions = await load_handover_data(db, project_id)
    return build_handover_dashboard(tenants, documents, exclusions)
