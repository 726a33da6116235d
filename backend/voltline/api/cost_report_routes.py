"""Cost report routes — reports, categories, line items, variations and the summary."""
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from voltline.db import get_db
from voltline.api.deps import get_current_user, require_role, row_to_dict
from voltline.api.project_routes import get_project_or_404
from voltline.models.orm_models import (
    CostReport, CostCategory, CostLineItem, CostVariation, VariationLineItem, User,
)
from voltline.services.cost_report_engine import (
    build_cost_report_summary,
    variation_line_amount,
    variation_total,
)

router = APIRouter(prefix="/api/cost-reports", tags=["Cost Reports"])
logger = logging.getLogger("voltline-api")

VARIATION_STATUSES = ("approved", "pending")


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class CostReportCreate(BaseModel):
    project_id: str
    project_name: str
    client_name: Optional[str] = None
    report_date: Optional[date] = None
    revision: str = "A"
    notes: Optional[str] = None


class CostReportUpdate(BaseModel):
    project_name: Optional[str] = None
    client_name: Optional[str] = None
    report_date: Optional[date] = None
    revision: Optional[str] = None
    notes: Optional[str] = None


class CategoryCreate(BaseModel):
    code: str
    description: str
    display_order: int = 0


class LineItemCreate(BaseModel):
    description: str
    code: Optional[str] = None
    original_budget: float = 0.0
    previous_report: float = 0.0
    anticipated_final: float = 0.0
    display_order: int = 0


class LineItemUpdate(BaseModel):
    description: Optional[str] = None
    code: Optional[str] = None
    original_budget: Optional[float] = None
    previous_report: Optional[float] = None
    anticipated_final: Optional[float] = None
    display_order: Optional[int] = None


class VariationCreate(BaseModel):
    code: str
    description: str
    tenant_id: Optional[str] = None
    is_credit: bool = False
    status: str = "approved"
    total_amount: float = 0.0
    display_order: int = 0


class VariationUpdate(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    tenant_id: Optional[str] = None
    is_credit: Optional[bool] = None
    status: Optional[str] = None
    total_amount: Optional[float] = None


class VariationLineCreate(BaseModel):
    description: str
    comments: Optional[str] = None
    quantity: float = 0.0
    rate: float = 0.0


# ─── Helpers ─────────────────────────────────────────────────────────────────

async def _get_or_404(db: AsyncSession, model, obj_id: str, label: str):
    obj = await db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in VARIATION_STATUSES:
        raise HTTPException(status_code=422, detail=f"status must be one of {list(VARIATION_STATUSES)}")


async def _refresh_variation_total(db: AsyncSession, variation: CostVariation) -> None:
    result = await db.execute(select(VariationLineItem).where(VariationLineItem.variation_id == variation.id))
    variation.total_amount = variation_total(row_to_dict(li) for li in result.scalars().all())


async def load_report_data(db: AsyncSession, report_id: str):
    """(report, categories, line_items, variations) as dicts for the engines."""
    report = await _get_or_404(db, CostReport, report_id, "Cost report")
    cats = (await db.execute(
        select(CostCategory).where(CostCategory.cost_report_id == report_id)
    )).scalars().all()
    cat_ids = [c.id for c in cats]
    items = []
    if cat_ids:
        items = (await db.execute(
            select(CostLineItem).where(CostLineItem.category_id.in_(cat_ids)).order_by(CostLineItem.display_order)
        )).scalars().all()
    variations = (await db.execute(
        select(CostVariation).where(CostVariation.cost_report_id == report_id).order_by(CostVariation.display_order)
    )).scalars().all()
    return (
        row_to_dict(report),
        [row_to_dict(c) for c in cats],
        [row_to_dict(i) for i in items],
        [row_to_dict(v) for v in variations],
    )


# ─── Reports ─────────────────────────────────────────────────────────────────

@router.get("/projects/{project_id}")
async def list_reports(
    project_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(CostReport).where(CostReport.project_id == project_id).order_by(CostReport.report_number.desc())
    )
    return [row_to_dict(r) for r in result.scalars().all()]


@router.post("")
async def create_report(
    payload: CostReportCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """New report numbered one after the project's latest."""
    await get_project_or_404(db, payload.project_id)
    latest = (await db.execute(
        select(func.max(CostReport.report_number)).where(CostReport.project_id == payload.project_id)
    )).scalar_one_or_none()
    report = CostReport(**payload.model_dump(), report_number=(latest or 0) + 1, created_by=user.id)
    db.add(report)
    await db.flush()
    logger.info("Cost report created", extra={"report_id": report.id, "project_id": payload.project_id})
    return row_to_dict(report)


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    report, categories, items, variations = await load_report_data(db, report_id)
    by_cat = {}
    for item in items:
        by_cat.setdefault(item["category_id"], []).append(item)
    return {
        **report,
        "categories": [{**c, "line_items": by_cat.get(c["id"], [])} for c in categories],
        "variations": variations,
    }


@router.put("/{report_id}")
async def update_report(
    report_id: str,
    payload: CostReportUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    report = await _get_or_404(db, CostReport, report_id, "Cost report")
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(report, field, value)
    await db.flush()
    return row_to_dict(report)


@router.delete("/{report_id}")
async def delete_report(
    report_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    report = await _get_or_404(db, CostReport, report_id, "Cost report")
    await db.delete(report)
    return {"status": "deleted", "id": report_id}


@router.get("/{report_id}/summary")
async def report_summary(
    report_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _, categories, items, variations = await load_report_data(db, report_id)
    return build_cost_report_summary(categories, items, variations).to_dict()


# ─── Categories & line items ─────────────────────────────────────────────────

@router.post("/{report_id}/categories")
async def create_category(
    report_id: str,
    payload: CategoryCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    await _get_or_404(db, CostReport, report_id, "Cost report")
    category = CostCategory(cost_report_id=report_id, **payload.model_dump())
    db.add(category)
    await db.flush()
    return row_to_dict(category)


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    category = await _get_or_404(db, CostCategory, category_id, "Category")
    await db.delete(category)
    return {"status": "deleted", "id": category_id}


@router.post("/categories/{category_id}/line-items")
async def create_line_item(
    category_id: str,
    payload: LineItemCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    await _get_or_404(db, CostCategory, category_id, "Category")
    item = CostLineItem(category_id=category_id, **payload.model_dump())
    db.add(item)
    await db.flush()
    return row_to_dict(item)


@router.put("/line-items/{item_id}")
async def update_line_item(
    item_id: str,
    payload: LineItemUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    item = await _get_or_404(db, CostLineItem, item_id, "Line item")
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(item, field, value)
    await db.flush()
    return row_to_dict(item)


@router.delete("/line-items/{item_id}")
async def delete_line_item(
    item_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    item = await _get_or_404(db, CostLineItem, item_id, "Line item")
    await db.delete(item)
    return {"status": "deleted", "id": item_id}


# ─── Variations ──────────────────────────────────────────────────────────────

@router.post("/{report_id}/variations")
async def create_variation(
    report_id: str,
    payload: VariationCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    await _get_or_404(db, CostReport, report_id, "Cost report")
    _check_status(payload.status)
    variation = CostVariation(cost_report_id=report_id, **payload.model_dump())
    db.add(variation)
    await db.flush()
    return row_to_dict(variation)


@router.put("/variations/{variation_id}")
async def update_variation(
    variation_id: str,
    payload: VariationUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    variation = await _get_or_404(db, CostVariation, variation_id, "Variation")
    _check_status(payload.status)
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(variation, field, value)
    await db.flush()
    return row_to_dict(variation)


@router.delete("/variations/{variation_id}")
async def delete_variation(
    variation_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    variation = await _get_or_404(db, CostVariation, variation_id, "Variation")
    await db.delete(variation)
    return {"status": "deleted", "id": variation_id}


@router.get("/variations/{variation_id}/sheet")
async def get_variation_sheet(
    variation_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    variation = await _get_or_404(db, CostVariation, variation_id, "Variation")
    result = await db.execute(
        select(VariationLineItem).where(VariationLineItem.variation_id == variation_id)
        .order_by(VariationLineItem.line_number)
    )
    lines = [row_to_dict(li) for li in result.scalars().all()]
    return {**row_to_dict(variation), "line_items": lines, "sheet_total": variation_total(lines)}


@router.post("/variations/{variation_id}/line-items")
async def add_variation_line(
    variation_id: str,
    payload: VariationLineCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """Append a priced line; the variation's total follows the sheet."""
    variation = await _get_or_404(db, CostVariation, variation_id, "Variation")
    last = (await db.execute(
        select(func.max(VariationLineItem.line_number)).where(VariationLineItem.variation_id == variation_id)
    )).scalar_one_or_none()
    line = VariationLineItem(
        variation_id=variation_id,
        line_number=(last or 0) + 1,
        amount=variation_line_amount(payload.quantity, payload.rate),
        **payload.model_dump(),
    )
    db.add(line)
    await db.flush()
    await _refresh_variation_total(db, variation)
    await db.flush()
    return {**row_to_dict(line), "variation_total": float(variation.total_amount)}


@router.delete("/variation-lines/{line_id}")
async def delete_variation_line(
    line_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    line = await _get_or_404(db, VariationLineItem, line_id, "Variation line")
    variation = await _get_or_404(db, CostVariation, line.variation_id, "Variation")
    await db.delete(line)
    await db.flush()
    await _refresh_variation_total(db, variation)
    return {"status": "deleted", "id": line_id, "variation_total": float(variation.total_amount)}
