"""
Cable routes — sizing calculator, cable schedules, entries, rates, Excel
import and the optimisation report.

POST /api/cables/calculate is stateless and needs no login; everything
else reads or writes the schedule tables.
"""
import logging
from datetime import date
from typing import Optional, List
from fastapi import APIRouter, UploadFile, File, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from voltline.db import get_db
from voltline.api.deps import get_current_user, require_role, row_to_dict
from voltline.api.project_routes import get_project_or_404
from voltline.api.settings_routes import load_calculation_settings
from voltline.models.orm_models import CableSchedule, CableEntry, CableRate, Tenant, User
from voltline.services.cable_sizing_engine import (
    CableCalculationParams,
    INSTALLATION_METHODS,
    calculate_cable_size,
    get_cable_table,
    normalize_material,
)
from voltline.services.cable_optimization_engine import analyze_cable_optimizations, material_for_entry, resize_entry
from voltline.services.cable_schedule_engine import (
    DEFAULT_ENTRY_DERATING,
    available_tenants,
    build_parallel_entries,
    generate_cable_tag,
    parse_db_allowance_amps,
    summarize_schedule,
)
from voltline.services.cable_import import parse_cable_workbook

router = APIRouter(prefix="/api/cables", tags=["Cable Schedules"])
logger = logging.getLogger("voltline-api")

MAX_IMPORT_BYTES = 20 * 1024 * 1024

# Entry columns that feed the cable sizing
SIZING_FIELDS = {"load_amps", "voltage", "measured_length", "extra_length", "cable_type", "installation_method"}


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class CableCalculationRequest(BaseModel):
    load_amps: float
    voltage: float
    total_length: float = 0.0
    material: str = "copper"
    installation_method: str = "air"
    derating_factor: float = 1.0
    safety_margin: float = 1.0
    max_amps_per_cable: float = 400.0
    preferred_amps_per_cable: float = 300.0
    voltage_drop_limit: Optional[float] = None


class ScheduleCreate(BaseModel):
    project_id: str
    schedule_name: str
    schedule_number: str
    revision: str = "Rev 0"
    layout_name: Optional[str] = None
    schedule_date: Optional[date] = None
    notes: Optional[str] = None


class ScheduleUpdate(BaseModel):
    schedule_name: Optional[str] = None
    schedule_number: Optional[str] = None
    revision: Optional[str] = None
    layout_name: Optional[str] = None
    schedule_date: Optional[date] = None
    notes: Optional[str] = None


class CableEntryCreate(BaseModel):
    cable_tag: Optional[str] = None
    from_location: str
    to_location: str
    voltage: Optional[float] = None
    load_amps: Optional[float] = None
    cable_type: Optional[str] = None
    cable_size: Optional[str] = None
    ohm_per_km: Optional[float] = None
    cable_number: Optional[int] = None
    extra_length: float = 0.0
    measured_length: float = 0.0
    volt_drop: Optional[float] = None
    installation_method: Optional[str] = None
    protection_device_rating: Optional[float] = None
    notes: Optional[str] = None
    supply_cost: float = 0.0
    install_cost: float = 0.0
    auto_size: bool = True


class CableEntryUpdate(BaseModel):
    cable_tag: Optional[str] = None
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    voltage: Optional[float] = None
    load_amps: Optional[float] = None
    cable_type: Optional[str] = None
    cable_size: Optional[str] = None
    ohm_per_km: Optional[float] = None
    cable_number: Optional[int] = None
    extra_length: Optional[float] = None
    measured_length: Optional[float] = None
    volt_drop: Optional[float] = None
    installation_method: Optional[str] = None
    protection_device_rating: Optional[float] = None
    notes: Optional[str] = None
    supply_cost: Optional[float] = None
    install_cost: Optional[float] = None


class CableRateCreate(BaseModel):
    cable_type: str
    cable_size: str
    supply_rate_per_meter: float = 0.0
    install_rate_per_meter: float = 0.0
    termination_cost_per_end: float = 0.0


class CableRateUpdate(BaseModel):
    supply_rate_per_meter: Optional[float] = None
    install_rate_per_meter: Optional[float] = None
    termination_cost_per_end: Optional[float] = None


# ─── Helpers ─────────────────────────────────────────────────────────────────

async def _get_schedule_or_404(db: AsyncSession, schedule_id: str) -> CableSchedule:
    schedule = await db.get(CableSchedule, schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Cable schedule not found")
    return schedule


async def _schedule_entries(db: AsyncSession, schedule_id: str) -> List[dict]:
    result = await db.execute(
        select(CableEntry)
        .where(CableEntry.schedule_id == schedule_id)
        .order_by(CableEntry.cable_tag, CableEntry.cable_number)
    )
    return [row_to_dict(e) for e in result.scalars().all()]


def _check_method(method: Optional[str]) -> None:
    if method is not None and method not in INSTALLATION_METHODS:
        raise HTTPException(status_code=422, detail=f"installation_method must be one of {list(INSTALLATION_METHODS)}")


# ─── Calculator ──────────────────────────────────────────────────────────────

@router.post("/calculate")
async def calculate(req: CableCalculationRequest):
    """Size a cable run. 422 when no table cable can carry the load."""
    _check_method(req.installation_method)
    if req.derating_factor <= 0 or req.derating_factor > 1:
        raise HTTPException(status_code=422, detail="derating_factor must be between 0 and 1")
    if req.total_length < 0:
        raise HTTPException(status_code=422, detail="total_length cannot be negative")
    for key in ("max_amps_per_cable", "preferred_amps_per_cable", "safety_margin"):
        if getattr(req, key) <= 0:
            raise HTTPException(status_code=422, detail=f"{key} must be positive")
    if req.voltage_drop_limit is not None and req.voltage_drop_limit <= 0:
        raise HTTPException(status_code=422, detail="voltage_drop_limit must be positive")

    try:
        result = calculate_cable_size(CableCalculationParams(
            load_amps=req.load_amps,
            voltage=req.voltage,
            total_length=req.total_length,
            material=normalize_material(req.material),
            installation_method=req.installation_method,
            derating_factor=req.derating_factor,
            safety_margin=req.safety_margin,
            max_amps_per_cable=req.max_amps_per_cable,
            preferred_amps_per_cable=req.preferred_amps_per_cable,
            voltage_drop_limit=req.voltage_drop_limit,
        ))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if result is None:
        raise HTTPException(
            status_code=422,
            detail="No cable configuration found: load and voltage must be positive and within table capacity",
        )
    return result.to_dict()


@router.get("/reference/{material}")
async def cable_reference_table(material: str):
    """SANS 1507-3 reference data for copper or aluminium."""
    return [row.to_dict() for row in get_cable_table(normalize_material(material))]


# ─── Schedules ───────────────────────────────────────────────────────────────

@router.get("/projects/{project_id}/schedules")
async def list_schedules(
    project_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(CableSchedule).where(CableSchedule.project_id == project_id).order_by(CableSchedule.created_at.desc())
    )
    return [row_to_dict(s) for s in result.scalars().all()]


@router.post("/schedules")
async def create_schedule(
    payload: ScheduleCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    await get_project_or_404(db, payload.project_id)
    schedule = CableSchedule(**payload.model_dump(), created_by=user.id)
    db.add(schedule)
    await db.flush()
    logger.info("Cable schedule created", extra={"schedule_id": schedule.id, "project_id": payload.project_id})
    return row_to_dict(schedule)


@router.get("/schedules/{schedule_id}")
async def get_schedule(
    schedule_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    schedule = await _get_schedule_or_404(db, schedule_id)
    entries = await _schedule_entries(db, schedule_id)
    return {**row_to_dict(schedule), "summary": summarize_schedule(entries)}


@router.put("/schedules/{schedule_id}")
async def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    schedule = await _get_schedule_or_404(db, schedule_id)
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(schedule, field, value)
    await db.flush()
    return row_to_dict(schedule)


@router.delete("/schedules/{schedule_id}")
async def delete_schedule(
    schedule_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    schedule = await _get_schedule_or_404(db, schedule_id)
    await db.delete(schedule)
    return {"status": "deleted", "id": schedule_id}


# ─── Entries ─────────────────────────────────────────────────────────────────

@router.get("/schedules/{schedule_id}/entries")
async def list_entries(
    schedule_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _get_schedule_or_404(db, schedule_id)
    return await _schedule_entries(db, schedule_id)


@router.get("/schedules/{schedule_id}/available-tenants")
async def list_available_tenants(
    schedule_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Project tenants not yet fed by a cable in this schedule, with DB allowance amps."""
    schedule = await _get_schedule_or_404(db, schedule_id)
    tenants = (await db.execute(select(Tenant).where(Tenant.project_id == schedule.project_id))).scalars().all()
    used = {e["to_location"] for e in await _schedule_entries(db, schedule_id)}
    return [
        {**t, "load_amps": parse_db_allowance_amps(t.get("db_size_allowance"))}
        for t in available_tenants((row_to_dict(t) for t in tenants), used)
    ]


@router.post("/schedules/{schedule_id}/entries")
async def create_entry(
    schedule_id: str,
    payload: CableEntryCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """
    Add a cable. With ``auto_size`` and a load + voltage, the cable is sized
    from the project's calculation settings and expanded into one row per
    parallel cable.
    """
    schedule = await _get_schedule_or_404(db, schedule_id)
    _check_method(payload.installation_method)
    settings = await load_calculation_settings(db, schedule.project_id)

    base = payload.model_dump(exclude={"auto_size"})
    base["schedule_id"] = schedule_id
    base["installation_method"] = payload.installation_method or settings.default_installation_method

    sizing = None
    if payload.auto_size and payload.load_amps and payload.voltage:
        total_length = (payload.measured_length or 0) + (payload.extra_length or 0)
        sizing = calculate_cable_size(CableCalculationParams(
            load_amps=payload.load_amps,
            voltage=payload.voltage,
            total_length=total_length,
            material=material_for_entry(payload.cable_type, settings),
            derating_factor=DEFAULT_ENTRY_DERATING,
            installation_method=base["installation_method"],
            max_amps_per_cable=settings.max_amps_per_cable,
            preferred_amps_per_cable=settings.preferred_amps_per_cable,
            voltage_drop_limit=settings.volt_drop_limit_for(payload.voltage),
        ))
        if sizing is None:
            raise HTTPException(status_code=422, detail="No cable configuration can carry this load")

    try:
        rows = build_parallel_entries(base, sizing)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    created = []
    for row in rows:
        entry = CableEntry(**row)
        db.add(entry)
        created.append(entry)
    await db.flush()

    logger.info(f"Created {len(created)} cable entries", extra={"schedule_id": schedule_id})
    return {
        "entries": [row_to_dict(e) for e in created],
        "sizing": sizing.to_dict() if sizing else None,
    }


@router.put("/entries/{entry_id}")
async def update_entry(
    entry_id: str,
    payload: CableEntryUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    entry = await db.get(CableEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Cable entry not found")
    _check_method(payload.installation_method)

    updates = payload.model_dump(exclude_none=True)
    for field, value in updates.items():
        setattr(entry, field, value)

    # Derived columns follow their inputs
    if "measured_length" in updates or "extra_length" in updates:
        entry.total_length = float(entry.measured_length or 0) + float(entry.extra_length or 0)
    if "supply_cost" in updates or "install_cost" in updates:
        entry.total_cost = float(entry.supply_cost or 0) + float(entry.install_cost or 0)
    if not payload.cable_tag and {"from_location", "to_location", "voltage", "cable_number"} & updates.keys():
        if not entry.parallel_group_id:
            entry.cable_tag = generate_cable_tag(entry.from_location, entry.to_location, entry.voltage, entry.cable_number)

    # A changed sizing input re-sizes the cable unless the size was set in this edit
    if SIZING_FIELDS & updates.keys() and "cable_size" not in updates and not entry.parallel_group_id:
        schedule = await _get_schedule_or_404(db, entry.schedule_id)
        settings = await load_calculation_settings(db, schedule.project_id)
        sized = resize_entry(row_to_dict(entry), settings)
        if sized:
            for field, value in sized.items():
                setattr(entry, field, value)

    await db.flush()
    return row_to_dict(entry)


@router.post("/schedules/{schedule_id}/recalculate")
async def recalculate_entries(
    schedule_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """Re-size every entry from its load, voltage and length with the project settings."""
    schedule = await _get_schedule_or_404(db, schedule_id)
    settings = await load_calculation_settings(db, schedule.project_id)
    result = await db.execute(select(CableEntry).where(CableEntry.schedule_id == schedule_id))

    updated = skipped = 0
    for entry in result.scalars().all():
        sized = resize_entry(row_to_dict(entry), settings)
        if sized is None:
            skipped += 1
            continue
        for field, value in sized.items():
            setattr(entry, field, value)
        updated += 1
    await db.flush()

    logger.info(f"Recalculated {updated} cable entries, skipped {skipped}", extra={"schedule_id": schedule_id})
    return {"status": "recalculated", "updated": updated, "skipped": skipped}


@router.delete("/entries/{entry_id}")
async def delete_entry(
    entry_id: str,
    whole_group: bool = False,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """Delete one entry, or its whole parallel group with ``whole_group=true``."""
    entry = await db.get(CableEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Cable entry not found")
    if whole_group and entry.parallel_group_id:
        result = await db.execute(delete(CableEntry).where(CableEntry.parallel_group_id == entry.parallel_group_id))
        return {"status": "deleted", "count": result.rowcount}
    await db.delete(entry)
    return {"status": "deleted", "count": 1}


@router.post("/schedules/{schedule_id}/import")
async def import_entries(
    schedule_id: str,
    file: UploadFile = File(...),
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """Import cable entries from the contractor's Excel cable schedule."""
    await _get_schedule_or_404(db, schedule_id)
    filename = (file.filename or "").lower()
    if not filename.endswith((".xlsx", ".xls")):
        raise HTTPException(status_code=400, detail="Please upload an Excel file (.xlsx or .xls)")

    contents = await file.read()
    if len(contents) > MAX_IMPORT_BYTES:
        raise HTTPException(status_code=400, detail="File too large")

    try:
        parsed = parse_cable_workbook(contents)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    for row in parsed:
        db.add(CableEntry(
            schedule_id=schedule_id,
            **{k: v for k, v in row.items() if v is not None},
        ))
    await db.flush()

    logger.info(f"Imported {len(parsed)} cable entries", extra={"schedule_id": schedule_id})
    return {"status": "imported", "count": len(parsed)}


# ─── Rates ───────────────────────────────────────────────────────────────────

@router.get("/projects/{project_id}/rates")
async def list_rates(
    project_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(CableRate).where(CableRate.project_id == project_id).order_by(CableRate.cable_type, CableRate.cable_size)
    )
    return [row_to_dict(r) for r in result.scalars().all()]


@router.post("/projects/{project_id}/rates")
async def create_rate(
    project_id: str,
    payload: CableRateCreate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    await get_project_or_404(db, project_id)
    existing = await db.execute(select(CableRate).where(
        CableRate.project_id == project_id,
        CableRate.cable_type == payload.cable_type,
        CableRate.cable_size == payload.cable_size,
    ))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="A rate for this cable type and size already exists")
    rate = CableRate(project_id=project_id, **payload.model_dump())
    db.add(rate)
    await db.flush()
    return row_to_dict(rate)


@router.put("/rates/{rate_id}")
async def update_rate(
    rate_id: str,
    payload: CableRateUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    rate = await db.get(CableRate, rate_id)
    if not rate:
        raise HTTPException(status_code=404, detail="Cable rate not found")
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(rate, field, value)
    await db.flush()
    return row_to_dict(rate)


@router.delete("/rates/{rate_id}")
async def delete_rate(
    rate_id: str,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    rate = await db.get(CableRate, rate_id)
    if not rate:
        raise HTTPException(status_code=404, detail="Cable rate not found")
    await db.delete(rate)
    return {"status": "deleted", "id": rate_id}


# ─── Optimisation ────────────────────────────────────────────────────────────

@router.get("/schedules/{schedule_id}/optimizations")
async def schedule_optimizations(
    schedule_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cheaper compliant alternatives for each cable in the schedule."""
    schedule = await _get_schedule_or_404(db, schedule_id)
    entries = await _schedule_entries(db, schedule_id)
    rates = (await db.execute(select(CableRate).where(CableRate.project_id == schedule.project_id))).scalars().all()
    settings = await load_calculation_settings(db, schedule.project_id)

    results = analyze_cable_optimizations(entries, [row_to_dict(r) for r in rates], settings)
    total_savings = sum(
        max((a.savings for a in r.alternatives), default=0.0) for r in results
    )
    return {
        "schedule_id": schedule_id,
        "optimizations": [r.to_dict() for r in results],
        "potential_savings": round(total_savings, 2),
    }
