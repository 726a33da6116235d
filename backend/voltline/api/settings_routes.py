"""Settings routes — per-project cable calculation settings."""
import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from voltline.db import get_db
from voltline.api.deps import get_current_user, require_role, row_to_dict
from voltline.models.orm_models import CableCalculationSettings, Project, User
from voltline.services.cable_optimization_engine import CalculationSettings
from voltline.services.cable_sizing_engine import INSTALLATION_METHODS

router = APIRouter(prefix="/api/settings", tags=["Calculation Settings"])
logger = logging.getLogger("voltline-api")


class CalculationSettingsUpdate(BaseModel):
    voltage_drop_limit_400v: Optional[float] = None
    voltage_drop_limit_230v: Optional[float] = None
    power_factor_power: Optional[float] = None
    power_factor_lighting: Optional[float] = None
    power_factor_motor: Optional[float] = None
    power_factor_hvac: Optional[float] = None
    ambient_temp_baseline: Optional[int] = None
    grouping_factor_2_circuits: Optional[float] = None
    grouping_factor_3_circuits: Optional[float] = None
    grouping_factor_4plus_circuits: Optional[float] = None
    cable_safety_margin: Optional[float] = None
    max_amps_per_cable: Optional[float] = None
    preferred_amps_per_cable: Optional[float] = None
    k_factor_copper: Optional[float] = None
    k_factor_aluminium: Optional[float] = None
    default_installation_method: Optional[str] = None
    default_cable_material: Optional[str] = None
    default_insulation_type: Optional[str] = None


def _validate_settings(updates: dict) -> None:
    """Reject values the sizing engine cannot work with. Raises 422."""
    for key in ("voltage_drop_limit_400v", "voltage_drop_limit_230v", "max_amps_per_cable",
                "preferred_amps_per_cable", "cable_safety_margin"):
        if key in updates and updates[key] <= 0:
            raise HTTPException(status_code=422, detail=f"{key} must be positive")
    for key in ("grouping_factor_2_circuits", "grouping_factor_3_circuits", "grouping_factor_4plus_circuits",
                "power_factor_power", "power_factor_lighting", "power_factor_motor", "power_factor_hvac"):
        if key in updates and not 0 < updates[key] <= 1:
            raise HTTPException(status_code=422, detail=f"{key} must be between 0 and 1")
    method = updates.get("default_installation_method")
    if method is not None and method not in INSTALLATION_METHODS:
        raise HTTPException(status_code=422, detail=f"default_installation_method must be one of {list(INSTALLATION_METHODS)}")


async def load_calculation_settings(db: AsyncSession, project_id: str) -> CalculationSettings:
    """Project settings, or defaults when none have been saved."""
    result = await db.execute(
        select(CableCalculationSettings).where(CableCalculationSettings.project_id == project_id)
    )
    row = result.scalar_one_or_none()
    return CalculationSettings.from_mapping(row_to_dict(row) if row else None)


@router.get("/calculation/{project_id}")
async def get_calculation_settings(
    project_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    settings = await load_calculation_settings(db, project_id)
    return {"project_id": project_id, **settings.to_dict()}


@router.put("/calculation/{project_id}")
async def upsert_calculation_settings(
    project_id: str,
    payload: CalculationSettingsUpdate,
    user: User = Depends(require_role("Engineer")),
    db: AsyncSession = Depends(get_db),
):
    """UPSERT calculation settings for the project."""
    if not await db.get(Project, project_id):
        raise HTTPException(status_code=404, detail="Project not found")

    updates = payload.model_dump(exclude_none=True)
    _validate_settings(updates)

    result = await db.execute(
        select(CableCalculationSettings).where(CableCalculationSettings.project_id == project_id)
    )
    row = result.scalar_one_or_none()
    if not row:
        row = CableCalculationSettings(project_id=project_id, **CalculationSettings().to_dict())
        db.add(row)

    for field, value in updates.items():
        setattr(row, field, value)

    await db.commit()
    logger.info("Calculation settings updated", extra={"project_id": project_id})
    return {"status": "updated", "fields_updated": list(updates.keys())}
