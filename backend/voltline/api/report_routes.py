"""
Report Routes — PDF / Excel downloads.

GET /api/reports/cable-schedule/{schedule_id}/pdf
GET /api/reports/cable-schedule/{schedule_id}/excel
GET /api/reports/cost-report/{report_id}/pdf
GET /api/reports/handover/{project_id}/pdf
"""
import os
import logging
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from voltline.db import get_db
from voltline.api.deps import get_current_user, row_to_dict
from voltline.api.cost_report_routes import load_report_data
from voltline.api.handover_routes import load_handover_data
from voltline.api.project_routes import get_project_or_404
from voltline.models.orm_models import CableSchedule, CableEntry, User
from voltline.services.cost_report_engine import build_cost_report_summary
from voltline.services.handover_engine import build_handover_dashboard
from voltline.services.report_engine import ReportEngine

router = APIRouter(prefix="/api/reports", tags=["Reports"])
logger = logging.getLogger("voltline-report-routes")

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _file_response(path, media_type: str) -> FileResponse:
    if not path:
        raise HTTPException(status_code=500, detail="Report generation failed")
    return FileResponse(path, media_type=media_type, filename=os.path.basename(path))


async def _schedule_with_entries(db: AsyncSession, schedule_id: str):
    schedule = await db.get(CableSchedule, schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Cable schedule not found")
    result = await db.execute(
        select(CableEntry).where(CableEntry.schedule_id == schedule_id)
        .order_by(CableEntry.cable_tag, CableEntry.cable_number)
    )
    return row_to_dict(schedule), [row_to_dict(e) for e in result.scalars().all()]


@router.get("/cable-schedule/{schedule_id}/pdf")
async def cable_schedule_pdf(
    schedule_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    schedule, entries = await _schedule_with_entries(db, schedule_id)
    path = ReportEngine().generate_cable_schedule_pdf(schedule, entries)
    return _file_response(path, PDF_MEDIA_TYPE)


@router.get("/cable-schedule/{schedule_id}/excel")
async def cable_schedule_excel(
    schedule_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    schedule, entries = await _schedule_with_entries(db, schedule_id)
    path = ReportEngine().generate_cable_schedule_excel(schedule, entries)
    return _file_response(path, XLSX_MEDIA_TYPE)


@router.get("/cost-report/{report_id}/pdf")
async def cost_report_pdf(
    report_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    report, categories, items, variations = await load_report_data(db, report_id)
    summary = build_cost_report_summary(categories, items, variations)
    path = ReportEngine().generate_cost_report_pdf(report, summary, variations)
    return _file_response(path, PDF_MEDIA_TYPE)


@router.get("/handover/{project_id}/pdf")
async def handover_pdf(
    project_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await get_project_or_404(db, project_id)
    tenants, documents, exclusions = await load_handover_data(db, project_id)
    dashboard = build_handover_dashboard(tenants, documents, exclusions)
    path = ReportEngine().generate_handover_pdf(project.name, dashboard)
    return _file_response(path, PDF_MEDIA_TYPE)
