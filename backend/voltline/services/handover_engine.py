"""
Handover document tracking — per-tenant completion and the project
dashboard figures.

A required document type is satisfied for a tenant when a document of
that type has been uploaded against the tenant or an exclusion
(e.g. "by_tenant") has been recorded for it.
"""
import math
import logging
from typing import Any, Dict, List

logger = logging.getLogger("voltline-handover")

TENANT_DOCUMENT_TYPES = [
    "electrical_coc",
    "as_built_drawing",
    "line_diagram",
    "qc_inspection_report",
    "lighting_guarantee",
    "db_guarantee",
    "cable_certificate",
    "metering_certificate",
    "earth_continuity_test",
    "insulation_resistance_test",
    "loop_impedance_test",
    "rcd_test_certificate",
    "tenant_load_schedule",
]

DOCUMENT_TYPE_LABELS = {
    "electrical_coc": "Electrical COC",
    "as_built_drawing": "As Built Drawing",
    "line_diagram": "Line Diagram",
    "qc_inspection_report": "QC Inspection Report",
    "lighting_guarantee": "Lighting Guarantee",
    "db_guarantee": "DB Guarantee",
    "cable_certificate": "Cable Certificate",
    "metering_certificate": "Metering Certificate",
    "earth_continuity_test": "Earth Continuity Test",
    "insulation_resistance_test": "Insulation Resistance Test",
    "loop_impedance_test": "Loop Impedance Test",
    "rcd_test_certificate": "RCD Test Certificate",
    "tenant_load_schedule": "Tenant Load Schedule",
}

EXCLUSION_REASONS = ("by_tenant", "not_applicable")
MAX_UPLOAD_BYTES = 50 * 1024 * 1024
TOP_N = 5
RECENT_N = 10


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def tenant_document_status(
    tenant_id: str,
    documents: List[Dict[str, Any]],
    exclusions: List[Dict[str, Any]],
) -> Dict[str, str]:
    """document_type → 'uploaded' | excluded reason | 'missing'."""
    uploaded = {d.get("document_type") for d in documents if str(d.get("source_id")) == str(tenant_id)}
    excluded = {
        e.get("document_type"): e.get("exclusion_reason") or "by_tenant"
        for e in exclusions if str(e.get("tenant_id")) == str(tenant_id)
    }
    status = {}
    for doc_type in TENANT_DOCUMENT_TYPES:
        if doc_type in uploaded:
            status[doc_type] = "uploaded"
        elif doc_type in excluded:
            status[doc_type] = excluded[doc_type]
        else:
            status[doc_type] = "missing"
    return status


def tenant_completion(
    tenant: Dict[str, Any],
    documents: List[Dict[str, Any]],
    exclusions: List[Dict[str, Any]],
) -> Dict[str, Any]:
    status = tenant_document_status(tenant.get("id"), documents, exclusions)
    completed = sum(1 for s in status.values() if s != "missing")
    total = len(TENANT_DOCUMENT_TYPES)
    return {
        **tenant,
        "completed_count": completed,
        "total_count": total,
        "completion_percentage": _round_half_up(completed / total * 100),
        "document_status": status,
    }


def format_file_size(total_bytes: int) -> str:
    if total_bytes < 1024 * 1024:
        return f"{total_bytes / 1024:.1f} KB"
    if total_bytes < 1024 * 1024 * 1024:
        return f"{total_bytes / (1024 * 1024):.1f} MB"
    return f"{total_bytes / (1024 * 1024 * 1024):.2f} GB"


def build_handover_dashboard(
    tenants: List[Dict[str, Any]],
    documents: List[Dict[str, Any]],
    exclusions: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Project handover dashboard: tenant completion stats, per-type document
    counts, best and worst tenants, total upload size and recent uploads.
    ``documents`` is expected newest first.
    """
    rows = [tenant_completion(t, documents, exclusions) for t in tenants]
    total = len(rows)
    complete = sum(1 for r in rows if r["completion_percentage"] == 100)
    not_started = sum(1 for r in rows if r["completion_percentage"] == 0)
    overall = _round_half_up(sum(r["completion_percentage"] for r in rows) / total) if total else 0

    distribution = [
        {
            "type": doc_type,
            "label": DOCUMENT_TYPE_LABELS[doc_type],
            "count": sum(1 for d in documents if d.get("document_type") == doc_type),
            "total": total,
        }
        for doc_type in TENANT_DOCUMENT_TYPES
    ]

    # sorted() is stable so equal percentages keep tenant order
    top = sorted(rows, key=lambda r: -r["completion_percentage"])[:TOP_N]
    attention = sorted(
        (r for r in rows if r["completion_percentage"] < 100),
        key=lambda r: r["completion_percentage"],
    )[:TOP_N]

    total_bytes = sum(int(d.get("file_size") or 0) for d in documents)
    logger.debug("Handover dashboard: %d tenants, %d documents", total, len(documents))

    return {
        "stats": {
            "total": total,
            "complete": complete,
            "in_progress": total - complete - not_started,
            "not_started": not_started,
            "overall_percentage": overall,
        },
        "tenants": rows,
        "document_type_distribution": distribution,
        "top_tenants": top,
        "attention_tenants": attention,
        "total_file_size": format_file_size(total_bytes),
        "total_file_bytes": total_bytes,
        "recent_documents": documents[:RECENT_N],
    }
