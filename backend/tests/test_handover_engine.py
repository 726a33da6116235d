"""
test_handover_engine.py — Unit tests for handover document tracking.

Tests cover:
  - tenant_document_status: uploaded / excluded / missing per document type
  - tenant_completion: counts and rounded percentage
  - format_file_size: KB / MB / GB display
  - build_handover_dashboard: stats, distribution, top and attention lists,
    file size totals and recent uploads

All tests are pure unit tests; no database or external services required.
"""

import pytest

from voltline.services.handover_engine import (
    TENANT_DOCUMENT_TYPES,
    build_handover_dashboard,
    format_file_size,
    tenant_completion,
    tenant_document_status,
)

TOTAL_TYPES = len(TENANT_DOCUMENT_TYPES)


def _doc(tenant_id, doc_type, size=1024):
    return {"source_id": tenant_id, "document_type": doc_type, "file_size": size, "source_type": "tenant"}


# ===========================================================================
# Class 1: Tenant status
# ===========================================================================

class TestTenantStatus:
    """Per-tenant document status and completion."""

    def test_thirteen_required_types(self):
        assert TOTAL_TYPES == 13
        assert "electrical_coc" in TENANT_DOCUMENT_TYPES

    def test_status_values(self):
        docs = [_doc("t-1", "electrical_coc"), _doc("t-2", "line_diagram")]
        exclusions = [{"tenant_id": "t-1", "document_type": "db_guarantee", "exclusion_reason": "by_tenant"}]
        status = tenant_document_status("t-1", docs, exclusions)
        assert status["electrical_coc"] == "uploaded"
        assert status["db_guarantee"] == "by_tenant"
        assert status["line_diagram"] == "missing"
        assert len(status) == TOTAL_TYPES

    def test_upload_beats_exclusion(self):
        docs = [_doc("t-1", "electrical_coc")]
        exclusions = [{"tenant_id": "t-1", "document_type": "electrical_coc", "exclusion_reason": "not_applicable"}]
        assert tenant_document_status("t-1", docs, exclusions)["electrical_coc"] == "uploaded"

    def test_completion_counts_exclusions(self):
        docs = [_doc("t-1", "electrical_coc"), _doc("t-1", "as_built_drawing")]
        exclusions = [{"tenant_id": "t-1", "document_type": "db_guarantee", "exclusion_reason": "by_tenant"}]
        row = tenant_completion({"id": "t-1", "shop_name": "Bakery"}, docs, exclusions)
        assert row["completed_count"] == 3
        assert row["total_count"] == TOTAL_TYPES
        assert row["completion_percentage"] == 23
        assert row["shop_name"] == "Bakery"

    def test_duplicate_uploads_count_once(self):
        docs = [_doc("t-1", "electrical_coc"), _doc("t-1", "electrical_coc")]
        assert tenant_completion({"id": "t-1"}, docs, [])["completed_count"] == 1

    @pytest.mark.parametrize("uploaded, expected", [(0, 0), (1, 8), (2, 15), (13, 100)])
    def test_percentage_rounding(self, uploaded, expected):
        """1 / 13 = 7.69% → 8, 2 / 13 = 15.38% → 15."""
        docs = [_doc("t-1", t) for t in TENANT_DOCUMENT_TYPES[:uploaded]]
        assert tenant_completion({"id": "t-1"}, docs, [])["completion_percentage"] == expected


# ===========================================================================
# Class 2: File sizes
# ===========================================================================

class TestFormatFileSize:
    """Upload totals as shown on the dashboard."""

    @pytest.mark.parametrize("size, expected", [
        (0, "0.0 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 * 1024 * 1024, "3.00 GB"),
    ])
    def test_format(self, size, expected):
        assert format_file_size(size) == expected


# ===========================================================================
# Class 3: Dashboard
# ===========================================================================

class TestHandoverDashboard:
    """
    Three tenants:
      t-1 complete (all 13 uploaded)
      t-2 partial (electrical_coc uploaded, 2 excluded → 3 / 13 = 23%)
      t-3 nothing
    """

    @pytest.fixture
    def data(self):
        tenants = [
            {"id": "t-1", "shop_number": "Shop 1"},
            {"id": "t-2", "shop_number": "Shop 2"},
            {"id": "t-3", "shop_number": "Shop 3"},
        ]
        docs = [_doc("t-1", t, size=1024 * 1024) for t in TENANT_DOCUMENT_TYPES]
        docs.append(_doc("t-2", "electrical_coc", size=512 * 1024))
        exclusions = [
            {"tenant_id": "t-2", "document_type": "db_guarantee", "exclusion_reason": "by_tenant"},
            {"tenant_id": "t-2", "document_type": "lighting_guarantee", "exclusion_reason": "not_applicable"},
        ]
        return tenants, docs, exclusions

    def test_stats(self, data):
        stats = build_handover_dashboard(*data)["stats"]
        assert stats == {
            "total": 3,
            "complete": 1,
            "in_progress": 1,
            "not_started": 1,
            "overall_percentage": 41,
        }

    def test_distribution(self, data):
        dist = {d["type"]: d for d in build_handover_dashboard(*data)["document_type_distribution"]}
        assert len(dist) == TOTAL_TYPES
        assert dist["electrical_coc"]["count"] == 2
        assert dist["line_diagram"]["count"] == 1
        assert dist["electrical_coc"]["label"] == "Electrical COC"
        assert dist["electrical_coc"]["total"] == 3

    def test_top_and_attention(self, data):
        dash = build_handover_dashboard(*data)
        assert [t["id"] for t in dash["top_tenants"]] == ["t-1", "t-2", "t-3"]
        assert [t["id"] for t in dash["attention_tenants"]] == ["t-3", "t-2"]

    def test_top_limited_to_five(self):
        tenants = [{"id": f"t-{i}"} for i in range(8)]
        dash = build_handover_dashboard(tenants, [], [])
        assert len(dash["top_tenants"]) == 5
        assert len(dash["attention_tenants"]) == 5
        assert [t["id"] for t in dash["top_tenants"]] == ["t-0", "t-1", "t-2", "t-3", "t-4"]

    def test_file_size_total(self, data):
        dash = build_handover_dashboard(*data)
        assert dash["total_file_bytes"] == 13 * 1024 * 1024 + 512 * 1024
        assert dash["total_file_size"] == "13.5 MB"

    def test_recent_documents(self, data):
        dash = build_handover_dashboard(*data)
        assert len(dash["recent_documents"]) == 10
        assert dash["recent_documents"][0] is data[1][0]

    def test_empty_project(self):
        dash = build_handover_dashboard([], [], [])
        assert dash["stats"]["overall_percentage"] == 0
        assert dash["tenants"] == []
        assert dash["total_file_size"] == "0.0 KB"
