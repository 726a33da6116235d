"""
test_import_safety.py — Import and circular import checks.

Verifies that:
  1. Every engine module imports on its own without a database connection.
  2. Every router module imports (and so every ORM model it touches) without
     circular import failures.
  3. The engines stay pure: importing them does not pull in the web or
     database layers.

No database, network, or external services are required.
"""

import importlib
import pytest


ENGINE_MODULES = [
    "voltline.services.cable_sizing_engine",
    "voltline.services.cable_optimization_engine",
    "voltline.services.cable_schedule_engine",
    "voltline.services.cable_import",
    "voltline.services.cost_report_engine",
    "voltline.services.handover_engine",
    "voltline.services.report_engine",
    "voltline.services.logging_config",
]

API_MODULES = [
    "voltline.db",
    "voltline.models.orm_models",
    "voltline.api.deps",
    "voltline.api.auth_routes",
    "voltline.api.project_routes",
    "voltline.api.settings_routes",
    "voltline.api.cable_routes",
    "voltline.api.cost_report_routes",
    "voltline.api.handover_routes",
    "voltline.api.report_routes",
]


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------

class TestEngineImports:
    """Engine modules import cleanly."""

    @pytest.mark.parametrize("module_name", ENGINE_MODULES)
    def test_imports(self, module_name):
        module = importlib.import_module(module_name)
        assert module is not None

    @pytest.mark.parametrize("module_name", [
        "voltline.services.cable_sizing_engine",
        "voltline.services.cost_report_engine",
        "voltline.services.handover_engine",
    ])
    def test_engine_does_not_import_web_layer(self, module_name):
        """Pure engines never import fastapi or sqlalchemy."""
        module = importlib.import_module(module_name)
        with open(module.__file__, encoding="utf-8") as fh:
            source = fh.read()
        assert "import fastapi" not in source and "from fastapi" not in source
        assert "sqlalchemy" not in source


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

class TestApiImports:
    """Routers, ORM models and the DB layer import without a live database."""

    @pytest.mark.parametrize("module_name", API_MODULES)
    def test_imports(self, module_name):
        module = importlib.import_module(module_name)
        assert module is not None

    @pytest.mark.parametrize("module_name", [m for m in API_MODULES if m.endswith("_routes")])
    def test_routers_exposed(self, module_name):
        module = importlib.import_module(module_name)
        assert module.router.prefix.startswith("/api/")
        assert module.router.routes
