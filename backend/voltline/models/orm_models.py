"""ORM Models for Voltline — SQLAlchemy 2.0"""
import uuid
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date, BigInteger,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from voltline.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── AUTH ──────────────────────────────────────────────────────────────────────
class Role(Base):
    __tablename__ = "roles"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    users: Mapped[list["User"]] = relationship("User", back_populates="role")


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    role_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("roles.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    role: Mapped[Optional["Role"]] = relationship("Role", back_populates="users")


# ── PROJECTS & TENANTS (SHOPS) ────────────────────────────────────────────────
class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    project_number: Mapped[Optional[str]] = mapped_column(String(100))
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default="active")
    created_by: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    tenants: Mapped[list["Tenant"]] = relationship("Tenant", back_populates="project", cascade="all, delete-orphan")


class Tenant(Base):
    """A shop / unit in the development fed from the electrical reticulation."""
    __tablename__ = "tenants"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    shop_number: Mapped[str] = mapped_column(String(50), nullable=False)
    shop_name: Mapped[str] = mapped_column(String(255), nullable=False)
    shop_category: Mapped[Optional[str]] = mapped_column(String(50))
    area: Mapped[Optional[float]] = mapped_column(Numeric(12, 2))
    db_size_allowance: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    project: Mapped["Project"] = relationship("Project", back_populates="tenants")
    __table_args__ = (
        Index("ix_tenants_project", "project_id"),
    )


# ── CABLE SCHEDULES ───────────────────────────────────────────────────────────
class CableSchedule(Base):
    __tablename__ = "cable_schedules"
    # updated_at is fetched back during the flush
    __mapper_args__ = {"eager_defaults": True}
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    schedule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    schedule_number: Mapped[str] = mapped_column(String(100), nullable=False)
    revision: Mapped[str] = mapped_column(String(50), default="Rev 0")
    layout_name: Mapped[Optional[str]] = mapped_column(String(255))
    schedule_date: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    entries: Mapped[list["CableEntry"]] = relationship(
        "CableEntry", back_populates="schedule", cascade="all, delete-orphan"
    )


class CableEntry(Base):
    __tablename__ = "cable_entries"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    schedule_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("cable_schedules.id", ondelete="CASCADE"), nullable=False)
    cable_tag: Mapped[str] = mapped_column(String(255), nullable=False)
    base_cable_tag: Mapped[Optional[str]] = mapped_column(String(255))
    parallel_group_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False))
    parallel_total_count: Mapped[Optional[int]] = mapped_column(Integer)
    from_location: Mapped[str] = mapped_column(String(255), nullable=False)
    to_location: Mapped[str] = mapped_column(String(255), nullable=False)
    voltage: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    load_amps: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    cable_type: Mapped[Optional[str]] = mapped_column(String(100))
    cable_size: Mapped[Optional[str]] = mapped_column(String(50))
    ohm_per_km: Mapped[Optional[float]] = mapped_column(Numeric(10, 4))
    cable_number: Mapped[int] = mapped_column(Integer, default=1)
    extra_length: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    measured_length: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    total_length: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    volt_drop: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    installation_method: Mapped[Optional[str]] = mapped_column(String(20), default="air")
    protection_device_rating: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    supply_cost: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    install_cost: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    total_cost: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    schedule: Mapped["CableSchedule"] = relationship("CableSchedule", back_populates="entries")
    __table_args__ = (
        Index("ix_cable_entries_schedule", "schedule_id"),
        Index("ix_cable_entries_parallel_group", "parallel_group_id"),
    )


class CableRate(Base):
    __tablename__ = "cable_rates"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    cable_type: Mapped[str] = mapped_column(String(100), nullable=False)
    cable_size: Mapped[str] = mapped_column(String(50), nullable=False)
    supply_rate_per_meter: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    install_rate_per_meter: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    termination_cost_per_end: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        UniqueConstraint("project_id", "cable_type", "cable_size", name="uq_cable_rate"),
    )


class CableCalculationSettings(Base):
    __tablename__ = "cable_calculation_settings"
    __mapper_args__ = {"eager_defaults": True}
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), unique=True)
    voltage_drop_limit_400v: Mapped[float] = mapped_column(Numeric(5, 2), default=5.0)
    voltage_drop_limit_230v: Mapped[float] = mapped_column(Numeric(5, 2), default=3.0)
    power_factor_power: Mapped[float] = mapped_column(Numeric(4, 2), default=0.85)
    power_factor_lighting: Mapped[float] = mapped_column(Numeric(4, 2), default=0.95)
    power_factor_motor: Mapped[float] = mapped_column(Numeric(4, 2), default=0.80)
    power_factor_hvac: Mapped[float] = mapped_column(Numeric(4, 2), default=0.85)
    ambient_temp_baseline: Mapped[int] = mapped_column(Integer, default=30)
    grouping_factor_2_circuits: Mapped[float] = mapped_column(Numeric(4, 2), default=0.80)
    grouping_factor_3_circuits: Mapped[float] = mapped_column(Numeric(4, 2), default=0.70)
    grouping_factor_4plus_circuits: Mapped[float] = mapped_column(Numeric(4, 2), default=0.65)
    cable_safety_margin: Mapped[float] = mapped_column(Numeric(4, 2), default=1.15)
    max_amps_per_cable: Mapped[float] = mapped_column(Numeric(8, 2), default=400)
    preferred_amps_per_cable: Mapped[float] = mapped_column(Numeric(8, 2), default=300)
    k_factor_copper: Mapped[float] = mapped_column(Numeric(6, 2), default=115)
    k_factor_aluminium: Mapped[float] = mapped_column(Numeric(6, 2), default=76)
    default_installation_method: Mapped[str] = mapped_column(String(20), default="air")
    default_cable_material: Mapped[str] = mapped_column(String(20), default="Aluminium")
    default_insulation_type: Mapped[str] = mapped_column(String(20), default="PVC")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# ── COST REPORTS ──────────────────────────────────────────────────────────────
class CostReport(Base):
    __tablename__ = "cost_reports"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    report_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    report_date: Mapped[Optional[date]] = mapped_column(Date)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    revision: Mapped[str] = mapped_column(String(20), default="A")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    categories: Mapped[list["CostCategory"]] = relationship(
        "CostCategory", back_populates="report", cascade="all, delete-orphan"
    )
    variations: Mapped[list["CostVariation"]] = relationship(
        "CostVariation", back_populates="report", cascade="all, delete-orphan"
    )
    __table_args__ = (
        UniqueConstraint("project_id", "report_number", name="uq_cost_report_number"),
    )


class CostCategory(Base):
    __tablename__ = "cost_categories"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    cost_report_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("cost_reports.id", ondelete="CASCADE"), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    report: Mapped["CostReport"] = relationship("CostReport", back_populates="categories")
    line_items: Mapped[list["CostLineItem"]] = relationship(
        "CostLineItem", back_populates="category", cascade="all, delete-orphan"
    )


class CostLineItem(Base):
    __tablename__ = "cost_line_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    category_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("cost_categories.id", ondelete="CASCADE"), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(20))
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    original_budget: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    previous_report: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    anticipated_final: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    category: Mapped["CostCategory"] = relationship("CostCategory", back_populates="line_items")


class CostVariation(Base):
    __tablename__ = "cost_variations"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    cost_report_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("cost_reports.id", ondelete="CASCADE"), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    tenant_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("tenants.id", ondelete="SET NULL"))
    is_credit: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default="approved")  # approved | pending
    total_amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    report: Mapped["CostReport"] = relationship("CostReport", back_populates="variations")
    line_items: Mapped[list["VariationLineItem"]] = relationship(
        "VariationLineItem", back_populates="variation", cascade="all, delete-orphan"
    )


class VariationLineItem(Base):
    __tablename__ = "variation_line_items"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    variation_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("cost_variations.id", ondelete="CASCADE"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text)
    quantity: Mapped[float] = mapped_column(Numeric(12, 3), default=0)
    rate: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    amount: Mapped[float] = mapped_column(Numeric(14, 2), default=0)
    variation: Mapped["CostVariation"] = relationship("CostVariation", back_populates="line_items")


# ── HANDOVER ──────────────────────────────────────────────────────────────────
class HandoverDocument(Base):
    __tablename__ = "handover_documents"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    document_name: Mapped[str] = mapped_column(String(255), nullable=False)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), default="tenant")  # tenant | project
    source_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False))
    file_url: Mapped[Optional[str]] = mapped_column(Text)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    added_by: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        Index("ix_handover_documents_project", "project_id"),
        Index("ix_handover_documents_source", "source_id"),
    )


class HandoverDocumentExclusion(Base):
    __tablename__ = "handover_document_exclusions"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    tenant_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    exclusion_reason: Mapped[str] = mapped_column(String(50), default="by_tenant")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        UniqueConstraint("tenant_id", "document_type", name="uq_handover_exclusion"),
    )
