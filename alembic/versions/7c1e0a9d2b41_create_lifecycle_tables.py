"""create lifecycle tables: projects, profiles, batches, elements, deliveries, delivery_items

Revision ID: 7c1e0a9d2b41
Revises:
Create Date: 2026-10-12 09:14:22.118034

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "7c1e0a9d2b41"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _created_updated() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_projects_company_id", "projects", ["company_id"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "role IN ('admin', 'factory_manager', 'driver', 'buyer')",
            name="ck_profiles_role_allowed",
        ),
    )
    op.create_index("ix_profiles_company_id", "profiles", ["company_id"])

    op.create_table(
        "production_batches",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_number", sa.String(64), nullable=False),
        sa.Column("batch_date", sa.Date(), nullable=False),
        sa.Column("concrete_supplier", sa.Text(), nullable=True),
        sa.Column("concrete_grade", sa.Text(), nullable=True),
        sa.Column("air_temperature_c", sa.Float(), nullable=True),
        sa.Column("checklist", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("status", sa.String(32), nullable=False, server_default="preparing"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("completed_by", sa.Uuid(), nullable=True),
        _ts("completed_at"),
        *_created_updated(),
        sa.UniqueConstraint("batch_number", name="uq_production_batches_batch_number"),
        sa.CheckConstraint(
            "status IN ('preparing', 'completed', 'cancelled')",
            name="ck_production_batches_status_allowed",
        ),
        sa.CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_production_batches_completed_at_consistent",
        ),
    )
    op.create_index("ix_production_batches_project_id", "production_batches", ["project_id"])

    op.create_table(
        "elements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("building_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("element_type", sa.String(32), nullable=False, server_default="other"),
        sa.Column("status", sa.String(32), nullable=False, server_default="planned"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("floor", sa.Integer(), nullable=True),
        sa.Column("length_mm", sa.Integer(), nullable=True),
        sa.Column("width_mm", sa.Integer(), nullable=True),
        sa.Column("height_mm", sa.Integer(), nullable=True),
        sa.Column("weight_kg", sa.Numeric(10, 2), nullable=True),
        sa.Column("drawing_reference", sa.Text(), nullable=True),
        sa.Column("position_description", sa.Text(), nullable=True),
        sa.Column("production_notes", sa.Text(), nullable=True),
        sa.Column("delivery_notes", sa.Text(), nullable=True),
        sa.Column(
            "batch_id",
            sa.Uuid(),
            sa.ForeignKey("production_batches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _ts("rebar_at"),
        _ts("cast_at"),
        _ts("curing_at"),
        _ts("ready_at"),
        _ts("loaded_at"),
        _ts("delivered_at"),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_created_updated(),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(
            "status IN ('planned', 'rebar', 'cast', 'curing', 'ready', 'loaded', 'delivered')",
            name="ck_elements_status_allowed",
        ),
        sa.CheckConstraint(
            "element_type IN ('wall', 'filigran', 'staircase', 'balcony', 'ceiling', 'column', 'beam', 'other')",
            name="ck_elements_type_allowed",
        ),
        sa.CheckConstraint("priority >= 0", name="ck_elements_priority_nonneg"),
        sa.CheckConstraint(
            "length_mm IS NULL OR (length_mm > 0 AND length_mm <= 50000)",
            name="ck_elements_length_range",
        ),
        sa.CheckConstraint(
            "width_mm IS NULL OR (width_mm > 0 AND width_mm <= 50000)",
            name="ck_elements_width_range",
        ),
        sa.CheckConstraint(
            "height_mm IS NULL OR (height_mm > 0 AND height_mm <= 50000)",
            name="ck_elements_height_range",
        ),
        sa.CheckConstraint(
            "weight_kg IS NULL OR (weight_kg > 0 AND weight_kg <= 100000)",
            name="ck_elements_weight_range",
        ),
    )
    op.create_index("ix_elements_project_id", "elements", ["project_id"])
    op.create_index("ix_elements_batch_id", "elements", ["batch_id"])

    op.create_table(
        "deliveries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("driver_id", sa.Uuid(), nullable=True),
        sa.Column("truck_registration", sa.String(20), nullable=False),
        sa.Column("truck_description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="planned"),
        sa.Column("planned_date", sa.Date(), nullable=True),
        _ts("loading_started_at"),
        _ts("departed_at"),
        _ts("arrived_at"),
        _ts("completed_at"),
        sa.Column("received_by_name", sa.String(100), nullable=True),
        sa.Column("signature_url", sa.Text(), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_created_updated(),
        sa.CheckConstraint(
            "status IN ('planned', 'loading', 'in_transit', 'arrived', 'completed', 'cancelled')",
            name="ck_deliveries_status_allowed",
        ),
        sa.CheckConstraint(
            "status <> 'completed' OR (completed_at IS NOT NULL AND received_by_name IS NOT NULL)",
            name="ck_deliveries_completion_record",
        ),
    )
    op.create_index("ix_deliveries_project_id", "deliveries", ["project_id"])
    op.create_index("ix_deliveries_driver_id", "deliveries", ["driver_id"])

    op.create_table(
        "delivery_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("delivery_id", sa.Uuid(), sa.ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False),
        sa.Column("element_id", sa.Uuid(), sa.ForeignKey("elements.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("load_position", sa.String(100), nullable=True),
        sa.Column("loaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("loaded_by", sa.Uuid(), nullable=True),
        _ts("delivered_at"),
        sa.Column("received_photo_url", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.UniqueConstraint("delivery_id", "element_id", name="uq_delivery_items_delivery_element"),
    )
    op.create_index("ix_delivery_items_delivery_id", "delivery_items", ["delivery_id"])
    op.create_index("ix_delivery_items_element_id", "delivery_items", ["element_id"])


def downgrade() -> None:
    op.drop_index("ix_delivery_items_element_id", table_name="delivery_items")
    op.drop_index("ix_delivery_items_delivery_id", table_name="delivery_items")
    op.drop_table("delivery_items")

    op.drop_index("ix_deliveries_driver_id", table_name="deliveries")
    op.drop_index("ix_deliveries_project_id", table_name="deliveries")
    op.drop_table("deliveries")

    op.drop_index("ix_elements_batch_id", table_name="elements")
    op.drop_index("ix_elements_project_id", table_name="elements")
    op.drop_table("elements")

    op.drop_index("ix_production_batches_project_id", table_name="production_batches")
    op.drop_table("production_batches")

    op.drop_index("ix_profiles_company_id", table_name="profiles")
    op.drop_table("profiles")

    op.drop_index("ix_projects_company_id", table_name="projects")
    op.drop_table("projects")
