"""create routine tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    room_type = sa.Enum("lecture", "lab", "seminar", name="room_type")
    class_type = sa.Enum("lecture", "practical", "tutorial", "break", name="class_type")
    lab_group = sa.Enum("A", "B", "ALL", name="lab_group")
    lab_group_type = sa.Enum("group_a", "group_b", "both_groups", "alt_weeks", name="lab_group_type")
    resource_kind = sa.Enum("teacher", "room", name="resource_kind")

    op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("label", sa.String(length=100), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("is_break", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sort_order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_time_slots_sort_order", "time_slots", ["sort_order"])

    op.create_table(
        "programs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("total_semesters", sa.Integer(), nullable=False, server_default="8"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_programs_code", "programs", ["code"], unique=True)

    op.create_table(
        "program_sections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("program_code", sa.String(length=20), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("program_code", "semester", "name", name="uq_program_sections_program_semester_name"),
    )
    op.create_index("ix_program_sections_program_code", "program_sections", ["program_code"])

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("weekly_hours", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("has_lab", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_elective", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_subjects_code", "subjects", ["code"], unique=True)

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("short_name", sa.String(length=20), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("designation", sa.String(length=200), nullable=False, server_default="Lecturer"),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_teachers_short_name", "teachers", ["short_name"])

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="48"),
        sa.Column("type", room_type, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_rooms_name", "rooms", ["name"], unique=True)

    op.create_table(
        "class_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("program_code", sa.String(length=20), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("section", sa.String(length=20), nullable=False),
        sa.Column("day_index", sa.Integer(), nullable=False),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("time_slots.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("cell_key", sa.String(length=3), nullable=False, server_default="-"),
        sa.Column("class_type", class_type, nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=True),
        sa.Column("teacher_ids", sa.JSON(), nullable=False),
        sa.Column("room_id", sa.String(length=36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("span_id", sa.String(length=36), nullable=True),
        sa.Column("span_master", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("period_count", sa.Integer(), nullable=True),
        sa.Column("lab_group", lab_group, nullable=True),
        sa.Column("lab_group_type", lab_group_type, nullable=True),
        sa.Column("lab_pair_id", sa.String(length=36), nullable=True),
        sa.Column("alternate_weeks", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("alternate_config", sa.JSON(), nullable=True),
        sa.Column("elective_group_id", sa.String(length=36), nullable=True),
        sa.Column("elective_number", sa.Integer(), nullable=True),
        sa.Column("elective_type", sa.String(length=50), nullable=True),
        sa.Column("elective_label", sa.String(length=100), nullable=True),
        sa.Column("target_sections", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "program_code",
            "semester",
            "section",
            "day_index",
            "slot_id",
            "cell_key",
            name="uq_class_assignments_cell",
        ),
    )
    op.create_index("ix_class_assignments_section", "class_assignments", ["program_code", "semester", "section"])
    op.create_index("ix_class_assignments_span_id", "class_assignments", ["span_id"])
    op.create_index("ix_class_assignments_lab_pair_id", "class_assignments", ["lab_pair_id"])
    op.create_index("ix_class_assignments_elective_group_id", "class_assignments", ["elective_group_id"])

    op.create_table(
        "resource_occupancies",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "assignment_id",
            sa.String(length=36),
            sa.ForeignKey("class_assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("resource_kind", resource_kind, nullable=False),
        sa.Column("resource_id", sa.String(length=36), nullable=False),
        sa.Column("day_index", sa.Integer(), nullable=False),
        sa.Column("slot_id", sa.Integer(), nullable=False),
        sa.Column("week_parity", sa.String(length=1), nullable=True),
    )
    op.create_index("ix_resource_occupancies_assignment_id", "resource_occupancies", ["assignment_id"])
    op.create_index(
        "ix_resource_occupancies_lookup",
        "resource_occupancies",
        ["resource_kind", "resource_id", "day_index", "slot_id"],
    )

    op.create_table(
        "resource_slot_locks",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "resource_kind",
            postgresql.ENUM("teacher", "room", name="resource_kind", create_type=False),
            nullable=False,
        ),
        sa.Column("resource_id", sa.String(length=36), nullable=False),
        sa.Column("day_index", sa.Integer(), nullable=False),
        sa.Column("slot_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("resource_kind", "resource_id", "day_index", "slot_id", name="uq_resource_slot_locks_key"),
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("resource_slot_locks")
    op.drop_index("ix_resource_occupancies_lookup", table_name="resource_occupancies")
    op.drop_index("ix_resource_occupancies_assignment_id", table_name="resource_occupancies")
    op.drop_table("resource_occupancies")
    op.drop_index("ix_class_assignments_elective_group_id", table_name="class_assignments")
    op.drop_index("ix_class_assignments_lab_pair_id", table_name="class_assignments")
    op.drop_index("ix_class_assignments_span_id", table_name="class_assignments")
    op.drop_index("ix_class_assignments_section", table_name="class_assignments")
    op.drop_table("class_assignments")
    op.drop_index("ix_rooms_name", table_name="rooms")
    op.drop_table("rooms")
    op.drop_index("ix_teachers_short_name", table_name="teachers")
    op.drop_table("teachers")
    op.drop_index("ix_subjects_code", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_program_sections_program_code", table_name="program_sections")
    op.drop_table("program_sections")
    op.drop_index("ix_programs_code", table_name="programs")
    op.drop_table("programs")
    op.drop_index("ix_time_slots_sort_order", table_name="time_slots")
    op.drop_table("time_slots")

    bind = op.get_bind()
    for name in ("resource_kind", "lab_group_type", "lab_group", "class_type", "room_type"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
