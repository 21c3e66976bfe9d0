"""document lifecycle schema

Revision ID: 0001_document_lifecycle
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_document_lifecycle"
down_revision = None
branch_labels = None
depends_on = None


# Row triggers mirroring the ORM flush guard, for writers that bypass it.
_TRIGGERS_SQL = """
CREATE OR REPLACE FUNCTION guard_draft_only_children() RETURNS trigger AS $$
DECLARE
    doc_status text;
BEGIN
    SELECT status INTO doc_status FROM documents
    WHERE id = COALESCE(NEW.document_id, OLD.document_id);
    IF doc_status IS NOT NULL AND doc_status <> 'draft' THEN
        RAISE EXCEPTION 'document_locked: % rows of a % document are read-only',
            TG_TABLE_NAME, doc_status USING ERRCODE = 'check_violation';
    END IF;
    IF TG_OP = 'DELETE' THEN
        RETURN OLD;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

CREATE TRIGGER trg_module_instances_draft_only
    BEFORE INSERT OR UPDATE OR DELETE ON module_instances
    FOR EACH ROW EXECUTE FUNCTION guard_draft_only_children();
CREATE TRIGGER trg_action_items_draft_only
    BEFORE INSERT OR UPDATE OR DELETE ON action_items
    FOR EACH ROW EXECUTE FUNCTION guard_draft_only_children();
CREATE TRIGGER trg_evidence_references_draft_only
    BEFORE INSERT OR UPDATE OR DELETE ON evidence_references
    FOR EACH ROW EXECUTE FUNCTION guard_draft_only_children();

CREATE OR REPLACE FUNCTION guard_locked_documents() RETURNS trigger AS $$
BEGIN
    IF TG_OP = 'DELETE' THEN
        IF OLD.status <> 'draft' THEN
            RAISE EXCEPTION 'document_locked: issued documents cannot be deleted'
                USING ERRCODE = 'check_violation';
        END IF;
        RETURN OLD;
    END IF;

    IF OLD.status = 'draft' THEN
        IF NEW.status NOT IN ('draft', 'issued') THEN
            RAISE EXCEPTION 'invalid_transition: draft -> %', NEW.status
                USING ERRCODE = 'check_violation';
        END IF;
        IF NEW.status = 'draft' THEN
            NEW.locked_pdf_reference := NULL;
            NEW.locked_pdf_checksum := NULL;
            NEW.locked_pdf_size := NULL;
            NEW.locked_pdf_generated_at := NULL;
        END IF;
        RETURN NEW;
    END IF;

    IF NOT (NEW.status = OLD.status
            OR (OLD.status = 'issued' AND NEW.status = 'superseded')) THEN
        RAISE EXCEPTION 'invalid_transition: % -> %', OLD.status, NEW.status
            USING ERRCODE = 'check_violation';
    END IF;

    IF (to_jsonb(NEW) - ARRAY['status', 'superseded_at',
            'superseded_by_document_id', 'updated_at'])
       IS DISTINCT FROM
       (to_jsonb(OLD) - ARRAY['status', 'superseded_at',
            'superseded_by_document_id', 'updated_at']) THEN
        RAISE EXCEPTION 'document_locked: issued documents are immutable'
            USING ERRCODE = 'check_violation';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

CREATE TRIGGER trg_documents_lifecycle
    BEFORE UPDATE OR DELETE ON documents
    FOR EACH ROW EXECUTE FUNCTION guard_locked_documents();

CREATE OR REPLACE FUNCTION guard_snapshot_append_only() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'snapshot_immutable: revision snapshots are append-only'
        USING ERRCODE = 'check_violation';
END;
$$ LANGUAGE plpgsql;

CREATE TRIGGER trg_revision_snapshots_append_only
    BEFORE UPDATE OR DELETE ON revision_snapshots
    FOR EACH ROW EXECUTE FUNCTION guard_snapshot_append_only();
"""

_DROP_TRIGGERS_SQL = """
DROP TRIGGER IF EXISTS trg_revision_snapshots_append_only ON revision_snapshots;
DROP TRIGGER IF EXISTS trg_documents_lifecycle ON documents;
DROP TRIGGER IF EXISTS trg_evidence_references_draft_only ON evidence_references;
DROP TRIGGER IF EXISTS trg_action_items_draft_only ON action_items;
DROP TRIGGER IF EXISTS trg_module_instances_draft_only ON module_instances;
DROP FUNCTION IF EXISTS guard_snapshot_append_only();
DROP FUNCTION IF EXISTS guard_locked_documents();
DROP FUNCTION IF EXISTS guard_draft_only_children();
"""


def upgrade() -> None:
    # --- Enums ---
    documentstatus = sa.Enum("draft", "issued", "superseded", name="documentstatus")
    modulekind = sa.Enum("fra", "fsd", "dsear", "re", name="modulekind")
    snapshotstatus = sa.Enum("draft", "issued", name="snapshotstatus")
    actionstatus = sa.Enum(
        "open",
        "in_progress",
        "closed",
        "deferred",
        "not_applicable",
        name="actionstatus",
    )
    actionpriority = sa.Enum("p1", "p2", "p3", "p4", name="actionpriority")
    for enum_type in (
        documentstatus,
        modulekind,
        snapshotstatus,
        actionstatus,
        actionpriority,
    ):
        enum_type.create(op.get_bind(), checkfirst=True)

    # --- Documents ---
    op.create_table(
        "documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("family_id", sa.UUID(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(name="documentstatus", create_type=False),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column(
            "document_type",
            sa.Enum(name="modulekind", create_type=False),
            nullable=False,
        ),
        sa.Column("enabled_modules", sa.JSON(), nullable=True),
        sa.Column("assessment_date", sa.Date(), nullable=False),
        sa.Column("summary_rating", sa.String(length=50), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_by", sa.UUID(), nullable=True),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded_by_document_id", sa.UUID(), nullable=True),
        sa.Column("locked_pdf_reference", sa.String(length=1024), nullable=True),
        sa.Column("locked_pdf_checksum", sa.String(length=64), nullable=True),
        sa.Column("locked_pdf_size", sa.BigInteger(), nullable=True),
        sa.Column(
            "locked_pdf_generated_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("pdf_generation_error", sa.Text(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["superseded_by_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_documents_family_version",
        "documents",
        ["family_id", "version_number"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index(
        "uq_documents_family_single_draft",
        "documents",
        ["family_id"],
        unique=True,
        postgresql_where=sa.text("status = 'draft' AND deleted_at IS NULL"),
    )
    op.create_index("ix_documents_organisation_id", "documents", ["organisation_id"])
    op.create_index("ix_documents_family_status", "documents", ["family_id", "status"])

    # --- Module instances ---
    op.create_table(
        "module_instances",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("module_key", sa.String(length=120), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("outcome", sa.String(length=50), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "document_id", "module_key", name="uq_module_instances_doc_module"
        ),
    )
    op.create_index(
        "ix_module_instances_document_id", "module_instances", ["document_id"]
    )

    # --- Revision snapshots (append-only) ---
    op.create_table(
        "revision_snapshots",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("family_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("revision_number", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(name="snapshotstatus", create_type=False),
            nullable=False,
        ),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("payload_sha256", sa.String(length=64), nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "document_id",
            "status",
            name="uq_revision_snapshots_document_status",
        ),
    )
    op.create_index(
        "ix_revision_snapshots_document_id", "revision_snapshots", ["document_id"]
    )

    # --- Action items ---
    op.create_table(
        "action_items",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("module_key", sa.String(length=120), nullable=True),
        sa.Column("recommended_action", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(name="actionstatus", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "priority",
            sa.Enum(name="actionpriority", create_type=False),
            nullable=False,
        ),
        sa.Column("timescale", sa.String(length=120), nullable=True),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("owner_id", sa.UUID(), nullable=True),
        sa.Column("source_document_id", sa.UUID(), nullable=True),
        sa.Column("origin_action_id", sa.UUID(), nullable=True),
        sa.Column("carried_from_document_id", sa.UUID(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.UUID(), nullable=True),
        sa.Column("closure_note", sa.Text(), nullable=True),
        sa.Column("reopened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reopened_by", sa.UUID(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["source_document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["carried_from_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_action_items_document_id", "action_items", ["document_id"])
    op.create_index(
        "ix_action_items_origin_action_id", "action_items", ["origin_action_id"]
    )
    op.create_index("ix_action_items_status", "action_items", ["status"])

    # --- Evidence references ---
    op.create_table(
        "evidence_references",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("family_id", sa.UUID(), nullable=False),
        sa.Column("action_id", sa.UUID(), nullable=True),
        sa.Column("module_key", sa.String(length=120), nullable=True),
        sa.Column("storage_path", sa.String(length=1024), nullable=False),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("carried_from_document_id", sa.UUID(), nullable=True),
        sa.Column("uploaded_by", sa.UUID(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["action_id"], ["action_items.id"]),
        sa.ForeignKeyConstraint(["carried_from_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_evidence_references_document_id", "evidence_references", ["document_id"]
    )
    op.create_index(
        "ix_evidence_references_family_id", "evidence_references", ["family_id"]
    )
    op.create_index(
        "ix_evidence_references_storage_path",
        "evidence_references",
        ["storage_path"],
    )

    # --- Access tokens ---
    op.create_table(
        "access_tokens",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("family_id", sa.UUID(), nullable=False),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.UUID(), nullable=True),
        sa.Column("revoke_reason", sa.Text(), nullable=True),
        sa.Column("access_count", sa.Integer(), nullable=False),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token", name="uq_access_tokens_token"),
    )
    op.create_index("ix_access_tokens_family_id", "access_tokens", ["family_id"])

    # --- Change summaries ---
    op.create_table(
        "change_summaries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("previous_document_id", sa.UUID(), nullable=True),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("new_actions_count", sa.Integer(), nullable=False),
        sa.Column("closed_actions_count", sa.Integer(), nullable=False),
        sa.Column("outstanding_actions_count", sa.Integer(), nullable=False),
        sa.Column("new_actions", sa.JSON(), nullable=True),
        sa.Column("closed_actions", sa.JSON(), nullable=True),
        sa.Column("has_material_changes", sa.Boolean(), nullable=False),
        sa.Column("summary_text", sa.Text(), nullable=True),
        sa.Column("generated_by", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["previous_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", name="uq_change_summaries_document"),
    )

    # --- Lifecycle events (audit log, full history) ---
    op.create_table(
        "lifecycle_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=True),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("entity_type", sa.String(length=120), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.UUID(), nullable=True),
        sa.Column("document_id", sa.UUID(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_lifecycle_events_document_id", "lifecycle_events", ["document_id"]
    )
    op.create_index(
        "ix_lifecycle_events_event_type", "lifecycle_events", ["event_type"]
    )
    op.create_index(
        "ix_lifecycle_events_created_at", "lifecycle_events", ["created_at"]
    )

    if op.get_bind().dialect.name == "postgresql":
        op.execute(_TRIGGERS_SQL)


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute(_DROP_TRIGGERS_SQL)

    op.drop_index("ix_lifecycle_events_created_at", table_name="lifecycle_events")
    op.drop_index("ix_lifecycle_events_event_type", table_name="lifecycle_events")
    op.drop_index("ix_lifecycle_events_document_id", table_name="lifecycle_events")
    op.drop_table("lifecycle_events")
    op.drop_table("change_summaries")
    op.drop_index("ix_access_tokens_family_id", table_name="access_tokens")
    op.drop_table("access_tokens")
    op.drop_index(
        "ix_evidence_references_storage_path", table_name="evidence_references"
    )
    op.drop_index("ix_evidence_references_family_id", table_name="evidence_references")
    op.drop_index(
        "ix_evidence_references_document_id", table_name="evidence_references"
    )
    op.drop_table("evidence_references")
    op.drop_index("ix_action_items_status", table_name="action_items")
    op.drop_index("ix_action_items_origin_action_id", table_name="action_items")
    op.drop_index("ix_action_items_document_id", table_name="action_items")
    op.drop_table("action_items")
    op.drop_index(
        "ix_revision_snapshots_document_id", table_name="revision_snapshots"
    )
    op.drop_table("revision_snapshots")
    op.drop_index("ix_module_instances_document_id", table_name="module_instances")
    op.drop_table("module_instances")
    op.drop_index("ix_documents_family_status", table_name="documents")
    op.drop_index("ix_documents_organisation_id", table_name="documents")
    op.drop_index("uq_documents_family_single_draft", table_name="documents")
    op.drop_index("uq_documents_family_version", table_name="documents")
    op.drop_table("documents")

    for name in (
        "actionpriority",
        "actionstatus",
        "snapshotstatus",
        "modulekind",
        "documentstatus",
    ):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
