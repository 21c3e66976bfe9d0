import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DocumentStatus(enum.Enum):
    draft = "draft"
    issued = "issued"
    superseded = "superseded"


class ModuleKind(enum.Enum):
    fra = "FRA"
    fsd = "FSD"
    dsear = "DSEAR"
    re = "RE"


class SnapshotStatus(enum.Enum):
    draft = "draft"
    issued = "issued"


class ActionStatus(enum.Enum):
    open = "open"
    in_progress = "in_progress"
    closed = "closed"
    deferred = "deferred"
    not_applicable = "not_applicable"


class ActionPriority(enum.Enum):
    p1 = "P1"
    p2 = "P2"
    p3 = "P3"
    p4 = "P4"


# Statuses that travel with a document into its next version.
CARRY_FORWARD_STATUSES = (
    ActionStatus.open,
    ActionStatus.in_progress,
    ActionStatus.deferred,
)

# Document columns that may still change after issuance.
LIFECYCLE_FIELDS = frozenset(
    {"status", "superseded_at", "superseded_by_document_id", "updated_at"}
)

LOCKED_PDF_FIELDS = (
    "locked_pdf_reference",
    "locked_pdf_checksum",
    "locked_pdf_size",
    "locked_pdf_generated_at",
)


# ---------------------------------------------------------------------------
# Documents (one row per version; family_id groups versions)
# ---------------------------------------------------------------------------


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        # Discarded drafts keep their row but release their version number.
        Index(
            "uq_documents_family_version",
            "family_id",
            "version_number",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index(
            "uq_documents_family_single_draft",
            "family_id",
            unique=True,
            postgresql_where=text("status = 'draft' AND deleted_at IS NULL"),
            sqlite_where=text("status = 'draft' AND deleted_at IS NULL"),
        ),
        Index("ix_documents_organisation_id", "organisation_id"),
        Index("ix_documents_family_status", "family_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    family_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, default=uuid.uuid4
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # active_history: the guard needs the committed status even when expired.
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus),
        nullable=False,
        default=DocumentStatus.draft,
        active_history=True,
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    document_type: Mapped[ModuleKind] = mapped_column(
        Enum(ModuleKind), nullable=False
    )
    # Combined documents list several kinds; NULL means "document_type only".
    enabled_modules: Mapped[list | None] = mapped_column(JSON)
    assessment_date: Mapped[date] = mapped_column(
        Date, nullable=False, default=lambda: date.today()
    )
    summary_rating: Mapped[str | None] = mapped_column(String(50))
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)

    issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    issued_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    superseded_by_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )

    locked_pdf_reference: Mapped[str | None] = mapped_column(String(1024))
    locked_pdf_checksum: Mapped[str | None] = mapped_column(String(64))
    locked_pdf_size: Mapped[int | None] = mapped_column(BigInteger)
    locked_pdf_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    pdf_generation_error: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    modules = relationship(
        "ModuleInstance",
        back_populates="document",
        order_by="ModuleInstance.module_key",
    )
    actions = relationship(
        "ActionItem", foreign_keys="ActionItem.document_id", back_populates="document"
    )
    evidence = relationship(
        "EvidenceReference",
        foreign_keys="EvidenceReference.document_id",
        back_populates="document",
    )


# ---------------------------------------------------------------------------
# Module instances: live working store for form data
# ---------------------------------------------------------------------------


class ModuleInstance(Base):
    __tablename__ = "module_instances"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "module_key", name="uq_module_instances_doc_module"
        ),
        Index("ix_module_instances_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    module_key: Mapped[str] = mapped_column(String(120), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    outcome: Mapped[str | None] = mapped_column(String(50))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    document = relationship("Document", back_populates="modules")


# ---------------------------------------------------------------------------
# Revision snapshots (append-only, no updated_at)
# ---------------------------------------------------------------------------


class RevisionSnapshot(Base):
    __tablename__ = "revision_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "status",
            name="uq_revision_snapshots_document_status",
        ),
        Index("ix_revision_snapshots_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    family_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[SnapshotStatus] = mapped_column(
        Enum(SnapshotStatus), nullable=False
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    payload_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    # No updated_at: immutable record


# ---------------------------------------------------------------------------
# Action items
# ---------------------------------------------------------------------------


class ActionItem(Base):
    __tablename__ = "action_items"
    __table_args__ = (
        Index("ix_action_items_document_id", "document_id"),
        Index("ix_action_items_origin_action_id", "origin_action_id"),
        Index("ix_action_items_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    module_key: Mapped[str | None] = mapped_column(String(120))
    recommended_action: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ActionStatus] = mapped_column(
        Enum(ActionStatus), nullable=False, default=ActionStatus.open
    )
    priority: Mapped[ActionPriority] = mapped_column(
        Enum(ActionPriority), nullable=False, default=ActionPriority.p3
    )
    timescale: Mapped[str | None] = mapped_column(String(120))
    target_date: Mapped[date | None] = mapped_column(Date)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    # Lineage: source_document_id never changes once set; origin_action_id
    # points every carried copy at the first row of the lineage.
    source_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )
    origin_action_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    carried_from_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    closure_note: Mapped[str | None] = mapped_column(Text)
    reopened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reopened_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    document = relationship(
        "Document", foreign_keys=[document_id], back_populates="actions"
    )


# ---------------------------------------------------------------------------
# Evidence references (files live in the content store)
# ---------------------------------------------------------------------------


class EvidenceReference(Base):
    __tablename__ = "evidence_references"
    __table_args__ = (
        Index("ix_evidence_references_document_id", "document_id"),
        Index("ix_evidence_references_family_id", "family_id"),
        Index("ix_evidence_references_storage_path", "storage_path"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    family_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    action_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("action_items.id")
    )
    module_key: Mapped[str | None] = mapped_column(String(120))
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    caption: Mapped[str | None] = mapped_column(Text)
    carried_from_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )
    uploaded_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    document = relationship(
        "Document", foreign_keys=[document_id], back_populates="evidence"
    )


# ---------------------------------------------------------------------------
# External access tokens (always resolve to the latest issued version)
# ---------------------------------------------------------------------------


class AccessToken(Base):
    __tablename__ = "access_tokens"
    __table_args__ = (
        UniqueConstraint("token", name="uq_access_tokens_token"),
        Index("ix_access_tokens_family_id", "family_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    family_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    label: Mapped[str | None] = mapped_column(String(255))
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    revoke_reason: Mapped[str | None] = mapped_column(Text)
    access_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


# ---------------------------------------------------------------------------
# Change summaries (generated at issuance)
# ---------------------------------------------------------------------------


class ChangeSummary(Base):
    __tablename__ = "change_summaries"
    __table_args__ = (
        UniqueConstraint("document_id", name="uq_change_summaries_document"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    previous_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    new_actions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    closed_actions_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    outstanding_actions_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    new_actions: Mapped[list | None] = mapped_column(JSON)
    closed_actions: Mapped[list | None] = mapped_column(JSON)
    has_material_changes: Mapped[bool] = mapped_column(default=False)
    summary_text: Mapped[str | None] = mapped_column(Text)
    generated_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


# ---------------------------------------------------------------------------
# Lifecycle events: append-only audit trail (full history)
# ---------------------------------------------------------------------------


class LifecycleEvent(Base):
    __tablename__ = "lifecycle_events"
    __table_args__ = (
        Index("ix_lifecycle_events_document_id", "document_id"),
        Index("ix_lifecycle_events_event_type", "event_type"),
        Index("ix_lifecycle_events_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    event_type: Mapped[str] = mapped_column(String(120), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(120), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    document_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    payload: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
