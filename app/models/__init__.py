from app.models.lifecycle import (  # noqa: F401
    AccessToken,
    ActionItem,
    ActionPriority,
    ActionStatus,
    ChangeSummary,
    Document,
    DocumentStatus,
    EvidenceReference,
    LifecycleEvent,
    ModuleInstance,
    ModuleKind,
    RevisionSnapshot,
    SnapshotStatus,
)
from app.models import guards  # noqa: F401,E402
