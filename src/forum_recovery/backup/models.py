"""Record types and file formats for bundles and quarantine files.

Every row crossing the store/file boundary is validated into one of the
tagged record models below (``kind`` identifies the entity type in the
JSON).  Unknown columns are ignored so raw ``SELECT *`` rows validate
directly.

A ``Bundle`` is the self-contained snapshot of one tenant.  It is frozen
once built; ``metadata.totalRecords`` must equal the number of records
it carries.

Usage:
    from forum_recovery.backup.models import Bundle, UserRecord

    bundle = Bundle.model_validate_json(path.read_text())
    emails = [u.email for u in bundle.users]
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

BUNDLE_VERSION = "1.0"
SUPPORTED_BUNDLE_VERSIONS = frozenset({BUNDLE_VERSION})


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# ============================================================================
# Nested references (denormalized parent context)
# ============================================================================


class UserRef(_Frozen):
    """Author/actor reference carried alongside a child row."""

    id: str | None = None
    email: str
    name: str | None = None


class CategoryRef(_Frozen):
    """Category reference carried alongside a content row."""

    id: str | None = None
    name: str


# ============================================================================
# Entity records
# ============================================================================


class TenantRecord(_Frozen):
    kind: Literal["tenant"] = "tenant"
    id: str
    domain: str
    name: str = ""
    settings: dict[str, Any] | None = None
    owner_id: str | None = None


class _TenantScoped(_Frozen):
    id: str
    # Nullable so orphaned rows (NULL tenant) still validate for quarantine.
    tenant_id: str | None = None


class UserRecord(_TenantScoped):
    kind: Literal["user"] = "user"
    email: str
    name: str | None = None
    image: str | None = None
    role: str = "MEMBER"
    is_owner: bool = False


class CategoryRecord(_TenantScoped):
    kind: Literal["category"] = "category"
    name: str
    color: str | None = None
    description: str | None = None
    position: int = 0
    is_active: bool = True


class ContentRecord(_TenantScoped):
    """A forum post."""

    kind: Literal["content"] = "content"
    author_id: str
    category_id: str | None = None
    title: str
    body: str = ""
    slug: str | None = None
    image_url: str | None = None
    status: str = "PUBLISHED"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: UserRef | None = None
    category: CategoryRef | None = None


class ReplyRecord(_TenantScoped):
    """A comment on a post."""

    kind: Literal["reply"] = "reply"
    post_id: str
    author_id: str
    body: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: UserRef | None = None


class ReactionRecord(_TenantScoped):
    """A reaction on either a post or a comment."""

    kind: Literal["reaction"] = "reaction"
    user_id: str
    post_id: str | None = None
    comment_id: str | None = None
    type: str
    created_at: datetime | None = None
    user: UserRef | None = None


class BadgeRecord(_TenantScoped):
    kind: Literal["badge"] = "badge"
    name: str
    image_url: str | None = None
    required_points: int = 0
    description: str | None = None
    is_default: bool = False
    position: int = 0


class PollVoteRecord(_Frozen):
    id: str
    user_id: str
    user: UserRef | None = None


class PollOptionRecord(_Frozen):
    id: str
    text: str
    position: int = 0
    votes: tuple[PollVoteRecord, ...] = ()


class PollRecord(_TenantScoped):
    kind: Literal["poll"] = "poll"
    post_id: str
    question: str
    created_at: datetime | None = None
    options: tuple[PollOptionRecord, ...] = ()


# ============================================================================
# Bundle
# ============================================================================


class BundleMetadata(_Frozen):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str = BUNDLE_VERSION
    timestamp: datetime
    total_records: int = Field(alias="totalRecords")


class Bundle(_Frozen):
    """Snapshot of one tenant's entity graph.

    Record arrays are independent of each other in the file; restore order
    is decided by the engine, not by key order.
    """

    tenant: TenantRecord
    users: tuple[UserRecord, ...] = ()
    content: tuple[ContentRecord, ...] = ()
    replies: tuple[ReplyRecord, ...] = ()
    reactions: tuple[ReactionRecord, ...] = ()
    categories: tuple[CategoryRecord, ...] = ()
    badges: tuple[BadgeRecord, ...] = ()
    polls: tuple[PollRecord, ...] = ()
    metadata: BundleMetadata

    @property
    def record_count(self) -> int:
        """Number of records carried (the tenant row is not counted)."""
        return (
            len(self.users)
            + len(self.content)
            + len(self.replies)
            + len(self.reactions)
            + len(self.categories)
            + len(self.badges)
            + len(self.polls)
        )

    @model_validator(mode="after")
    def _check_total_records(self) -> "Bundle":
        if self.metadata.total_records != self.record_count:
            raise ValueError(
                f"metadata.totalRecords is {self.metadata.total_records} "
                f"but the bundle carries {self.record_count} records"
            )
        return self

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


# ============================================================================
# Quarantine file
# ============================================================================


class QuarantineMetadata(_Frozen):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["orphaned_data"] = "orphaned_data"
    timestamp: datetime
    total_orphans: int = Field(alias="totalOrphans")


class QuarantineFile(_Frozen):
    """Orphaned rows saved right before the reconciler deletes them."""

    content: tuple[ContentRecord, ...] = ()
    replies: tuple[ReplyRecord, ...] = ()
    reactions: tuple[ReactionRecord, ...] = ()
    categories: tuple[CategoryRecord, ...] = ()
    badges: tuple[BadgeRecord, ...] = ()
    polls: tuple[PollRecord, ...] = ()
    metadata: QuarantineMetadata

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


# Record model per bundle/quarantine key, used to validate raw store rows.
RECORD_TYPES: dict[str, type[_TenantScoped]] = {
    "users": UserRecord,
    "categories": CategoryRecord,
    "content": ContentRecord,
    "replies": ReplyRecord,
    "reactions": ReactionRecord,
    "badges": BadgeRecord,
    "polls": PollRecord,
}
