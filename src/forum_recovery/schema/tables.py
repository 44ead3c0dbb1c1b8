"""The forum's entity catalog.

``FORUM_SCHEMA`` lists every tenant-scoped kind in restore order: a kind
only references kinds that appear before it.  ``ORPHAN_SCAN_KINDS`` and
``ORPHAN_DELETE_ORDER`` drive the orphan reconciler; deletion runs
children first so no foreign key is left pointing at a deleted row.
"""

from forum_recovery.schema.models import EntitySchema, ForeignKey, TableDef

TENANT_TABLE = "tenants"

# Poll children carry no tenant column; they hang off polls.
POLL_OPTIONS_TABLE = "poll_options"
POLL_VOTES_TABLE = "poll_votes"

FORUM_SCHEMA = EntitySchema(
    tables=[
        TableDef(kind="users", table="users", natural_key=["tenant_id", "email"]),
        TableDef(kind="categories", table="categories", natural_key=["tenant_id", "name"]),
        TableDef(
            kind="content",
            table="posts",
            refs=[
                ForeignKey(kind="users", field="author_id"),
                ForeignKey(kind="categories", field="category_id", required=False),
            ],
        ),
        TableDef(
            kind="replies",
            table="comments",
            refs=[
                ForeignKey(kind="content", field="post_id"),
                ForeignKey(kind="users", field="author_id"),
            ],
        ),
        TableDef(
            kind="reactions",
            table="reactions",
            refs=[
                ForeignKey(kind="users", field="user_id"),
                ForeignKey(kind="content", field="post_id", required=False),
                ForeignKey(kind="replies", field="comment_id", required=False),
            ],
        ),
        TableDef(
            kind="polls",
            table="polls",
            refs=[ForeignKey(kind="content", field="post_id")],
        ),
        TableDef(kind="badges", table="badges", natural_key=["tenant_id", "name"]),
    ]
)

# Poll options and votes follow their poll (ON DELETE CASCADE) and are
# quarantined nested inside it.
ORPHAN_SCAN_KINDS = ["content", "replies", "reactions", "polls", "categories", "badges"]

ORPHAN_DELETE_ORDER = ["reactions", "replies", "polls", "content", "categories", "badges"]
