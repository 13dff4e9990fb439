"""Index the lookups behind the contracts report batch queries.

The report resolves signed dates with ``WHERE newlead_id IN (...) AND stage = 60``
(and the ``lead_id`` twin for legacy leads), then checks sub-lead existence with
``WHERE master_id IN (...)``. Without these indexes both queries scan the whole
history table once per search.
"""

from __future__ import annotations

import logging

from alembic import op

revision = "5c2a9e7b1f04"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)

INDEXES = (
    ("ix_leads_leadstage_newlead_stage", "leads_leadstage", ["newlead_id", "stage"]),
    ("ix_leads_leadstage_lead_stage", "leads_leadstage", ["lead_id", "stage"]),
    ("ix_leads_master_id", "leads", ["master_id"]),
    ("ix_leads_lead_master_id", "leads_lead", ["master_id"]),
)


def upgrade() -> None:
    for name, table, columns in INDEXES:
        op.create_index(name, table, columns, unique=False, if_not_exists=True)
    logger.info("contracts.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    for name, table, _ in reversed(INDEXES):
        op.drop_index(name, table_name=table, if_exists=True)
