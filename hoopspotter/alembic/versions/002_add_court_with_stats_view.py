"""add_court_with_stats_view

Revision ID: 002
Revises: 001
Create Date: 2026-09-01

Create the court_with_stats view: every court column plus review_count and
average_rating (rounded to one decimal). Listings and the ranking read it.
"""

from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

from hoopspotter.database.models import (
    COURT_WITH_STATS_VIEW_SQL,
    DROP_COURT_WITH_STATS_VIEW_SQL,
)


# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(text(COURT_WITH_STATS_VIEW_SQL))


def downgrade() -> None:
    op.execute(text(DROP_COURT_WITH_STATS_VIEW_SQL))
