"""add_courts_nearby_function

Revision ID: 003
Revises: 002
Create Date: 2026-09-01

Create courts_nearby(lat, lng, radius_m, limit_count): courts within the
radius ordered by great-circle distance, with their rating aggregates.
"""

from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

from hoopspotter.database.models import (
    COURTS_NEARBY_FUNCTION_SQL,
    DROP_COURTS_NEARBY_FUNCTION_SQL,
)


# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(text(COURTS_NEARBY_FUNCTION_SQL))


def downgrade() -> None:
    op.execute(text(DROP_COURTS_NEARBY_FUNCTION_SQL))
