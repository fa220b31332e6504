"""add upload/grade revision counters to submissions

Revision ID: 9b7e4c51d2a8
Revises: 3f1c2a9d7b10
Create Date: 2026-10-19 14:03:57.902114

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9b7e4c51d2a8'
down_revision: Union[str, Sequence[str], None] = '3f1c2a9d7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    existing_cols = {c["name"] for c in sa.inspect(op.get_bind()).get_columns("submissions")}

    with op.batch_alter_table("submissions") as batch_op:
        if "upload_revision" not in existing_cols:
            batch_op.add_column(sa.Column("upload_revision", sa.Integer(), nullable=False, server_default="1"))
        if "grade_revision" not in existing_cols:
            batch_op.add_column(sa.Column("grade_revision", sa.Integer(), nullable=False, server_default="0"))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table("submissions") as batch_op:
        batch_op.drop_column("grade_revision")
        batch_op.drop_column("upload_revision")
