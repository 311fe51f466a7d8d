"""course materials

Revision ID: 8d2b41c07e55
Revises: 3f1c9e2a7b10
Create Date: 2026-10-18 15:40:02.771930

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8d2b41c07e55'
down_revision: Union[str, Sequence[str], None] = '3f1c9e2a7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "course_materials",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("file_url", sa.String(512), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_course_materials_id", "course_materials", ["id"])
    op.create_index("ix_course_materials_course_id", "course_materials", ["course_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_course_materials_course_id", table_name="course_materials")
    op.drop_index("ix_course_materials_id", table_name="course_materials")
    op.drop_table("course_materials")
