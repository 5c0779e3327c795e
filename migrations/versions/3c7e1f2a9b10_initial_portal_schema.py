"""initial portal schema

Revision ID: 3c7e1f2a9b10
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7e1f2a9b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slug', sa.String(length=160), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=False),
        sa.Column('department', sa.String(length=128), nullable=True),
        sa.Column('intake', sa.String(length=64), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('contact_email', sa.String(length=128), nullable=True),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('gallery_images', sa.JSON(), nullable=True),
        sa.Column('achievements', sa.JSON(), nullable=True),
        sa.Column('courses', sa.JSON(), nullable=True),
        sa.Column('cgpa', sa.JSON(), nullable=True),
        sa.Column('social_links', sa.JSON(), nullable=True),
        sa.Column('views', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('slug', name='uq_students_slug'),
    )
    op.create_index('ix_students_slug', 'students', ['slug'])
    op.create_index('ix_students_department', 'students', ['department'])

    op.create_table(
        'submissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('student_name', sa.String(length=128), nullable=False),
        sa.Column('department', sa.String(length=128), nullable=True),
        sa.Column('content', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_submissions_status', 'submissions', ['status'])

    op.create_table(
        'notices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=True),
        sa.Column('is_pinned', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('attachment_url', sa.String(length=512), nullable=True),
    )

    op.create_table(
        'resources',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=True),
        sa.Column('department', sa.String(length=128), nullable=True),
        sa.Column('intake', sa.String(length=64), nullable=True),
        sa.Column('subject', sa.String(length=128), nullable=True),
        sa.Column('author_name', sa.String(length=128), nullable=True),
        sa.Column('download_url', sa.String(length=512), nullable=False),
        sa.Column('upload_date', sa.DateTime(), nullable=True),
        sa.Column('downloads', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('version', sa.Integer(), nullable=False, server_default=sa.text('1')),
    )
    op.create_index('ix_resources_department', 'resources', ['department'])

    op.create_table(
        'campus_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('url', sa.String(length=512), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'campus_memories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_campus_memories_year', 'campus_memories', ['year'])

    op.create_table(
        'site_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('logo_url', sa.String(length=512), nullable=True),
        sa.Column('contact_address', sa.Text(), nullable=True),
        sa.Column('contact_email', sa.String(length=128), nullable=True),
        sa.Column('contact_phone', sa.String(length=32), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'team_members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('title', sa.String(length=128), nullable=True),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='moderator'),
        sa.Column('linked_student_slug', sa.String(length=160), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('username', name='uq_team_members_username'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('action', sa.String(length=128), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=False),
        sa.Column('target', sa.String(length=255), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_audit_logs_actor', 'audit_logs', ['actor'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('team_members')
    op.drop_table('site_config')
    op.drop_table('campus_memories')
    op.drop_table('campus_images')
    op.drop_table('resources')
    op.drop_table('notices')
    op.drop_table('submissions')
    op.drop_table('students')
