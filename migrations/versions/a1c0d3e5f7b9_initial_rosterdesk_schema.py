"""Initial RosterDesk schema

Revision ID: a1c0d3e5f7b9
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c0d3e5f7b9'
down_revision = None
branch_labels = None
depends_on = None


shift_type = sa.Enum('NORMAL', 'EARLY', 'LATE', 'WEEKEND', name='shifttype')
activity_type = sa.Enum(
    'WORK', 'VACATION', 'SICK', 'TRAINING', 'HOTLINE_SUPPORT', 'OUT_OF_OFFICE',
    'WORKING_FROM_HOME', 'FLEXTIME', 'OTHER', name='activitytype'
)
availability_status = sa.Enum('AVAILABLE', 'UNAVAILABLE', name='availabilitystatus')
access_level = sa.Enum('ADMIN', 'MANAGER', 'PLANNER', 'TEAMMEMBER', name='accesslevel')
swap_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED', name='swapstatus')
plan_state = sa.Enum('DRAFT_GENERATED', 'REVIEWED', 'FINALIZED', 'DISCARDED', name='planstate')
tie_break = sa.Enum('SEQUENTIAL', 'RANDOM', name='tiebreak')
draft_status = sa.Enum('DRAFT', 'FINALIZED', name='draftstatus')


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('access_level', access_level, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('country_code', sa.String(length=2), nullable=True),
        sa.Column('region_code', sa.String(length=10), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table('teams',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('team_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('is_manager', sa.Boolean(), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_id', 'user_id', name='uq_team_member')
    )

    op.create_table('team_capacity_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('min_staff_required', sa.Integer(), nullable=False),
        sa.Column('applies_to_weekends', sa.Boolean(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('min_staff_required >= 0', name='ck_capacity_min_staff'),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_id')
    )

    op.create_table('team_planning_partners',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('team_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('partnership_shift_requirements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('partnership_id', sa.Integer(), nullable=False),
        sa.Column('shift_type', shift_type, nullable=False),
        sa.Column('staff_required', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['partnership_id'], ['team_planning_partners.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('partnership_id', 'shift_type', name='uq_partnership_shift')
    )

    op.create_table('schedule_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('shift_type', shift_type, nullable=False),
        sa.Column('activity_type', activity_type, nullable=False),
        sa.Column('availability_status', availability_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('time_blocks', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_schedule_entries_team_date', 'schedule_entries', ['team_id', 'date'], unique=False)
    op.create_index('ix_schedule_entries_user_date', 'schedule_entries', ['user_id', 'date'], unique=False)

    op.create_table('shift_swap_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('requesting_user_id', sa.Integer(), nullable=False),
        sa.Column('requesting_entry_id', sa.Integer(), nullable=False),
        sa.Column('target_user_id', sa.Integer(), nullable=True),
        sa.Column('target_entry_id', sa.Integer(), nullable=True),
        sa.Column('swap_date', sa.Date(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('status', swap_status, nullable=False),
        sa.Column('is_open_offer', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            'target_user_id IS NULL OR target_user_id != requesting_user_id',
            name='ck_swap_different_users'
        ),
        sa.ForeignKeyConstraint(['requesting_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requesting_entry_id'], ['schedule_entries.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['target_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['target_entry_id'], ['schedule_entries.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_swap_requests_date_status', 'shift_swap_requests', ['swap_date', 'status'], unique=False)

    op.create_table('rotation_team_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('min_staff_required', sa.Integer(), nullable=False),
        sa.Column('weekday_start_time', sa.Time(), nullable=False),
        sa.Column('weekday_end_time', sa.Time(), nullable=False),
        sa.Column('friday_start_time', sa.Time(), nullable=False),
        sa.Column('friday_end_time', sa.Time(), nullable=False),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_id')
    )

    op.create_table('rotation_eligible_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_id', 'user_id', name='uq_rotation_eligible_member')
    )

    op.create_table('rotation_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_ids', sa.JSON(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('state', plan_state, nullable=False),
        sa.Column('tie_break', tie_break, nullable=False),
        sa.Column('seed', sa.Integer(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_by_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('finalized_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('rotation_draft_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('is_substitute', sa.Boolean(), nullable=False),
        sa.Column('original_user_id', sa.Integer(), nullable=True),
        sa.Column('status', draft_status, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            'NOT is_substitute OR original_user_id IS NOT NULL',
            name='ck_rotation_draft_substitute'
        ),
        sa.ForeignKeyConstraint(['plan_id'], ['rotation_plans.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['original_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plan_id', 'team_id', 'date', 'user_id', name='uq_rotation_draft_slot')
    )

    op.create_table('holidays',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('country_code', sa.String(length=2), nullable=True),
        sa.Column('region_code', sa.String(length=10), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_holidays_date'), 'holidays', ['date'], unique=False)

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=True),
        sa.Column('category', sa.String(length=50), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('link', sa.String(length=500), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_notifications_user_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index(op.f('ix_holidays_date'), table_name='holidays')
    op.drop_table('holidays')
    op.drop_table('rotation_draft_assignments')
    op.drop_table('rotation_plans')
    op.drop_table('rotation_eligible_members')
    op.drop_table('rotation_team_config')
    op.drop_index('ix_swap_requests_date_status', table_name='shift_swap_requests')
    op.drop_table('shift_swap_requests')
    op.drop_index('ix_schedule_entries_user_date', table_name='schedule_entries')
    op.drop_index('ix_schedule_entries_team_date', table_name='schedule_entries')
    op.drop_table('schedule_entries')
    op.drop_table('partnership_shift_requirements')
    op.drop_table('team_planning_partners')
    op.drop_table('team_capacity_config')
    op.drop_table('team_members')
    op.drop_table('teams')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
    for enum_type in (draft_status, tie_break, plan_state, swap_status, access_level,
                      availability_status, activity_type, shift_type):
        enum_type.drop(op.get_bind(), checkfirst=True)
