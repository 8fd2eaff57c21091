"""Create loyalty schema: profiles, bookings, members, tiers, rules, rewards, history

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create every table the loyalty engine reads or writes."""
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('role', sa.String(30), nullable=False, server_default='customer'),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('preferences', sa.JSON(), nullable=True),
        sa.Column('notification_settings', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_profiles')
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('address', sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_branches')
    )

    op.create_table(
        'treatments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('category', sa.String(80), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_treatments')
    )

    op.create_table(
        'therapists',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.String(64), nullable=True),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id'], name='fk_therapists_profile_id_profiles'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_therapists_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_therapists')
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('treatment_id', sa.Integer(), nullable=True),
        sa.Column('therapist_id', sa.Integer(), nullable=True),
        sa.Column('actual_therapist_id', sa.Integer(), nullable=True),
        sa.Column('booking_date', sa.DateTime(), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_bookings_user_id_profiles'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_bookings_branch_id_branches'),
        sa.ForeignKeyConstraint(['treatment_id'], ['treatments.id'], name='fk_bookings_treatment_id_treatments'),
        sa.ForeignKeyConstraint(['therapist_id'], ['therapists.id'], name='fk_bookings_therapist_id_therapists'),
        sa.ForeignKeyConstraint(['actual_therapist_id'], ['therapists.id'],
                                name='fk_bookings_actual_therapist_id_therapists'),
        sa.PrimaryKeyConstraint('id', name='pk_bookings')
    )
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_branch_id', 'bookings', ['branch_id'])
    op.create_index('ix_bookings_booking_date', 'bookings', ['booking_date'])

    op.create_table(
        'member_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stamps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tier', sa.String(50), nullable=False, server_default='Grace'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_member_points_user_id_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_member_points'),
        sa.UniqueConstraint('user_id', name='uq_member_points_user_id'),
        sa.CheckConstraint('total_points >= 0', name='ck_member_points_total_points_non_negative')
    )

    op.create_table(
        'member_tiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_points', sa.Integer(), nullable=True),
        sa.Column('multiplier', sa.Numeric(4, 2), nullable=True),
        sa.Column('expiry', sa.Integer(), nullable=True),
        sa.Column('upgrade_requirement', sa.Numeric(14, 2), nullable=True),
        sa.Column('maintain_requirement', sa.Numeric(14, 2), nullable=True),
        sa.Column('auto_reward', sa.String(200), nullable=True),
        sa.Column('cashback', sa.Numeric(5, 2), nullable=True),
        sa.Column('stamp_program', sa.Boolean(), nullable=True),
        sa.Column('double_stamp_weekday', sa.Boolean(), nullable=True),
        sa.Column('double_stamp_event', sa.Boolean(), nullable=True),
        sa.Column('priority_booking', sa.Boolean(), nullable=True),
        sa.Column('free_rewards', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('customer_profile', sa.Text(), nullable=True),
        sa.Column('color', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_member_tiers'),
        sa.UniqueConstraint('name', name='uq_member_tiers_name')
    )

    op.create_table(
        'point_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(120), nullable=True),
        sa.Column('spend_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('point_earned', sa.Integer(), nullable=False),
        sa.Column('expiry', sa.Integer(), nullable=False, server_default='12'),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
        sa.Column('welcome_point', sa.Integer(), nullable=True),
        sa.Column('rule_type', sa.String(20), nullable=False, server_default='general'),
        sa.Column('category', sa.String(80), nullable=True),
        sa.Column('days', sa.JSON(), nullable=True),
        sa.Column('treatments', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_point_rules')
    )

    op.create_table(
        'rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('method', sa.String(10), nullable=False, server_default='Point'),
        sa.Column('required', sa.Integer(), nullable=False),
        sa.Column('claim_type', sa.String(50), nullable=True),
        sa.Column('auto_reward', sa.Boolean(), nullable=True),
        sa.Column('min_point', sa.Integer(), nullable=True),
        sa.Column('expiry', sa.Date(), nullable=True),
        sa.Column('category', sa.String(80), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('quota', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_rewards'),
        sa.CheckConstraint('quota IS NULL OR usage_count <= quota', name='ck_rewards_usage_within_quota')
    )

    op.create_table(
        'reward_redemptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('points_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('method', sa.String(10), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_reward_redemptions_user_id_profiles'),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id'], name='fk_reward_redemptions_reward_id_rewards'),
        sa.PrimaryKeyConstraint('id', name='pk_reward_redemptions')
    )
    op.create_index('ix_reward_redemptions_user_id', 'reward_redemptions', ['user_id'])

    op.create_table(
        'points_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_points_history_user_id_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_points_history')
    )
    op.create_index('ix_points_history_user_id', 'points_history', ['user_id'])
    op.create_index('ix_points_history_reference_id', 'points_history', ['reference_id'])
    op.create_index('ix_points_history_created_at', 'points_history', ['created_at'])

    op.create_table(
        'recorded_bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], name='fk_recorded_bookings_booking_id_bookings'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_recorded_bookings_user_id_profiles'),
        sa.PrimaryKeyConstraint('id', name='pk_recorded_bookings'),
        sa.UniqueConstraint('booking_id', name='uq_recorded_bookings_booking_id')
    )


def downgrade():
    """Drop the loyalty schema."""
    op.drop_table('recorded_bookings')
    op.drop_index('ix_points_history_created_at', table_name='points_history')
    op.drop_index('ix_points_history_reference_id', table_name='points_history')
    op.drop_index('ix_points_history_user_id', table_name='points_history')
    op.drop_table('points_history')
    op.drop_index('ix_reward_redemptions_user_id', table_name='reward_redemptions')
    op.drop_table('reward_redemptions')
    op.drop_table('rewards')
    op.drop_table('point_rules')
    op.drop_table('member_tiers')
    op.drop_table('member_points')
    op.drop_index('ix_bookings_booking_date', table_name='bookings')
    op.drop_index('ix_bookings_branch_id', table_name='bookings')
    op.drop_index('ix_bookings_user_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('therapists')
    op.drop_table('treatments')
    op.drop_table('branches')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_table('profiles')
