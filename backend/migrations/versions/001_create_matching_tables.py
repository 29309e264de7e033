"""Create matching engine tables

Revision ID: 001
Revises:
Create Date: 2026-02-20 10:00:00.000000

listed_item, demand_request, barter_offer and category mirror the rows owned
by the listing, demand and catalog services; the engine writes only
match_record, barter_chain, barter_participant and notification_log.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _geo_columns():
    return [
        sa.Column('country', sa.String(2), nullable=False, server_default='EG'),
        sa.Column('governorate', sa.Text(), nullable=False),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('district', sa.Text(), nullable=True),
    ]


def upgrade():
    op.create_table(
        'category',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('parent_id', sa.String(64), nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['parent_id'], ['category.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_category_parent_id', 'category', ['parent_id'])

    op.create_table(
        'listed_item',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('owner_id', sa.String(36), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.String(64), nullable=False),
        sa.Column('estimated_value', sa.Float(), nullable=True),
        sa.Column('condition', sa.Text(), nullable=True),
        *_geo_columns(),
        sa.Column('status', sa.Text(), nullable=False, server_default='ACTIVE'),

        # Barter wants
        sa.Column('desired_category_id', sa.String(64), nullable=True),
        sa.Column('desired_description', sa.Text(), nullable=True),

        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['category_id'], ['category.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['desired_category_id'], ['category.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_listed_item_category_status', 'listed_item', ['category_id', 'status'])
    op.create_index('ix_listed_item_owner_id', 'listed_item', ['owner_id'])
    op.create_index('ix_listed_item_geo', 'listed_item', ['country', 'governorate', 'city', 'district'])

    op.create_table(
        'demand_request',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('requester_id', sa.String(36), nullable=False),
        sa.Column('title', sa.Text(), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.String(64), nullable=False),
        sa.Column('kind', sa.Text(), nullable=False, server_default='PURCHASE'),
        sa.Column('price_min', sa.Float(), nullable=True),
        sa.Column('price_max', sa.Float(), nullable=True),
        sa.Column('target_price', sa.Float(), nullable=True),
        sa.Column('condition', sa.Text(), nullable=True),
        sa.Column('keywords', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_geo_columns(),
        sa.Column('status', sa.Text(), nullable=False, server_default='OPEN'),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['category_id'], ['category.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_demand_request_category_status', 'demand_request', ['category_id', 'status'])
    op.create_index('ix_demand_request_requester_id', 'demand_request', ['requester_id'])

    op.create_table(
        'barter_offer',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('initiator_id', sa.String(36), nullable=False),
        sa.Column('offered_item_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('desired_category_id', sa.String(64), nullable=True),
        sa.Column('desired_description', sa.Text(), nullable=True),
        sa.Column('is_open_offer', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_geo_columns(),
        sa.Column('status', sa.Text(), nullable=False, server_default='PENDING'),
        sa.Column('expires_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['desired_category_id'], ['category.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_barter_offer_status_expires', 'barter_offer', ['status', 'expires_at'])
    op.create_index('ix_barter_offer_initiator_id', 'barter_offer', ['initiator_id'])

    op.create_table(
        'match_record',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('signature', sa.Text(), nullable=False),
        sa.Column('match_type', sa.Text(), nullable=False),
        sa.Column('source_id', sa.String(36), nullable=False),
        sa.Column('source_owner_id', sa.String(36), nullable=False),
        sa.Column('target_id', sa.String(36), nullable=False),
        sa.Column('target_owner_id', sa.String(36), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('tier', sa.Text(), nullable=False),
        sa.Column('reasons', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('signature', name='uq_match_record_signature'),
    )
    op.create_index('ix_match_record_source_id', 'match_record', ['source_id'])
    op.create_index('ix_match_record_target_id', 'match_record', ['target_id'])
    op.create_index('ix_match_record_source_owner', 'match_record', ['source_owner_id'])
    op.create_index('ix_match_record_target_owner', 'match_record', ['target_owner_id'])

    op.create_table(
        'barter_chain',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('signature', sa.Text(), nullable=False),
        sa.Column('chain_type', sa.Text(), nullable=False),
        sa.Column('match_score', sa.Float(), nullable=False),
        sa.Column('algorithm_version', sa.Text(), nullable=False),
        sa.Column('cash_differential', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_optimal', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.Text(), nullable=False, server_default='PENDING'),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('signature', name='uq_barter_chain_signature'),
    )
    op.create_index('ix_barter_chain_status_expires', 'barter_chain', ['status', 'expires_at'])

    op.create_table(
        'barter_participant',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('chain_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('giving_item_id', sa.String(36), nullable=False),
        sa.Column('receiving_item_id', sa.String(36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='PENDING'),
        sa.Column('responded_at', sa.TIMESTAMP(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['chain_id'], ['barter_chain.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('chain_id', 'position', name='uq_barter_participant_position'),
    )
    op.create_index('ix_barter_participant_user_id', 'barter_participant', ['user_id'])
    op.create_index('ix_barter_participant_giving_item_id', 'barter_participant', ['giving_item_id'])

    op.create_table(
        'notification_log',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('notification_type', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'entity_id', name='uq_notification_log_user_entity'),
    )


def downgrade():
    op.drop_table('notification_log')
    op.drop_index('ix_barter_participant_giving_item_id', table_name='barter_participant')
    op.drop_index('ix_barter_participant_user_id', table_name='barter_participant')
    op.drop_table('barter_participant')
    op.drop_index('ix_barter_chain_status_expires', table_name='barter_chain')
    op.drop_table('barter_chain')
    op.drop_index('ix_match_record_target_owner', table_name='match_record')
    op.drop_index('ix_match_record_source_owner', table_name='match_record')
    op.drop_index('ix_match_record_target_id', table_name='match_record')
    op.drop_index('ix_match_record_source_id', table_name='match_record')
    op.drop_table('match_record')
    op.drop_index('ix_barter_offer_initiator_id', table_name='barter_offer')
    op.drop_index('ix_barter_offer_status_expires', table_name='barter_offer')
    op.drop_table('barter_offer')
    op.drop_index('ix_demand_request_requester_id', table_name='demand_request')
    op.drop_index('ix_demand_request_category_status', table_name='demand_request')
    op.drop_table('demand_request')
    op.drop_index('ix_listed_item_geo', table_name='listed_item')
    op.drop_index('ix_listed_item_owner_id', table_name='listed_item')
    op.drop_index('ix_listed_item_category_status', table_name='listed_item')
    op.drop_table('listed_item')
    op.drop_index('ix_category_parent_id', table_name='category')
    op.drop_table('category')
