"""create prompt, settings, shipping and key tables

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f70001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('prompt_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.String(length=64), nullable=True),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'key', name='uq_prompt_templates_company_key')
    )
    op.create_index(op.f('ix_prompt_templates_id'), 'prompt_templates', ['id'], unique=False)
    op.create_index(op.f('ix_prompt_templates_company_id'), 'prompt_templates', ['company_id'], unique=False)
    op.create_index(op.f('ix_prompt_templates_key'), 'prompt_templates', ['key'], unique=False)

    op.create_table('company_ai_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.String(length=64), nullable=False),
        sa.Column('personality_prompt', sa.Text(), nullable=True),
        sa.Column('response_prompt', sa.Text(), nullable=True),
        sa.Column('response_rules', sa.JSON(), nullable=True),
        sa.Column('disable_default_templates', sa.Boolean(), nullable=False),
        sa.Column('ai_temperature', sa.Float(), nullable=True),
        sa.Column('ai_top_k', sa.Integer(), nullable=True),
        sa.Column('ai_top_p', sa.Float(), nullable=True),
        sa.Column('ai_max_tokens', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_company_ai_settings_id'), 'company_ai_settings', ['id'], unique=False)
    op.create_index(op.f('ix_company_ai_settings_company_id'), 'company_ai_settings', ['company_id'], unique=True)

    op.create_table('shipping_zones',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.String(length=64), nullable=False),
        sa.Column('governorates', sa.JSON(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('delivery_time', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_shipping_zones_id'), 'shipping_zones', ['id'], unique=False)
    op.create_index(op.f('ix_shipping_zones_company_id'), 'shipping_zones', ['company_id'], unique=False)

    op.create_table('ai_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('api_key', sa.Text(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('base_url', sa.String(length=500), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_ai_keys_id'), 'ai_keys', ['id'], unique=False)
    op.create_index(op.f('ix_ai_keys_company_id'), 'ai_keys', ['company_id'], unique=False)

    op.create_table('ai_model_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key_id', sa.Integer(), nullable=False),
        sa.Column('model_name', sa.String(length=100), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('disabled_reason', sa.String(length=255), nullable=True),
        sa.Column('total_tokens', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['key_id'], ['ai_keys.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_ai_model_configs_id'), 'ai_model_configs', ['id'], unique=False)
    op.create_index(op.f('ix_ai_model_configs_key_id'), 'ai_model_configs', ['key_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_ai_model_configs_key_id'), table_name='ai_model_configs')
    op.drop_index(op.f('ix_ai_model_configs_id'), table_name='ai_model_configs')
    op.drop_table('ai_model_configs')
    op.drop_index(op.f('ix_ai_keys_company_id'), table_name='ai_keys')
    op.drop_index(op.f('ix_ai_keys_id'), table_name='ai_keys')
    op.drop_table('ai_keys')
    op.drop_index(op.f('ix_shipping_zones_company_id'), table_name='shipping_zones')
    op.drop_index(op.f('ix_shipping_zones_id'), table_name='shipping_zones')
    op.drop_table('shipping_zones')
    op.drop_index(op.f('ix_company_ai_settings_company_id'), table_name='company_ai_settings')
    op.drop_index(op.f('ix_company_ai_settings_id'), table_name='company_ai_settings')
    op.drop_table('company_ai_settings')
    op.drop_index(op.f('ix_prompt_templates_key'), table_name='prompt_templates')
    op.drop_index(op.f('ix_prompt_templates_company_id'), table_name='prompt_templates')
    op.drop_index(op.f('ix_prompt_templates_id'), table_name='prompt_templates')
    op.drop_table('prompt_templates')
