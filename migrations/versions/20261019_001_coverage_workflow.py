"""coverage workflow: catalogs, coverages, workflow history, attachments

Revision ID: 20261019_001
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_001'
down_revision = None
branch_labels = None
depends_on = None


def _catalog_columns(label_name: str, label_length: int, unique: bool = True):
    return [
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(label_name, sa.String(length=label_length), nullable=False, unique=unique),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='supervisor'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('postos', *_catalog_columns('name', 255))
    op.create_table('motivos', *_catalog_columns('description', 255))
    op.create_table('cargas_horarias', *_catalog_columns('description', 50))
    op.create_table('meios_pagamento', *_catalog_columns('description', 100))

    op.create_table(
        'diaristas',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('cpf', sa.String(length=14), nullable=True, unique=True),
        sa.Column('pix_key', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
    )
    op.create_table(
        'reservas',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('cpf', sa.String(length=14), nullable=True, unique=True),
        sa.Column('is_reserve_pool', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
    )
    op.create_table(
        'empresas',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('cnpj', sa.String(length=18), nullable=True, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
    )

    op.create_table(
        'coverages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('posto_id', sa.Integer(), sa.ForeignKey('postos.id'), nullable=False),
        sa.Column('diarista_id', sa.Integer(), sa.ForeignKey('diaristas.id'), nullable=False),
        sa.Column('reserva_id', sa.Integer(), sa.ForeignKey('reservas.id'), nullable=True),
        sa.Column('motivo_id', sa.Integer(), sa.ForeignKey('motivos.id'), nullable=False),
        sa.Column('carga_horaria_id', sa.Integer(), sa.ForeignKey('cargas_horarias.id'), nullable=False),
        sa.Column('meio_pagamento_solicitado_id', sa.Integer(), sa.ForeignKey('meios_pagamento.id'), nullable=False),
        sa.Column('empresa_id', sa.Integer(), sa.ForeignKey('empresas.id'), nullable=True),
        sa.Column('value', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('observation', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('approver_n1_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('approved_at_n1', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_note_n1', sa.Text(), nullable=True),
        sa.Column('approver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('adjustment_request', sa.Text(), nullable=True),
        sa.Column('payer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_method_effective_id', sa.Integer(), sa.ForeignKey('meios_pagamento.id'), nullable=True),
        sa.Column('payment_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
    )
    op.create_index('ix_coverages_date', 'coverages', ['date'])
    op.create_index('ix_coverages_status', 'coverages', ['status'])
    op.create_index('ix_coverages_created_by', 'coverages', ['created_by'])
    op.create_index('ix_coverages_posto_id', 'coverages', ['posto_id'])
    op.create_index('ix_coverages_diarista_date', 'coverages', ['diarista_id', 'date'])
    op.create_index('ix_coverages_reserva_date', 'coverages', ['reserva_id', 'date'])

    op.create_table(
        'workflow_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('coverage_id', sa.Integer(), sa.ForeignKey('coverages.id', ondelete='CASCADE'), nullable=False),
        sa.Column('actor_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('actor_role', sa.String(length=32), nullable=True),
        sa.Column('from_status', sa.String(length=32), nullable=True),
        sa.Column('to_status', sa.String(length=32), nullable=False),
        sa.Column('operation', sa.String(length=32), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_workflow_history_actor_id', 'workflow_history', ['actor_id'])
    op.create_index('ix_workflow_history_coverage_created', 'workflow_history', ['coverage_id', 'created_at'])

    op.create_table(
        'attachments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('coverage_id', sa.Integer(), sa.ForeignKey('coverages.id', ondelete='SET NULL'), nullable=True),
        sa.Column('uploaded_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('url', sa.String(length=1024), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=False),
        sa.Column('size', sa.Integer(), nullable=True),
        sa.Column('mime_type', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_attachments_coverage_id', 'attachments', ['coverage_id'])

    # Банк резервов нужен до первого покрытия
    from sqlalchemy.sql import table, column
    from sqlalchemy import String, Boolean

    reservas_table = table(
        'reservas',
        column('name', String),
        column('is_reserve_pool', Boolean),
        column('is_active', Boolean),
    )
    op.bulk_insert(
        reservas_table,
        [{'name': 'Banco de Reservas', 'is_reserve_pool': True, 'is_active': True}],
    )


def downgrade() -> None:
    op.drop_index('ix_attachments_coverage_id', table_name='attachments')
    op.drop_table('attachments')
    op.drop_index('ix_workflow_history_coverage_created', table_name='workflow_history')
    op.drop_index('ix_workflow_history_actor_id', table_name='workflow_history')
    op.drop_table('workflow_history')
    for index_name in (
        'ix_coverages_reserva_date', 'ix_coverages_diarista_date', 'ix_coverages_posto_id',
        'ix_coverages_created_by', 'ix_coverages_status', 'ix_coverages_date',
    ):
        op.drop_index(index_name, table_name='coverages')
    op.drop_table('coverages')
    for table_name in ('empresas', 'reservas', 'diaristas', 'meios_pagamento', 'cargas_horarias', 'motivos', 'postos'):
        op.drop_table(table_name)
    op.drop_index('ix_users_role', table_name='users')
    op.drop_table('users')
