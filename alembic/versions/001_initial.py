"""Portal trust core schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Businesses table (owned by the workspace application)
    op.create_table(
        'businesses',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )

    # Clients table (owned by the workspace application)
    op.create_table(
        'clients',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_clients_business_id', 'clients', ['business_id'])

    # Invoices and estimates
    op.create_table(
        'invoices',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=True),
        sa.Column('document_type', sa.String(20), nullable=False, server_default='invoice'),
        sa.Column('number', sa.String(50), nullable=False, server_default=''),
        sa.Column('estimate_status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('estimate_accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_invoices_business_id', 'invoices', ['business_id'])
    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])

    # Contracts
    op.create_table(
        'contracts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=True),
        sa.Column('invoice_id', sa.UUID(), nullable=True),
        sa.Column('estimate_id', sa.UUID(), nullable=True),
        sa.Column('title', sa.String(255), nullable=False, server_default=''),
        sa.Column('rendered_body', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('signed_by_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['estimate_id'], ['invoices.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_contracts_business_id', 'contracts', ['business_id'])
    op.create_index('ix_contracts_client_id', 'contracts', ['client_id'])
    op.create_index('ix_contracts_estimate_id', 'contracts', ['estimate_id'])
    op.create_index('ix_contracts_status', 'contracts', ['status'])

    # Contract signatures (append-only)
    op.create_table(
        'contract_signatures',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('contract_id', sa.UUID(), nullable=False),
        sa.Column('session_id', sa.UUID(), nullable=True),
        sa.Column('signer_role', sa.String(20), nullable=False),
        sa.Column('signer_name', sa.String(255), nullable=False),
        sa.Column('signature_type', sa.String(20), nullable=False),
        sa.Column('signature_image', sa.LargeBinary(), nullable=True),
        sa.Column('signature_text', sa.String(255), nullable=True),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('consent_version', sa.String(50), nullable=False),
        sa.Column('contract_body_hash', sa.String(64), nullable=False),
        sa.Column('device_label', sa.String(100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_contract_signatures_business_id', 'contract_signatures', ['business_id'])
    op.create_index('ix_contract_signatures_client_id', 'contract_signatures', ['client_id'])
    op.create_index('ix_contract_signatures_contract_id', 'contract_signatures', ['contract_id'])
    # One client signature per contract
    op.create_index(
        'uq_contract_signatures_client',
        'contract_signatures',
        ['contract_id'],
        unique=True,
        postgresql_where=sa.text("signer_role = 'client'"),
    )

    # Portal identities (client_id deliberately not unique)
    op.create_table(
        'portal_identities',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_invite_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('external_auth_subject', sa.String(255), nullable=True),
        sa.Column('public_handle', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('public_handle'),
    )
    op.create_index('ix_portal_identities_business_id', 'portal_identities', ['business_id'])
    op.create_index('ix_portal_identities_client_id', 'portal_identities', ['client_id'])

    # Portal invites (only the code digest is stored)
    op.create_table(
        'portal_invites',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('portal_identity_id', sa.UUID(), nullable=False),
        sa.Column('code_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('delivery_method', sa.String(20), nullable=False, server_default='none'),
        sa.Column('send_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_session_id', sa.UUID(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['portal_identity_id'], ['portal_identities.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_portal_invites_business_id', 'portal_invites', ['business_id'])
    op.create_index('ix_portal_invites_client_id', 'portal_invites', ['client_id'])
    op.create_index('ix_portal_invites_code_hash', 'portal_invites', ['code_hash'])
    op.create_index('ix_portal_invites_state', 'portal_invites', ['state'])

    # Portal sessions (only the token digest is stored)
    op.create_table(
        'portal_sessions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('portal_identity_id', sa.UUID(), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('state', sa.String(20), nullable=False, server_default='active'),
        sa.Column('device_label', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['portal_identity_id'], ['portal_identities.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_portal_sessions_business_id', 'portal_sessions', ['business_id'])
    op.create_index('ix_portal_sessions_client_id', 'portal_sessions', ['client_id'])
    op.create_index('ix_portal_sessions_token_hash', 'portal_sessions', ['token_hash'])
    op.create_index('ix_portal_sessions_state', 'portal_sessions', ['state'])

    # Portal audit events (append-only, no foreign keys)
    op.create_table(
        'portal_audit_events',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('session_id', sa.UUID(), nullable=True),
        sa.Column('origin', sa.String(20), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=True),
        sa.Column('entity_id', sa.UUID(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_portal_audit_events_business_id', 'portal_audit_events', ['business_id'])
    op.create_index('ix_portal_audit_events_client_id', 'portal_audit_events', ['client_id'])
    op.create_index('ix_portal_audit_events_event_type', 'portal_audit_events', ['event_type'])
    op.create_index(
        'ix_portal_audit_events_client_created',
        'portal_audit_events',
        ['client_id', 'created_at'],
    )


def downgrade() -> None:
    op.drop_table('portal_audit_events')
    op.drop_table('portal_sessions')
    op.drop_table('portal_invites')
    op.drop_table('portal_identities')
    op.drop_table('contract_signatures')
    op.drop_table('contracts')
    op.drop_table('invoices')
    op.drop_table('clients')
    op.drop_table('businesses')
