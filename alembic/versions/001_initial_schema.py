"""Create documents, templates and filing_rules tables

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DOCUMENT_TYPES = (
    'TRADE_CONFIRMATION', 'STATEMENT', 'PROSPECTUS', 'OFFERING_MEMORANDUM',
    'TERM_SHEET', 'ANNUAL_REPORT', 'QUARTERLY_REPORT', 'TAX_DOCUMENT',
    'COMPLIANCE_CERTIFICATE', 'CONTRACT', 'AMENDMENT', 'LEGAL_OPINION',
    'AUDIT_REPORT', 'REGULATORY_FILING', 'CLIENT_COMMUNICATION',
    'INVESTMENT_COMMITTEE_MINUTES', 'DUE_DILIGENCE_REPORT', 'PERFORMANCE_REPORT',
    'RISK_REPORT', 'SUBSCRIPTION_AGREEMENT', 'REDEMPTION_NOTICE',
    'TRANSFER_AGREEMENT', 'KYC_DOCUMENT', 'AML_DOCUMENT', 'OTHER',
)
CLASSIFICATIONS = ('PUBLIC', 'INTERNAL', 'CONFIDENTIAL', 'HIGHLY_CONFIDENTIAL')
STATUSES = ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED')


def upgrade() -> None:
    """Create the document and reference data tables."""
    op.create_table(
        'documents',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(500), nullable=True),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('document_type', sa.Enum(*DOCUMENT_TYPES, name='documenttype'), nullable=True),
        sa.Column(
            'classification',
            sa.Enum(*CLASSIFICATIONS, name='documentclassification'),
            nullable=False,
            server_default='INTERNAL',
        ),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('language', sa.String(10), nullable=False, server_default='en'),
        sa.Column('client_id', sa.String(64), nullable=True),
        sa.Column('portfolio_id', sa.String(64), nullable=True),
        sa.Column('filing_path', sa.String(1000), nullable=True),
        sa.Column(
            'status',
            sa.Enum(*STATUSES, name='documentstatus'),
            nullable=False,
            server_default='PENDING',
        ),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_documents_id', 'documents', ['id'])
    op.create_index('ix_documents_tenant_id', 'documents', ['tenant_id'])

    op.create_table(
        'templates',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('document_type', sa.String(50), nullable=False),
        sa.Column('language', sa.String(10), nullable=False, server_default='en'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('definition', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_templates_document_type', 'templates', ['document_type'])
    op.create_index('ix_templates_language', 'templates', ['language'])

    op.create_table(
        'filing_rules',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('definition', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    """Drop the document and reference data tables."""
    op.drop_table('filing_rules')
    op.drop_index('ix_templates_language', table_name='templates')
    op.drop_index('ix_templates_document_type', table_name='templates')
    op.drop_table('templates')
    op.drop_index('ix_documents_tenant_id', table_name='documents')
    op.drop_index('ix_documents_id', table_name='documents')
    op.drop_table('documents')
    sa.Enum(name='documentstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='documentclassification').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='documenttype').drop(op.get_bind(), checkfirst=True)
