"""Initial schema - users, agents, chat history and the knowledge index

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import pgvector.sqlalchemy

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, server_default=''),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('plan', sa.String(50), nullable=True, server_default='Free'),
        sa.Column('subscription_cycle', sa.String(20), nullable=True, server_default='Mensal'),
        sa.Column('used_tokens_current_month', sa.BigInteger, nullable=False, server_default='0'),
        sa.Column('last_reset_date', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
        sa.Column('last_login', sa.DateTime, nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    # Agents table
    op.create_table(
        'agents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('specialty', sa.String(255), nullable=False, server_default=''),
        sa.Column('system_instruction', sa.Text, nullable=False),
        sa.Column('creator_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_agents_name', 'agents', ['name'])
    op.create_index('ix_agents_creator_id', 'agents', ['creator_id'])
    op.create_index('ix_agents_creator_name', 'agents', ['creator_id', 'name'])

    # Chat messages (agent_id holds the agent name)
    op.create_table(
        'chat_messages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('agent_id', sa.String(255), nullable=False),
        sa.Column('sender', sa.String(20), nullable=False),
        sa.Column('text', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_chat_messages_user_id', 'chat_messages', ['user_id'])
    op.create_index('ix_chat_messages_agent_id', 'chat_messages', ['agent_id'])
    op.create_index('ix_chat_messages_created_at', 'chat_messages', ['created_at'])
    op.create_index('ix_chat_messages_user_agent', 'chat_messages', ['user_id', 'agent_id', 'created_at'])

    # Knowledge manifest
    op.create_table(
        'knowledge_documents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('agent_name', sa.String(255), nullable=False),
        sa.Column('chunk_count', sa.Integer, server_default='0'),
        sa.Column('uploaded_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_knowledge_documents_agent_name', 'knowledge_documents', ['agent_name'])

    # Knowledge index
    op.create_table(
        'knowledge_chunks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('knowledge_documents.id'), nullable=True),
        sa.Column('domain', sa.String(255), nullable=False),
        sa.Column('chunk_index', sa.Integer, server_default='0'),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('embedding_json', sa.Text, nullable=True),
        sa.Column('embedding', pgvector.sqlalchemy.Vector(1536), nullable=True),
        sa.Column('metadata_json', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_knowledge_chunks_document_id', 'knowledge_chunks', ['document_id'])
    op.create_index('ix_knowledge_chunks_domain', 'knowledge_chunks', ['domain'])
    op.create_index('ix_knowledge_chunks_doc_index', 'knowledge_chunks', ['document_id', 'chunk_index'])

    if bind.dialect.name == 'postgresql':
        op.execute(
            'CREATE INDEX ix_knowledge_chunks_embedding_hnsw ON knowledge_chunks '
            'USING hnsw (embedding vector_cosine_ops)'
        )


def downgrade() -> None:
    op.drop_table('knowledge_chunks')
    op.drop_table('knowledge_documents')
    op.drop_table('chat_messages')
    op.drop_table('agents')
    op.drop_table('users')
