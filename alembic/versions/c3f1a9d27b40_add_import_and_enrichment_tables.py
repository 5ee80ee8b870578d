"""add import and enrichment tables

Revision ID: c3f1a9d27b40
Revises:
Create Date: 2026-01-19 10:42:13.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'c3f1a9d27b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('import_runs',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('team_id', sa.String(), nullable=False),
    sa.Column('source_system', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False, comment='completed | failed | deleted'),
    sa.Column('options', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('stats', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('created_by_user_id', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_import_runs_team_id'), 'import_runs', ['team_id'], unique=False)

    op.create_table('notes',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('team_id', sa.String(), nullable=False),
    sa.Column('title', sa.String(), nullable=False),
    sa.Column('content', sa.Text(), nullable=False),
    sa.Column('note_type', sa.String(), nullable=False),
    sa.Column('quest_status', sa.String(), nullable=True, comment='Only set for quest notes'),
    sa.Column('is_private', sa.Boolean(), nullable=False),
    sa.Column('linked_note_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('session_date', sa.Date(), nullable=True),
    sa.Column('source_system', sa.String(), nullable=True),
    sa.Column('source_page_id', sa.String(), nullable=True),
    sa.Column('content_markdown', sa.Text(), nullable=True),
    sa.Column('content_markdown_resolved', sa.Text(), nullable=True),
    sa.Column('import_run_id', sa.String(length=36), nullable=True),
    sa.Column('created_by_user_id', sa.String(), nullable=True),
    sa.Column('updated_by_user_id', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['import_run_id'], ['import_runs.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('team_id', 'source_system', 'source_page_id', name='uq_notes_team_source_page'),
    sa.UniqueConstraint('team_id', 'note_type', 'session_date', name='uq_notes_team_type_session_date')
    )
    op.create_index(op.f('ix_notes_team_id'), 'notes', ['team_id'], unique=False)
    op.create_index(op.f('ix_notes_import_run_id'), 'notes', ['import_run_id'], unique=False)

    op.create_table('note_import_snapshots',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('note_id', sa.String(length=36), nullable=False),
    sa.Column('import_run_id', sa.String(length=36), nullable=False),
    sa.Column('previous_title', sa.String(), nullable=False),
    sa.Column('previous_content', sa.Text(), nullable=True),
    sa.Column('previous_note_type', sa.String(), nullable=False),
    sa.Column('previous_quest_status', sa.String(), nullable=True),
    sa.Column('previous_content_markdown', sa.Text(), nullable=True),
    sa.Column('previous_content_markdown_resolved', sa.Text(), nullable=True),
    sa.Column('previous_is_private', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['import_run_id'], ['import_runs.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['note_id'], ['notes.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_note_import_snapshots_note_id'), 'note_import_snapshots', ['note_id'], unique=False)
    op.create_index(op.f('ix_note_import_snapshots_import_run_id'), 'note_import_snapshots', ['import_run_id'], unique=False)

    op.create_table('enrichment_runs',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('import_run_id', sa.String(length=36), nullable=False),
    sa.Column('team_id', sa.String(), nullable=False),
    sa.Column('created_by_user_id', sa.String(), nullable=True),
    sa.Column('status', sa.String(), nullable=False, comment='pending | running | completed | failed'),
    sa.Column('totals', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['import_run_id'], ['import_runs.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_enrichment_runs_import_run_id'), 'enrichment_runs', ['import_run_id'], unique=False)
    op.create_index(op.f('ix_enrichment_runs_team_id'), 'enrichment_runs', ['team_id'], unique=False)

    op.create_table('note_classifications',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('note_id', sa.String(length=36), nullable=False),
    sa.Column('enrichment_run_id', sa.String(length=36), nullable=False),
    sa.Column('inferred_type', sa.String(), nullable=False, comment='Character, NPC, Area, Quest, SessionLog or Note'),
    sa.Column('confidence', sa.Float(), nullable=False),
    sa.Column('explanation', sa.Text(), nullable=True),
    sa.Column('extracted_entities', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('status', sa.String(), nullable=False, comment='pending | approved | rejected'),
    sa.Column('approved_by_user_id', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['enrichment_run_id'], ['enrichment_runs.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['note_id'], ['notes.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_note_classifications_note_id'), 'note_classifications', ['note_id'], unique=False)
    op.create_index(op.f('ix_note_classifications_enrichment_run_id'), 'note_classifications', ['enrichment_run_id'], unique=False)

    op.create_table('note_relationships',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('enrichment_run_id', sa.String(length=36), nullable=False),
    sa.Column('from_note_id', sa.String(length=36), nullable=False),
    sa.Column('to_note_id', sa.String(length=36), nullable=False),
    sa.Column('relationship_type', sa.String(), nullable=False, comment='QuestHasNPC, QuestAtPlace, NPCInPlace or Related'),
    sa.Column('confidence', sa.Float(), nullable=False),
    sa.Column('evidence_snippet', sa.Text(), nullable=True),
    sa.Column('evidence_type', sa.String(), nullable=False, comment='Link, Mention or Heuristic'),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('approved_by_user_id', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['enrichment_run_id'], ['enrichment_runs.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['from_note_id'], ['notes.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['to_note_id'], ['notes.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_note_relationships_enrichment_run_id'), 'note_relationships', ['enrichment_run_id'], unique=False)

    op.create_table('ai_cache_entries',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('cache_type', sa.String(), nullable=False, comment='classification | relationship'),
    sa.Column('content_hash', sa.String(length=64), nullable=False),
    sa.Column('algorithm_version', sa.String(), nullable=False),
    sa.Column('context_hash', sa.String(length=64), nullable=True),
    sa.Column('team_id', sa.String(), nullable=False),
    sa.Column('result', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('model_id', sa.String(), nullable=True),
    sa.Column('tokens_saved', sa.Integer(), nullable=True),
    sa.Column('hit_count', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('last_hit_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_ai_cache_lookup', 'ai_cache_entries', ['cache_type', 'content_hash', 'algorithm_version', 'context_hash', 'team_id'], unique=False)
    op.create_index('ix_ai_cache_expires_at', 'ai_cache_entries', ['expires_at'], unique=False)
    op.create_index(op.f('ix_ai_cache_entries_team_id'), 'ai_cache_entries', ['team_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_ai_cache_entries_team_id'), table_name='ai_cache_entries')
    op.drop_index('ix_ai_cache_expires_at', table_name='ai_cache_entries')
    op.drop_index('ix_ai_cache_lookup', table_name='ai_cache_entries')
    op.drop_table('ai_cache_entries')
    op.drop_index(op.f('ix_note_relationships_enrichment_run_id'), table_name='note_relationships')
    op.drop_table('note_relationships')
    op.drop_index(op.f('ix_note_classifications_enrichment_run_id'), table_name='note_classifications')
    op.drop_index(op.f('ix_note_classifications_note_id'), table_name='note_classifications')
    op.drop_table('note_classifications')
    op.drop_index(op.f('ix_enrichment_runs_team_id'), table_name='enrichment_runs')
    op.drop_index(op.f('ix_enrichment_runs_import_run_id'), table_name='enrichment_runs')
    op.drop_table('enrichment_runs')
    op.drop_index(op.f('ix_note_import_snapshots_import_run_id'), table_name='note_import_snapshots')
    op.drop_index(op.f('ix_note_import_snapshots_note_id'), table_name='note_import_snapshots')
    op.drop_table('note_import_snapshots')
    op.drop_index(op.f('ix_notes_import_run_id'), table_name='notes')
    op.drop_index(op.f('ix_notes_team_id'), table_name='notes')
    op.drop_table('notes')
    op.drop_index(op.f('ix_import_runs_team_id'), table_name='import_runs')
    op.drop_table('import_runs')
