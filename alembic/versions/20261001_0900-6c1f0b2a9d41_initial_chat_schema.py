"""initial_chat_schema

Revision ID: 6c1f0b2a9d41
Revises:
Create Date: 2026-10-01 09:00:12.418203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '6c1f0b2a9d41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('friend_code', sa.String(length=20), nullable=False),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('avatar_key', sa.String(length=500), nullable=True),
        sa.Column('status', sa.Enum('ONLINE', 'OFFLINE', name='user_status', native_enum=False), nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('friend_code')
    )
    op.create_index('idx_users_status', 'users', ['status'], unique=False)

    op.create_table('friendships',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('requester_id', sa.String(length=36), nullable=False),
        sa.Column('addressee_id', sa.String(length=36), nullable=False),
        sa.Column('pair_key', sa.String(length=80), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'ACCEPTED', 'DECLINED', 'BLOCKED', 'CANCELLED', name='friendship_status', native_enum=False), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['addressee_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('requester_id', 'addressee_id', name='uq_friendship_requester_addressee'),
        sa.UniqueConstraint('pair_key', name='uq_friendship_pair')
    )
    op.create_index('idx_friendships_addressee_status', 'friendships', ['addressee_id', 'status'], unique=False)
    op.create_index('idx_friendships_requester_status', 'friendships', ['requester_id', 'status'], unique=False)

    # last_message_id FK is added after messages exists (circular reference)
    op.create_table('conversations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.Enum('DIRECT', 'GROUP', name='conversation_type', native_enum=False), nullable=False),
        sa.Column('participant_a_id', sa.String(length=36), nullable=True),
        sa.Column('participant_b_id', sa.String(length=36), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=True),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('last_message_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['participant_a_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['participant_b_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('participant_a_id', 'participant_b_id', name='uq_conversation_direct_pair')
    )
    op.create_index('idx_conversations_updated', 'conversations', ['updated_at', 'id'], unique=False)
    op.create_index('idx_conversations_type', 'conversations', ['type'], unique=False)

    op.create_table('participants',
        sa.Column('conversation_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'MEMBER', name='participant_role', native_enum=False), nullable=False),
        sa.Column('unread_count', sa.Integer(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('muted_until', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('unread_count >= 0', name='ck_participant_unread_non_negative'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('conversation_id', 'user_id')
    )
    op.create_index('idx_participants_user', 'participants', ['user_id'], unique=False)

    op.create_table('messages',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('conversation_id', sa.String(length=36), nullable=False),
        sa.Column('sender_id', sa.String(length=36), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('content_type', sa.Enum('TEXT', 'SIGNAL_ENCRYPTED', 'SIGNAL_KEY_DISTRIBUTION', name='message_content_type', native_enum=False), nullable=False),
        sa.Column('attachment_url', sa.String(length=1000), nullable=True),
        sa.Column('reply_to_id', sa.String(length=36), nullable=True),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reply_to_id'], ['messages.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_messages_sender_id'), 'messages', ['sender_id'], unique=False)
    op.create_index('idx_messages_conversation_created', 'messages', ['conversation_id', 'created_at', 'id'], unique=False)

    op.create_foreign_key(
        'fk_conversations_last_message_id', 'conversations', 'messages',
        ['last_message_id'], ['id'], ondelete='SET NULL'
    )

    op.create_table('message_receipts',
        sa.Column('message_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['message_id'], ['messages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('message_id', 'user_id')
    )
    op.create_index('idx_message_receipts_user', 'message_receipts', ['user_id'], unique=False)

    op.create_table('identity_keys',
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('registration_id', sa.Integer(), nullable=True),
        sa.Column('public_key', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id')
    )

    op.create_table('signed_prekeys',
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('key_id', sa.Integer(), nullable=False),
        sa.Column('public_key', sa.Text(), nullable=False),
        sa.Column('signature', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id')
    )

    op.create_table('one_time_prekeys',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('key_id', sa.Integer(), nullable=False),
        sa.Column('public_key', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'key_id', name='uq_one_time_prekey_user_key')
    )
    op.create_index(op.f('ix_one_time_prekeys_user_id'), 'one_time_prekeys', ['user_id'], unique=False)

    op.create_table('refresh_tokens',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('replaced_by_id', sa.String(length=36), nullable=True),
        sa.Column('device_id', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['replaced_by_id'], ['refresh_tokens.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash')
    )
    op.create_index('idx_refresh_tokens_user', 'refresh_tokens', ['user_id'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_refresh_tokens_user', table_name='refresh_tokens')
    op.drop_table('refresh_tokens')
    op.drop_index(op.f('ix_one_time_prekeys_user_id'), table_name='one_time_prekeys')
    op.drop_table('one_time_prekeys')
    op.drop_table('signed_prekeys')
    op.drop_table('identity_keys')
    op.drop_index('idx_message_receipts_user', table_name='message_receipts')
    op.drop_table('message_receipts')
    op.drop_constraint('fk_conversations_last_message_id', 'conversations', type_='foreignkey')
    op.drop_index('idx_messages_conversation_created', table_name='messages')
    op.drop_index(op.f('ix_messages_sender_id'), table_name='messages')
    op.drop_table('messages')
    op.drop_index('idx_participants_user', table_name='participants')
    op.drop_table('participants')
    op.drop_index('idx_conversations_type', table_name='conversations')
    op.drop_index('idx_conversations_updated', table_name='conversations')
    op.drop_table('conversations')
    op.drop_index('idx_friendships_requester_status', table_name='friendships')
    op.drop_index('idx_friendships_addressee_status', table_name='friendships')
    op.drop_table('friendships')
    op.drop_index('idx_users_status', table_name='users')
    op.drop_table('users')
