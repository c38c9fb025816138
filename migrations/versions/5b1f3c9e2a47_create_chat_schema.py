"""create chat schema

Revision ID: 5b1f3c9e2a47
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5b1f3c9e2a47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Step 1: Create the function (required before triggers)
    op.execute('''
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ language 'plpgsql'
    ''')

    # Step 2: Create tables
    op.execute("""
        CREATE TABLE IF NOT EXISTS conversations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            listing_id UUID,
            participant_low VARCHAR(128) NOT NULL,
            participant_high VARCHAR(128) NOT NULL,
            listing_scope VARCHAR(64) NOT NULL DEFAULT '',
            last_message TEXT,
            last_message_at TIMESTAMP WITH TIME ZONE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            CONSTRAINT uq_conversation_pair UNIQUE (participant_low, participant_high, listing_scope)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS conversation_participants (
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            user_id VARCHAR(128) NOT NULL,
            joined_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            PRIMARY KEY (conversation_id, user_id)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            seq BIGSERIAL PRIMARY KEY,
            id UUID NOT NULL UNIQUE DEFAULT gen_random_uuid(),
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            sender_id VARCHAR(128) NOT NULL,
            content TEXT NOT NULL,
            kind VARCHAR(10) NOT NULL DEFAULT 'text' CHECK (kind IN ('text', 'image', 'file')),
            read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL
        )
    """)

    # Step 3: Create indexes
    op.execute('CREATE INDEX IF NOT EXISTS idx_messages_conversation_order ON messages(conversation_id, created_at, seq)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_messages_unread ON messages(conversation_id, sender_id) WHERE read = FALSE')
    op.execute('CREATE INDEX IF NOT EXISTS ix_conversation_participants_user_id ON conversation_participants(user_id)')
    op.execute('CREATE INDEX IF NOT EXISTS idx_conversations_last_message_at ON conversations(last_message_at DESC)')

    # Step 4: Create triggers (only after tables exist)
    op.execute('''
        CREATE TRIGGER update_conversations_updated_at
            BEFORE UPDATE ON conversations
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()
    ''')


def downgrade() -> None:
    """Downgrade schema."""
    op.execute('DROP TRIGGER IF EXISTS update_conversations_updated_at ON conversations')
    op.execute('DROP TABLE IF EXISTS messages')
    op.execute('DROP TABLE IF EXISTS conversation_participants')
    op.execute('DROP TABLE IF EXISTS conversations')
    op.execute('DROP FUNCTION IF EXISTS update_updated_at_column()')
