"""
Database models for channels, direct messages, reactions, presence and the
vector index.

Supabase Tables:

CREATE EXTENSION IF NOT EXISTS vector;

CREATE TABLE channels (
    id BIGSERIAL PRIMARY KEY,
    name VARCHAR(80) NOT NULL UNIQUE,
    description TEXT,
    created_by UUID NOT NULL REFERENCES auth.users(id),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE TABLE messages (
    id BIGSERIAL PRIMARY KEY,
    content TEXT NOT NULL DEFAULT '',
    user_id UUID NOT NULL REFERENCES auth.users(id),
    username TEXT NOT NULL,
    channel_id BIGINT NOT NULL REFERENCES channels(id) ON DELETE CASCADE,
    parent_message_id BIGINT REFERENCES messages(id) ON DELETE CASCADE,
    file JSONB,
    audio TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

-- user1_id < user2_id, one row per unordered pair
CREATE TABLE dm_channels (
    id BIGSERIAL PRIMARY KEY,
    user1_id UUID NOT NULL REFERENCES auth.users(id),
    user2_id UUID NOT NULL REFERENCES auth.users(id),
    last_message_from UUID,
    unread_count INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    CONSTRAINT dm_channels_ordered_pair CHECK (user1_id < user2_id),
    CONSTRAINT dm_channels_pair_key UNIQUE (user1_id, user2_id)
);

CREATE TABLE dm_messages (
    id BIGSERIAL PRIMARY KEY,
    content TEXT NOT NULL DEFAULT '',
    sender_id UUID NOT NULL REFERENCES auth.users(id),
    dm_channel_id BIGINT NOT NULL REFERENCES dm_channels(id) ON DELETE CASCADE,
    file JSONB,
    audio TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE TABLE message_reactions (
    id BIGSERIAL PRIMARY KEY,
    message_id BIGINT REFERENCES messages(id) ON DELETE CASCADE,
    dm_message_id BIGINT REFERENCES dm_messages(id) ON DELETE CASCADE,
    user_id UUID NOT NULL REFERENCES auth.users(id),
    emoji TEXT NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    CONSTRAINT message_reactions_target CHECK (num_nonnulls(message_id, dm_message_id) = 1),
    CONSTRAINT message_reactions_message_user_key UNIQUE (message_id, user_id),
    CONSTRAINT message_reactions_dm_message_user_key UNIQUE (dm_message_id, user_id)
);

CREATE TABLE user_status (
    user_id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    email TEXT NOT NULL,
    display_name TEXT,
    avatar_path TEXT,
    status VARCHAR(10) NOT NULL CHECK (status IN ('active', 'idle', 'offline')),
    last_seen TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    bot_prompt TEXT
);

CREATE TABLE chat_documents (
    id BIGSERIAL PRIMARY KEY,
    namespace TEXT NOT NULL,
    document_id TEXT NOT NULL,
    channel_id BIGINT,
    user_id TEXT,
    content TEXT NOT NULL,
    metadata JSONB NOT NULL DEFAULT '{}',
    embedding VECTOR(768) NOT NULL,
    CONSTRAINT chat_documents_namespace_document_key UNIQUE (namespace, document_id)
);

CREATE INDEX idx_messages_channel_created ON messages(channel_id, created_at);
CREATE INDEX idx_dm_messages_channel_created ON dm_messages(dm_channel_id, created_at);
CREATE INDEX idx_user_status_last_seen ON user_status(last_seen);
CREATE INDEX idx_chat_documents_channel ON chat_documents(channel_id);

CREATE FUNCTION increment_dm_unread(dm_channel_id BIGINT, sender_id UUID)
RETURNS dm_channels LANGUAGE sql AS $$
    UPDATE dm_channels
       SET unread_count = CASE WHEN last_message_from = sender_id
                               THEN unread_count + 1 ELSE 1 END,
           last_message_from = sender_id
     WHERE id = dm_channel_id
    RETURNING *;
$$;

CREATE FUNCTION match_chat_documents(
    query_embedding VECTOR(768),
    match_count INT,
    filter_namespace TEXT DEFAULT NULL,
    filter_channel_id BIGINT DEFAULT NULL,
    filter_user_id TEXT DEFAULT NULL
) RETURNS TABLE (document_id TEXT, content TEXT, metadata JSONB, similarity FLOAT)
LANGUAGE sql STABLE AS $$
    SELECT document_id, content, metadata,
           1 - (embedding <=> query_embedding) AS similarity
      FROM chat_documents
     WHERE (filter_namespace IS NULL OR namespace = filter_namespace)
       AND (filter_channel_id IS NULL OR channel_id = filter_channel_id)
       AND (filter_user_id IS NULL OR user_id = filter_user_id)
     ORDER BY embedding <=> query_embedding
     LIMIT match_count;
$$;

-- Realtime
ALTER PUBLICATION supabase_realtime ADD TABLE messages, dm_messages, message_reactions, channels, user_status;
"""

from enum import Enum


class Tables:
    CHANNELS = "channels"
    MESSAGES = "messages"
    DM_CHANNELS = "dm_channels"
    DM_MESSAGES = "dm_messages"
    REACTIONS = "message_reactions"
    USER_STATUS = "user_status"
    DOCUMENTS = "chat_documents"


class Buckets:
    CHAT_FILES = "chat-files"


class Rpc:
    INCREMENT_DM_UNREAD = "increment_dm_unread"
    MATCH_DOCUMENTS = "match_chat_documents"


class PresenceStatus(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"
    OFFLINE = "offline"


# Lower sorts first
STATUS_PRIORITY = {
    PresenceStatus.ACTIVE.value: 0,
    PresenceStatus.IDLE.value: 1,
    PresenceStatus.OFFLINE.value: 2,
}
