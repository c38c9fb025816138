from typing import Any
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.exceptions import Forbidden, InvalidContent, StorageError
from estate_chat.realtime.broadcast import BroadcastRouter
from estate_chat.realtime.presence import InMemoryPresenceRegistry, conversation_room
from estate_chat.services.conversation_directory import ConversationDirectory
from estate_chat.services.mark_conversation_read_service import (
    MarkConversationReadService,
)
from estate_chat.services.message_store import MessageStore
from estate_chat.services.open_conversation_service import OpenConversationService
from estate_chat.services.send_message_service import SendMessageService


class TestSendMessageService:
    """Tests for SendMessageService with a real store and in-memory presence."""

    @pytest.fixture
    def service(
        self, test_db: AsyncSession, broadcaster: BroadcastRouter
    ) -> SendMessageService:
        return SendMessageService(test_db, broadcaster)

    @pytest.mark.asyncio
    async def test_basic_exchange(
        self,
        test_db: AsyncSession,
        presence: InMemoryPresenceRegistry,
        broadcaster: BroadcastRouter,
        recording_socket: Any,
    ) -> None:
        """Buyer opens a chat about a listing, seller is online and reads it."""
        listing_id = uuid4()
        buyer_socket = recording_socket()
        seller_socket = recording_socket()
        buyer = presence.register_session("buyer", buyer_socket)
        presence.register_session("seller", seller_socket)

        opened = await OpenConversationService(test_db).open_conversation(
            "buyer", "seller", listing_id
        )
        assert opened.messages == []
        assert opened.peer_id == "seller"
        presence.join_room(buyer, conversation_room(opened.id))

        message = await SendMessageService(test_db, broadcaster).send_message(
            opened.id, "buyer", "Hi, is this still available?"
        )

        # Seller is not in the conversation room, only in their personal room
        assert seller_socket.events() == ["conversation-updated", "unread-count"]
        updated = seller_socket.of("conversation-updated")[0]
        assert updated["conversation_id"] == str(opened.id)
        assert updated["last_message"] == "Hi, is this still available?"
        assert seller_socket.of("unread-count") == [{"count": 1}]

        # Buyer's socket sees its own message echoed to the conversation room
        assert buyer_socket.events() == ["new-message", "conversation-updated"]
        echoed = buyer_socket.of("new-message")[0]
        assert echoed["message"]["id"] == str(message.id)

        directory = ConversationDirectory(test_db)
        [summary] = await directory.list_for_identity("seller")
        assert summary.id == opened.id
        assert summary.unread_count == 1
        assert summary.last_message == "Hi, is this still available?"

        await MarkConversationReadService(test_db, broadcaster).mark_conversation_read(
            opened.id, "seller"
        )
        assert await MessageStore(test_db).unread_count_for_identity("seller") == 0
        assert buyer_socket.of("messages-read") == [
            {"conversation_id": str(opened.id), "reader_id": "seller"}
        ]

    @pytest.mark.asyncio
    async def test_new_message_reaches_every_device_in_room(
        self,
        test_db: AsyncSession,
        presence: InMemoryPresenceRegistry,
        service: SendMessageService,
        recording_socket: Any,
    ) -> None:
        conversation = await ConversationDirectory(test_db).get_or_create(
            "alice", "bob"
        )
        phone, laptop = recording_socket(), recording_socket()
        for send in (phone, laptop):
            session = presence.register_session("bob", send)
            presence.join_room(session, conversation_room(conversation.id))

        await service.send_message(conversation.id, "alice", "Hello")

        for socket in (phone, laptop):
            assert socket.events() == [
                "new-message",
                "conversation-updated",
                "unread-count",
            ]

    @pytest.mark.asyncio
    async def test_broadcast_miss_does_not_fail_send(
        self,
        test_db: AsyncSession,
        presence: InMemoryPresenceRegistry,
        service: SendMessageService,
        recording_socket: Any,
    ) -> None:
        """A dead socket is skipped; the message is stored and others get it."""
        conversation = await ConversationDirectory(test_db).get_or_create(
            "alice", "bob"
        )
        dead = recording_socket(fail=True)
        alive = recording_socket()
        presence.register_session("bob", dead)
        presence.register_session("bob", alive)

        message = await service.send_message(conversation.id, "alice", "Hello")

        history = await MessageStore(test_db).list_by_conversation(conversation.id)
        assert [m.id for m in history] == [message.id]
        assert alive.events() == ["conversation-updated", "unread-count"]
        assert dead.frames == []

    @pytest.mark.asyncio
    async def test_offline_recipient_catches_up_from_store(
        self, test_db: AsyncSession, service: SendMessageService
    ) -> None:
        conversation = await ConversationDirectory(test_db).get_or_create(
            "alice", "bob"
        )
        await service.send_message(conversation.id, "alice", "Are you there?")

        history = await MessageStore(test_db).list_by_conversation(conversation.id)
        assert [m.content for m in history] == ["Are you there?"]
        assert await MessageStore(test_db).unread_count_for_identity("bob") == 1

    @pytest.mark.asyncio
    async def test_non_participant_is_forbidden(
        self,
        test_db: AsyncSession,
        presence: InMemoryPresenceRegistry,
        service: SendMessageService,
        recording_socket: Any,
    ) -> None:
        conversation = await ConversationDirectory(test_db).get_or_create(
            "alice", "bob"
        )
        socket = recording_socket()
        presence.register_session("bob", socket)

        with pytest.raises(Forbidden):
            await service.send_message(conversation.id, "mallory", "spam")

        assert await MessageStore(test_db).list_by_conversation(conversation.id) == []
        assert socket.frames == []

    @pytest.mark.asyncio
    async def test_invalid_content_is_not_broadcast(
        self,
        test_db: AsyncSession,
        presence: InMemoryPresenceRegistry,
        service: SendMessageService,
        recording_socket: Any,
    ) -> None:
        conversation = await ConversationDirectory(test_db).get_or_create(
            "alice", "bob"
        )
        socket = recording_socket()
        presence.register_session("bob", socket)

        with pytest.raises(InvalidContent):
            await service.send_message(conversation.id, "alice", "   ")
        assert socket.frames == []

    @pytest.mark.asyncio
    async def test_participant_lookup_failure_skips_broadcast(
        self, test_db: AsyncSession, service: SendMessageService
    ) -> None:
        conversation = await ConversationDirectory(test_db).get_or_create(
            "alice", "bob"
        )
        with patch.object(
            service.directory,
            "participants_of",
            new_callable=AsyncMock,
            side_effect=StorageError(),
        ), patch.object(
            service.broadcaster, "emit_to_room", new_callable=AsyncMock
        ) as mock_emit:
            message = await service.send_message(conversation.id, "alice", "Hi")

        assert message.content == "Hi"
        mock_emit.assert_not_called()
