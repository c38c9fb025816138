from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.exceptions import Forbidden, InvalidParticipants
from estate_chat.services.message_store import MessageStore
from estate_chat.services.open_conversation_service import OpenConversationService


class TestOpenConversationService:
    """Tests for OpenConversationService."""

    @pytest.mark.asyncio
    async def test_open_creates_then_reuses(self, test_db: AsyncSession) -> None:
        service = OpenConversationService(test_db)
        listing_id = uuid4()

        created = await service.open_conversation("buyer", "seller", listing_id)
        reopened = await service.open_conversation("seller", "buyer", listing_id)

        assert created.id == reopened.id
        assert created.listing_id == listing_id
        assert created.peer_id == "seller"
        assert reopened.peer_id == "buyer"

    @pytest.mark.asyncio
    async def test_open_returns_history_and_unread(self, test_db: AsyncSession) -> None:
        service = OpenConversationService(test_db)
        conversation = await service.open_conversation("buyer", "seller")
        store = MessageStore(test_db)
        await store.append(conversation.id, "buyer", "Hello")
        await store.append(conversation.id, "seller", "Hi! Yes, still available")

        opened = await service.open_conversation("seller", "buyer")

        assert [m.content for m in opened.messages] == [
            "Hello",
            "Hi! Yes, still available",
        ]
        assert opened.unread_count == 1
        assert opened.last_message == "Hi! Yes, still available"

    @pytest.mark.asyncio
    async def test_open_with_self_is_rejected(self, test_db: AsyncSession) -> None:
        with pytest.raises(InvalidParticipants):
            await OpenConversationService(test_db).open_conversation("buyer", "buyer")

    @pytest.mark.asyncio
    async def test_colon_identities_open_their_own_conversation(
        self, test_db: AsyncSession
    ) -> None:
        service = OpenConversationService(test_db)
        private = await service.open_conversation("a", "b:c")
        await MessageStore(test_db).append(private.id, "a", "secret offer 250k")

        opened = await service.open_conversation("a:b", "c")

        assert opened.id != private.id
        assert opened.peer_id == "c"
        assert opened.messages == []

    @pytest.mark.asyncio
    async def test_conversation_of_another_pair_is_refused(
        self, test_db: AsyncSession
    ) -> None:
        service = OpenConversationService(test_db)
        foreign = await service.directory.get_or_create("alice", "bob")

        with patch.object(
            service.directory, "get_or_create", AsyncMock(return_value=foreign)
        ):
            with pytest.raises(Forbidden):
                await service.open_conversation("mallory", "bob")
