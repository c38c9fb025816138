from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_chat.models.api.conversations import ConversationResponse
from estate_chat.models.db.conversation_model import ConversationModel
from estate_chat.repositories.base_repository import BaseRepository
from estate_chat.repositories.conversation_repository import (
    ConversationRepository,
    listing_scope,
    ordered_pair,
)
from estate_chat.repositories.participant_repository import ParticipantRepository


class TestKeys:
    """Unit tests for the conversation uniqueness key helpers."""

    def test_ordered_pair_is_symmetric(self) -> None:
        assert ordered_pair("alice", "bob") == ordered_pair("bob", "alice")
        assert ordered_pair("bob", "alice") == ("alice", "bob")

    def test_ordered_pair_keeps_separator_characters_apart(self) -> None:
        assert ordered_pair("a", "b:c") != ordered_pair("a:b", "c")

    def test_listing_scope(self) -> None:
        listing_id = uuid4()
        assert listing_scope(listing_id) == str(listing_id)
        assert listing_scope(None) == ""


class TestBaseRepository:
    """Unit tests for BaseRepository functionality."""

    def test_base_repository_creation(self, mock_db: Any) -> None:
        """Test that BaseRepository can be instantiated."""
        repo: BaseRepository[ConversationModel, ConversationResponse] = BaseRepository(
            mock_db, ConversationModel
        )
        assert repo.db is mock_db
        assert repo.model_class is ConversationModel

    @pytest.mark.asyncio
    async def test_get_by_id_not_found(self, mock_db: Any) -> None:
        """Test get_by_id when record is not found."""
        repo = ConversationRepository(mock_db)

        # Mock empty result - return None directly, not a coroutine
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = mock_result

        assert await repo.get_by_id(uuid4()) is None
        mock_db.execute.assert_called_once()

    def test_conversion_not_implemented(self, mock_db: Any) -> None:
        repo: BaseRepository[ConversationModel, ConversationResponse] = BaseRepository(
            mock_db, ConversationModel
        )
        with pytest.raises(NotImplementedError):
            repo._to_pydantic(MagicMock())


class TestConversationRepository:
    """Integration tests for ConversationRepository against SQLite."""

    @pytest.mark.asyncio
    async def test_create_with_participants(self, test_db: AsyncSession) -> None:
        repo = ConversationRepository(test_db)
        listing_id = uuid4()

        conversation = await repo.create_with_participants(
            listing_id, ["bob", "alice"]
        )

        assert conversation.listing_id == listing_id
        assert conversation.participants == ["alice", "bob"]
        assert conversation.last_message is None
        assert conversation.last_message_at is None

        members = await ParticipantRepository(test_db).get_by_conversation(
            conversation.id
        )
        assert [m.user_id for m in members] == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_find_by_participants_is_symmetric(
        self, test_db: AsyncSession
    ) -> None:
        repo = ConversationRepository(test_db)
        created = await repo.create_with_participants(None, ["alice", "bob"])

        found_ab = await repo.find_by_participants("alice", "bob")
        found_ba = await repo.find_by_participants("bob", "alice")

        assert found_ab is not None and found_ba is not None
        assert found_ab.id == found_ba.id == created.id

    @pytest.mark.asyncio
    async def test_find_by_participants_respects_listing(
        self, test_db: AsyncSession
    ) -> None:
        repo = ConversationRepository(test_db)
        listing_id = uuid4()
        general = await repo.create_with_participants(None, ["alice", "bob"])
        about_listing = await repo.create_with_participants(
            listing_id, ["alice", "bob"]
        )

        assert general.id != about_listing.id
        found = await repo.find_by_participants("bob", "alice", listing_id)
        assert found is not None and found.id == about_listing.id
        assert await repo.find_by_participants("alice", "bob", uuid4()) is None

    @pytest.mark.asyncio
    async def test_identities_with_colons_do_not_collide(
        self, test_db: AsyncSession
    ) -> None:
        repo = ConversationRepository(test_db)
        first = await repo.create_with_participants(None, ["a", "b:c"])
        second = await repo.create_with_participants(None, ["a:b", "c"])

        assert first.id != second.id
        found = await repo.find_by_participants("c", "a:b")
        assert found is not None and found.id == second.id
        assert found.participants == ["a:b", "c"]

    @pytest.mark.asyncio
    async def test_duplicate_pair_violates_unique_constraint(
        self, test_db: AsyncSession
    ) -> None:
        """A second row for the same pair and listing is rejected by the store."""
        repo = ConversationRepository(test_db)
        await repo.create_with_participants(None, ["alice", "bob"])

        with pytest.raises(IntegrityError):
            await repo.create_with_participants(None, ["bob", "alice"])
        await test_db.rollback()

    @pytest.mark.asyncio
    async def test_list_for_participant_orders_by_activity(
        self, test_db: AsyncSession
    ) -> None:
        repo = ConversationRepository(test_db)
        quiet = await repo.create_with_participants(None, ["alice", "carol"])
        older = await repo.create_with_participants(None, ["alice", "bob"])
        newer = await repo.create_with_participants(None, ["alice", "dave"])
        await repo.create_with_participants(None, ["bob", "carol"])

        now = datetime.now(timezone.utc)
        await repo.touch_last_message(older.id, "first", now - timedelta(minutes=5))
        await repo.touch_last_message(newer.id, "second", now)
        await test_db.commit()

        conversations = await repo.list_for_participant("alice")

        assert [c.id for c in conversations] == [newer.id, older.id, quiet.id]
        assert conversations[0].last_message == "second"

    @pytest.mark.asyncio
    async def test_list_for_participant_without_conversations(
        self, test_db: AsyncSession
    ) -> None:
        repo = ConversationRepository(test_db)
        assert await repo.list_for_participant("nobody") == []
