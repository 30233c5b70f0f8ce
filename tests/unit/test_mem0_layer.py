"""Tests for the Mem0-style session layer."""

from unittest.mock import AsyncMock

import pytest

from memvault.errors import GenerationError, InvalidArgumentError
from memvault.memory.mem0_layer import (
    Mem0Layer,
    MemoryStats,
    create_mem0_layer,
    parse_fact_lines,
    split_sentences,
)
from memvault.memory.semantic import MemoryType
from memvault.memory.vector_store import Scope


@pytest.fixture
def layer(semantic_memory) -> Mem0Layer:
    return Mem0Layer(user_id="user1", semantic_memory=semantic_memory)


@pytest.fixture
def generator() -> AsyncMock:
    generator = AsyncMock()
    generator.generate.return_value = (
        "Here are the facts:\n- The user lives in Lisbon\n- The user works as a nurse\nnot a fact"
    )
    return generator


class TestFactParsing:
    """Tests for extraction helpers."""

    def test_parse_fact_lines(self) -> None:
        text = "- one\n  - two  \n* three\n-\n- "
        assert parse_fact_lines(text) == ["one", "two"]

    def test_split_sentences_length_bounds(self) -> None:
        text = "Too short. This sentence is long enough to count as a fact! " + "x" * 250
        assert split_sentences(text) == ["This sentence is long enough to count as a fact"]


class TestSessions:
    """Tests for session management."""

    def test_requires_user(self, semantic_memory) -> None:
        with pytest.raises(InvalidArgumentError):
            Mem0Layer(user_id="", semantic_memory=semantic_memory)

    def test_start_and_end(self, layer) -> None:
        session_id = layer.start_session()

        assert layer.session_id == session_id
        assert layer.session_scope() == Scope("user1", None, session_id)
        layer.end_session()
        assert layer.session_id is None
        assert layer.sessions == [session_id]

    def test_explicit_session_id(self, layer) -> None:
        assert layer.start_session("run-7") == "run-7"

    @pytest.mark.asyncio
    async def test_session_memory_goes_to_session_scope(self, layer, semantic_memory) -> None:
        session_id = layer.start_session()
        memory = await layer.add_memory("Talked about the weather today")

        assert memory.run_id == session_id
        assert await semantic_memory.count(Scope("user1", None, session_id)) == 1
        assert await semantic_memory.count(Scope("user1")) == 0

    @pytest.mark.asyncio
    async def test_no_session_falls_back_to_user_scope(self, layer) -> None:
        memory = await layer.add_memory("Remembered without a session")
        assert memory.run_id is None
        assert memory.user_id == "user1"

    @pytest.mark.asyncio
    async def test_clear_session_memories(self, layer, semantic_memory) -> None:
        layer.start_session()
        await layer.add_memory("session note one")
        await layer.add_memory("session note two")
        await layer.store_preference("Prefers short answers")

        assert await layer.clear_session_memories() == 2
        assert await semantic_memory.count() == 1

    @pytest.mark.asyncio
    async def test_clear_without_session(self, layer) -> None:
        assert await layer.clear_session_memories() == 0


class TestSearch:
    """Tests for search_memories and context retrieval."""

    @pytest.mark.asyncio
    async def test_search_includes_user_and_current_session(self, layer) -> None:
        await layer.store_preference("Prefers dark roast coffee")
        layer.start_session()
        await layer.add_memory("Asked about dark roast coffee beans")

        results = await layer.search_memories("dark roast coffee", min_similarity=0.0)
        assert {m.content for m in results} == {
            "Prefers dark roast coffee",
            "Asked about dark roast coffee beans",
        }

    @pytest.mark.asyncio
    async def test_other_sessions_need_include_all(self, layer) -> None:
        layer.start_session()
        await layer.add_memory("Old session detail about sailing")
        layer.start_session()

        assert await layer.search_memories("sailing", min_similarity=0.0) == []
        everything = await layer.search_memories(
            "sailing", min_similarity=0.0, include_all_sessions=True
        )
        assert [m.content for m in everything] == ["Old session detail about sailing"]

    @pytest.mark.asyncio
    async def test_search_by_type(self, layer) -> None:
        await layer.store_preference("Likes jazz music")
        await layer.add_memory("Went to a jazz concert", MemoryType.FACT)

        results = await layer.search_memories(
            "jazz", min_similarity=0.0, memory_type=MemoryType.PREFERENCE
        )
        assert [m.content for m in results] == ["Likes jazz music"]

    @pytest.mark.asyncio
    async def test_results_sorted_and_limited(self, layer) -> None:
        for i in range(6):
            await layer.add_memory(f"note {i} about gardening", session_scoped=False)

        results = await layer.search_memories("gardening", limit=3, min_similarity=0.0)
        assert len(results) == 3
        assert all(a.similarity >= b.similarity for a, b in zip(results, results[1:]))

    @pytest.mark.asyncio
    async def test_get_context_for_query(self, layer) -> None:
        await layer.store_preference("Prefers vegetarian restaurants")

        context = await layer.get_context_for_query("Prefers vegetarian restaurants")
        assert context[0]["content"] == "Prefers vegetarian restaurants"
        assert context[0]["memory_type"] == "preference"


class TestExtraction:
    """Tests for fact extraction."""

    @pytest.mark.asyncio
    async def test_extract_with_generator(self, semantic_memory, generator) -> None:
        layer = Mem0Layer("user1", semantic_memory=semantic_memory, generator=generator)

        stored = await layer.extract_and_store_facts("I moved to Lisbon and work as a nurse.")

        assert [m.content for m in stored] == [
            "The user lives in Lisbon",
            "The user works as a nurse",
        ]
        assert all(m.memory_type is MemoryType.FACT for m in stored)
        assert stored[0].metadata == {"source": "agent", "extracted": True}
        prompt = generator.generate.call_args.args[0]
        assert "I moved to Lisbon" in prompt

    @pytest.mark.asyncio
    async def test_extract_heuristic(self, layer) -> None:
        text = "Hi. The user has two cats named Miso and Tofu. They enjoy long walks on weekends."
        stored = await layer.extract_and_store_facts(text, source="user")

        assert [m.content for m in stored] == [
            "The user has two cats named Miso and Tofu",
            "They enjoy long walks on weekends",
        ]
        assert stored[0].metadata["source"] == "user"

    @pytest.mark.asyncio
    async def test_extract_empty_text(self, layer) -> None:
        assert await layer.extract_and_store_facts("   ") == []

    @pytest.mark.asyncio
    async def test_extracted_duplicates_collapse(self, semantic_memory, generator) -> None:
        generator.generate.return_value = "- Likes tea\n- likes tea\n- Likes tea"
        layer = Mem0Layer("user1", semantic_memory=semantic_memory, generator=generator)

        stored = await layer.extract_and_store_facts("I like tea")
        assert len(stored) == 1
        assert await semantic_memory.count() == 1

    @pytest.mark.asyncio
    async def test_generator_failure_propagates(self, semantic_memory) -> None:
        generator = AsyncMock()
        generator.generate.side_effect = GenerationError("backend down")
        layer = Mem0Layer("user1", semantic_memory=semantic_memory, generator=generator)

        with pytest.raises(GenerationError):
            await layer.extract_and_store_facts("Some text worth remembering here")


class TestSummaryAndStats:
    """Tests for summarize and get_stats."""

    @pytest.mark.asyncio
    async def test_summarize(self, semantic_memory, generator) -> None:
        generator.generate.return_value = "  A nurse living in Lisbon.  "
        layer = Mem0Layer("user1", semantic_memory=semantic_memory, generator=generator)
        await layer.store_preference("Prefers tea")

        assert await layer.summarize() == "A nurse living in Lisbon."
        assert "- Prefers tea" in generator.generate.call_args.args[0]

    @pytest.mark.asyncio
    async def test_summarize_nothing(self, semantic_memory, generator) -> None:
        layer = Mem0Layer("user1", semantic_memory=semantic_memory, generator=generator)
        assert await layer.summarize() == ""
        generator.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_summarize_without_generator(self, layer) -> None:
        with pytest.raises(GenerationError):
            await layer.summarize()

    @pytest.mark.asyncio
    async def test_get_stats(self, layer) -> None:
        await layer.store_preference("Prefers tea")
        await layer.add_memory("A global fact", session_scoped=False)
        session_id = layer.start_session()
        await layer.add_memory("A session fact")
        await layer.add_memory("Session context", MemoryType.CONTEXT)

        stats = await layer.get_stats()

        assert isinstance(stats, MemoryStats)
        assert stats.total == 4
        assert stats.by_type == {"preference": 1, "fact": 2, "context": 1}
        assert stats.by_session == {"global": 2, session_id: 2}

    @pytest.mark.asyncio
    async def test_get_stats_empty(self, layer) -> None:
        stats = await layer.get_stats()
        assert stats.total == 0
        assert stats.by_type == {}


class TestFactory:
    """Tests for create_mem0_layer."""

    @pytest.mark.asyncio
    async def test_create(self) -> None:
        layer = create_mem0_layer("user9", agent_id="helper", use_simple=True)

        assert layer.user_scope == Scope("user9", "helper")
        memory = await layer.add_memory("created by factory")
        assert memory.agent_id == "helper"
        await layer.close()
