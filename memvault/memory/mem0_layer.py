"""Mem0-style business logic layer for structured memory management.

Provides session-based and user-based memory management with
generator-assisted fact extraction and summarization.
"""

import re
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from memvault.errors import GenerationError, InvalidArgumentError
from memvault.filtering.aggregation import AggregationFunction, AggregationQuery
from memvault.filtering.filters import FilterCondition, FilterQuery
from memvault.filtering.query import QueryBuilder
from memvault.memory.prompts import PromptManager
from memvault.memory.semantic import Memory, MemoryType, SemanticMemory, create_semantic_memory
from memvault.memory.vector_store import Scope
from memvault.utils.llm_factory import GenerationParams, Generator
from memvault.utils.logging import get_logger

logger = get_logger("memory.mem0_layer")

MAX_EXTRACTED_FACTS = 10


@dataclass
class MemoryStats:
    """Statistics about stored memories."""

    total: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_session: dict[str, int] = field(default_factory=dict)


def parse_fact_lines(text: str) -> list[str]:
    """Pull '- fact' lines out of a generator response."""
    facts = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("- "):
            fact = line[2:].strip()
            if fact:
                facts.append(fact)
    return facts


def split_sentences(text: str) -> list[str]:
    """Heuristic fact candidates: sentences of moderate length."""
    sentences = []
    for sentence in re.split(r"[.!?\n]", text):
        sentence = sentence.strip()
        if 20 < len(sentence) < 200:
            sentences.append(sentence)
    return sentences


def _unique(facts: list[str]) -> list[str]:
    seen = set()
    unique_facts = []
    for fact in facts:
        key = fact.lower()
        if key not in seen:
            seen.add(key)
            unique_facts.append(fact)
    return unique_facts


class Mem0Layer:
    """Mem0-style memory management layer.

    User-level memories live in the scope (user_id, agent_id). Each session
    gets its own scope with the session id as run_id, so ending a session
    and clearing it never touches user-level memories.
    """

    def __init__(
        self,
        user_id: str,
        semantic_memory: SemanticMemory | None = None,
        agent_id: str | None = None,
        generator: Generator | None = None,
        prompts: PromptManager | None = None,
        use_simple: bool = False,
    ) -> None:
        """Initialize Mem0 layer.

        Args:
            user_id: User that owns every memory of this layer.
            semantic_memory: Underlying semantic memory. Created if not provided.
            agent_id: Optional agent partition.
            generator: Text generator for extraction and summaries.
            prompts: Prompt templates. Defaults are used if not provided.
            use_simple: Use hash-based embeddings when creating memory.
        """
        if not user_id:
            raise InvalidArgumentError("user_id must not be empty")
        if semantic_memory is None:
            semantic_memory = create_semantic_memory(use_simple=use_simple)
        self.memory = semantic_memory
        self.user_id = user_id
        self.agent_id = agent_id
        self.generator = generator
        self.prompts = prompts if prompts is not None else PromptManager()
        self._current_session: str | None = None
        self._sessions: list[str] = []
        logger.info(f"Mem0Layer initialized for user={user_id}")

    async def close(self) -> None:
        """Close resources."""
        await self.memory.close()

    @property
    def user_scope(self) -> Scope:
        return Scope(self.user_id, self.agent_id)

    def session_scope(self, session_id: str | None = None) -> Scope | None:
        session_id = session_id or self._current_session
        if session_id is None:
            return None
        return Scope(self.user_id, self.agent_id, session_id)

    def start_session(self, session_id: str | None = None) -> str:
        """Start a new memory session.

        Returns:
            Session ID.
        """
        self._current_session = session_id or str(uuid4())
        if self._current_session not in self._sessions:
            self._sessions.append(self._current_session)
        logger.info(f"Started session: {self._current_session}")
        return self._current_session

    def end_session(self) -> None:
        """End the current session."""
        logger.info(f"Ended session: {self._current_session}")
        self._current_session = None

    @property
    def session_id(self) -> str | None:
        """Get current session ID."""
        return self._current_session

    @property
    def sessions(self) -> list[str]:
        return list(self._sessions)

    def _scope_for_write(self, session_scoped: bool) -> Scope:
        if session_scoped:
            scope = self.session_scope()
            if scope is not None:
                return scope
        return self.user_scope

    def _all_scopes(self) -> list[Scope]:
        return [self.user_scope] + [Scope(self.user_id, self.agent_id, s) for s in self._sessions]

    async def add_memory(
        self,
        content: str,
        memory_type: MemoryType | str = MemoryType.FACT,
        metadata: dict[str, Any] | None = None,
        session_scoped: bool = True,
    ) -> Memory:
        """Add a memory.

        Session-scoped memories fall back to the user scope when no session
        is active.

        Args:
            content: Text content.
            memory_type: Type of memory.
            metadata: Optional metadata.
            session_scoped: If True, memory is session-scoped.

        Returns:
            Stored memory, or the existing one it duplicates.
        """
        scope = self._scope_for_write(session_scoped)
        result = await self.memory.add(scope, content, memory_type=memory_type, metadata=metadata)
        return result.memory

    async def search_memories(
        self,
        query: str,
        limit: int = 5,
        min_similarity: float | None = 0.5,
        memory_type: MemoryType | str | None = None,
        include_all_sessions: bool = False,
    ) -> list[Memory]:
        """Search for relevant memories.

        Searches the user scope plus the current session, or every session
        this layer has started when `include_all_sessions` is set.

        Args:
            query: Query text.
            limit: Maximum results.
            min_similarity: Minimum similarity.
            memory_type: Filter by type.
            include_all_sessions: Include memories from all sessions.

        Returns:
            Memories sorted by descending similarity.
        """
        if include_all_sessions:
            scopes = self._all_scopes()
        else:
            scopes = [self.user_scope]
            current = self.session_scope()
            if current is not None:
                scopes.append(current)

        filter = None
        if memory_type is not None:
            value = memory_type.value if isinstance(memory_type, MemoryType) else memory_type
            filter = FilterQuery.and_(FilterCondition.eq("memory_type", value))

        found: list[Memory] = []
        for scope in scopes:
            found.extend(
                await self.memory.search(
                    scope, query, filter=filter, limit=limit, min_similarity=min_similarity
                )
            )

        found.sort(key=lambda m: (-(m.similarity or 0.0), m.id or ""))
        return found[:limit]

    async def get_context_for_query(
        self,
        query: str,
        limit: int = 3,
    ) -> list[dict[str, Any]]:
        """Get memory context for an agent query.

        Retrieves relevant memories from all sessions to provide
        context for the current query.

        Args:
            query: User query.
            limit: Maximum memories to include.

        Returns:
            List of memory dictionaries for agent context.
        """
        memories = await self.search_memories(
            query=query,
            limit=limit,
            min_similarity=0.4,  # Lower threshold for context
            include_all_sessions=True,
        )

        return [m.to_dict() for m in memories]

    async def extract_and_store_facts(
        self,
        text: str,
        source: str = "agent",
    ) -> list[Memory]:
        """Extract and store facts from text.

        Uses the generator with the extract_facts prompt when one is
        configured, otherwise a sentence heuristic.

        Args:
            text: Text to extract facts from.
            source: Source of the text.

        Returns:
            List of stored memories.
        """
        facts = await self._extract_facts(text)

        stored = []
        for fact in facts:
            memory = await self.add_memory(
                content=fact,
                memory_type=MemoryType.FACT,
                metadata={"source": source, "extracted": True},
                session_scoped=False,  # Facts persist across sessions
            )
            stored.append(memory)

        logger.info(f"Extracted and stored {len(stored)} facts from {source}")
        return stored

    async def _extract_facts(self, text: str) -> list[str]:
        if not text.strip():
            return []
        if self.generator is None:
            facts = split_sentences(text)
        else:
            prompt = self.prompts.render("extract_facts", {"conversation": text})
            response = await self.generator.generate(prompt, GenerationParams(temperature=0.1))
            facts = parse_fact_lines(response)
        return _unique(facts)[:MAX_EXTRACTED_FACTS]

    async def store_preference(
        self,
        preference: str,
        category: str = "general",
    ) -> Memory:
        """Store a user preference.

        Args:
            preference: Preference description.
            category: Preference category.

        Returns:
            Stored memory.
        """
        return await self.add_memory(
            content=preference,
            memory_type=MemoryType.PREFERENCE,
            metadata={"category": category},
            session_scoped=False,  # Preferences persist
        )

    async def summarize(self, limit: int = 50) -> str:
        """Summarize the user's memories into a short profile.

        Raises:
            GenerationError: If no generator is configured or it fails.
        """
        if self.generator is None:
            raise GenerationError("Summarization needs a generator")

        memories = await self.memory.list_memories(self.user_scope, limit=limit)
        if not memories:
            return ""
        listing = "\n".join(f"- {m.content}" for m in memories)
        prompt = self.prompts.render("summarize_memories", {"memories": listing})
        summary = await self.generator.generate(prompt)
        return summary.strip()

    async def get_stats(self) -> MemoryStats:
        """Get memory statistics.

        Counts come from COUNT aggregations grouped by memory type, run
        once per scope.

        Returns:
            Memory statistics.
        """
        stats = MemoryStats()
        by_type = QueryBuilder().aggregate(
            AggregationQuery(AggregationFunction.COUNT, "id").grouped_by("memory_type")
        ).build()

        for scope in self._all_scopes():
            result = await self.memory.query(scope, by_type)
            session_key = scope.run_id or "global"
            stats.by_session[session_key] = result.total
            stats.total += result.total
            grouped = result.aggregation.value if result.aggregation else {}
            for type_key, count in grouped.items():
                stats.by_type[type_key] = stats.by_type.get(type_key, 0) + count

        return stats

    async def clear_session_memories(self) -> int:
        """Clear all memories for current session.

        Returns:
            Number of memories deleted.
        """
        scope = self.session_scope()
        if scope is None:
            return 0

        memories = await self.memory.list_memories(scope)

        count = 0
        for memory in memories:
            if memory.id and await self.memory.delete(memory.id):
                count += 1

        logger.info(f"Cleared {count} session memories")
        return count


def create_mem0_layer(
    user_id: str,
    agent_id: str | None = None,
    generator: Generator | None = None,
    use_simple: bool = False,
) -> Mem0Layer:
    """Factory function to create Mem0 layer.

    Args:
        user_id: User ID.
        agent_id: Optional agent ID.
        generator: Optional text generator.
        use_simple: Use hash-based embeddings.

    Returns:
        Configured Mem0Layer instance.
    """
    memory = create_semantic_memory(use_simple=use_simple)
    return Mem0Layer(
        user_id=user_id,
        semantic_memory=memory,
        agent_id=agent_id,
        generator=generator,
    )
