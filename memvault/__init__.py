"""MemVault: in-process semantic memory for agents.

Stores text memories with embeddings per (user, agent, run) scope, with
deduplication, an embedding cache, top-k similarity search and structured
metadata filtering and aggregation.
"""

__version__ = "0.1.0"
