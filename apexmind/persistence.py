"""
PersistenceStrategy interface for relationship-memory storage.

The engine does not own a storage engine. It only needs two operations:
load every memory an agent holds at session start, and upsert a single
(agent, opponent) record whenever an encounter changes it. This module defines
that contract plus two small implementations.

Included implementations:
1. InMemoryPersistence - Dict-based storage, data lost on exit (testing, prototyping)
2. JsonPersistence - One human-readable JSON file per agent

Usage pattern:
    persistence = JsonPersistence("agent_memories")
    await persistence.initialize()

    memories = await persistence.load_memories("shark-1")
    await persistence.upsert_memory("shark-1", "player-7", memory)

    await persistence.close()
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from apexmind.schemas import OpponentMemory
from .config import Config


class PersistenceStrategy(ABC):
    """Abstract base class for memory persistence.

    All methods are async so file or database backends never block the
    decision loop. ``upsert_memory`` receives the full updated record; backends
    replace whatever they held for that (agent, opponent) pair, which keeps the
    operation idempotent.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the persistence backend.

        Raises:
            Exception: If initialization fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release any resources held by the backend."""
        pass

    @abstractmethod
    async def load_memories(self, agent_id: str) -> List[OpponentMemory]:
        """
        Load every relationship record held by an agent.

        Args:
            agent_id: Agent identifier

        Returns:
            Stored memories (empty list when the agent has none)
        """
        pass

    @abstractmethod
    async def upsert_memory(
        self, agent_id: str, opponent_id: str, memory: OpponentMemory
    ) -> None:
        """
        Insert or replace the record for one (agent, opponent) pair.

        Args:
            agent_id: Agent identifier
            opponent_id: Opponent identifier
            memory: Updated record

        Raises:
            Exception: If save fails
        """
        pass

    @abstractmethod
    async def clear(self, agent_id: Optional[str] = None) -> None:
        """Delete stored memories for one agent, or for all agents."""
        pass


class InMemoryPersistence(PersistenceStrategy):
    """In-memory persistence using Python dicts (no files).

    Storage structure:
    - memories: Dict[agent_id, Dict[opponent_id, OpponentMemory]]

    Records are deep-copied on the way in and out so callers can never mutate
    stored state by accident.
    """

    def __init__(self):
        """Initialize in-memory storage."""
        self.memories: Dict[str, Dict[str, OpponentMemory]] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        """
        No-op: data is kept after close so tests can inspect it.
        Use clear() for explicit cleanup.
        """
        pass

    async def load_memories(self, agent_id: str) -> List[OpponentMemory]:
        stored = self.memories.get(agent_id, {})
        return [memory.model_copy(deep=True) for memory in stored.values()]

    async def upsert_memory(
        self, agent_id: str, opponent_id: str, memory: OpponentMemory
    ) -> None:
        self.memories.setdefault(agent_id, {})[opponent_id] = memory.model_copy(deep=True)

    async def clear(self, agent_id: Optional[str] = None) -> None:
        if agent_id is None:
            self.memories.clear()
        else:
            self.memories.pop(agent_id, None)


class JsonPersistence(PersistenceStrategy):
    """File-based persistence using JSON for human-readable storage.

    Directory structure:
    ```
    {base_path}/
      shark-1.json      # {"player-7": {...OpponentMemory...}, ...}
      shark-2.json
    ```

    All file I/O runs in a worker thread (asyncio.to_thread). Writes for one
    agent are serialised by a per-agent lock and land through an atomic
    replace, so readers never see a half-written file. Safe for concurrent
    writers inside one process only.
    """

    def __init__(self, base_path: Path | str | None = None):
        self.base_path = Path(base_path) if base_path is not None else Config.MEMORY_DIR
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, agent_id: str) -> asyncio.Lock:
        lock = self._locks.get(agent_id)
        if lock is None:
            lock = self._locks[agent_id] = asyncio.Lock()
        return lock

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        # Nothing to clean up for JSON persistence
        return None

    def _agent_file(self, agent_id: str) -> Path:
        return self.base_path / f"{agent_id}.json"

    def _read(self, agent_id: str) -> Dict[str, dict]:
        path = self._agent_file(agent_id)
        if not path.exists():
            return {}
        return json.loads(path.read_text("utf-8"))

    async def load_memories(self, agent_id: str) -> List[OpponentMemory]:
        payload = await asyncio.to_thread(self._read, agent_id)
        return [OpponentMemory.model_validate(item) for item in payload.values()]

    async def upsert_memory(
        self, agent_id: str, opponent_id: str, memory: OpponentMemory
    ) -> None:
        record = memory.model_dump(mode="json")

        def _write() -> None:
            payload = self._read(agent_id)
            payload[opponent_id] = record
            path = self._agent_file(agent_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            staging = path.with_name(f"{path.name}.tmp")
            staging.write_text(json.dumps(payload, indent=2), "utf-8")
            os.replace(staging, path)

        async with self._lock_for(agent_id):
            await asyncio.to_thread(_write)

    async def clear(self, agent_id: Optional[str] = None) -> None:
        def _remove() -> None:
            if agent_id is not None:
                self._agent_file(agent_id).unlink(missing_ok=True)
                return
            if self.base_path.exists():
                for path in self.base_path.glob("*.json"):
                    path.unlink()

        if agent_id is None:
            await asyncio.to_thread(_remove)
            return
        async with self._lock_for(agent_id):
            await asyncio.to_thread(_remove)
