"""
Progress Store - Per-user SM-2 state persistence.

Key Structure:
    progress:{user_id} -> Hash (item_id -> JSON of the item's memory state + level)

A missing field means the item was never reviewed.
"""

import json
import os
from typing import Dict, Optional

import redis
from dotenv import load_dotenv
from loguru import logger

from core.memory_model import MemoryState
from core.mastery import level_for_state

# Load environment variables from .env
load_dotenv()


def _row(state: MemoryState) -> str:
    """Stored JSON: SM-2 fields plus the derived level for reporting."""
    data = state.to_dict()
    data["level"] = level_for_state(state)
    return json.dumps(data)


def _parse_rows(user_id: str, rows: Dict[str, str]) -> Dict[int, MemoryState]:
    """Decode stored rows, skipping malformed ones."""
    progress = {}
    for item_id, raw in rows.items():
        try:
            progress[int(item_id)] = MemoryState.from_dict(json.loads(raw))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            logger.warning(f"Skipping malformed progress row {user_id}/{item_id}: {e}")
    return progress


class RedisProgressStore:
    def __init__(self, client: Optional[redis.Redis] = None):
        """Connect to Redis using environment variables (or use the given client)."""
        self.client = client or redis.Redis(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", 6379)),
            password=os.getenv("REDIS_PASSWORD", None),
            decode_responses=True  # Return strings instead of bytes
        )

    # ==================== Key Builders ====================

    def _progress_key(self, user_id: str) -> str:
        """Redis key for a user's progress hash."""
        return f"progress:{user_id}"

    # ==================== Progress ====================

    def load(self, user_id: str) -> Dict[int, MemoryState]:
        """
        Load every stored memory state for a user.

        Args:
            user_id: User to load

        Returns:
            Dict of item_id -> MemoryState (empty for a new user)
        """
        rows = self.client.hgetall(self._progress_key(user_id))
        return _parse_rows(user_id, rows)

    def save(self, user_id: str, item_id: int, state: MemoryState) -> bool:
        """
        Upsert one item's memory state.

        Args:
            user_id: Owner of the progress
            item_id: Reviewed item
            state: New memory state

        Returns:
            True on success, False if Redis rejected the write
        """
        try:
            self.client.hset(self._progress_key(user_id), str(item_id), _row(state))
        except redis.RedisError as e:
            logger.error(f"Failed to save progress {user_id}/{item_id}: {e}")
            return False
        return True

    def delete_user(self, user_id: str):
        """
        Delete all progress for a user (for testing/cleanup).

        Args:
            user_id: User to delete
        """
        self.client.delete(self._progress_key(user_id))


class InMemoryProgressStore:
    """Process-local store with the same interface (local mode, tests)."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, str]] = {}

    def load(self, user_id: str) -> Dict[int, MemoryState]:
        return _parse_rows(user_id, self.rows.get(user_id, {}))

    def save(self, user_id: str, item_id: int, state: MemoryState) -> bool:
        self.rows.setdefault(user_id, {})[str(item_id)] = _row(state)
        return True

    def delete_user(self, user_id: str):
        self.rows.pop(user_id, None)


def create_store(backend: Optional[str] = None):
    """
    Build the store named by $PROGRESS_BACKEND.

    Backends: "redis" (default), "memory", "none" (returns None: local-only mode).
    """
    backend = (backend or os.getenv("PROGRESS_BACKEND", "redis")).lower()
    if backend == "redis":
        return RedisProgressStore()
    if backend == "memory":
        return InMemoryProgressStore()
    if backend == "none":
        return None
    raise ValueError(f"Unknown progress backend: {backend}")
