"""
Contract record store.

Each record lives in a Redis hash keyed by contract id. Every update is applied
in a single MULTI/EXEC transaction so readers never observe a partial
transition. Records currently in "analyzing" are also indexed in a sorted set
scored by start time, which the stale-analysis sweep reads.

Updates are last-write-wins per record; there is no version check.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import redis
from pydantic import BaseModel
from redis.exceptions import RedisError

from ..models.schemas import ContractRecord, ContractStatus

logger = logging.getLogger(__name__)


class ContractStore(ABC):
    """Read/update access to contract records by id."""

    @abstractmethod
    async def get(self, contract_id: str) -> Optional[ContractRecord]:
        """Load a record, or None if it does not exist."""

    @abstractmethod
    async def create(self, record: ContractRecord) -> ContractRecord:
        """Persist a new record (used by the upload flow and tests)."""

    @abstractmethod
    async def update(self, contract_id: str, fields: Dict[str, Any]) -> None:
        """
        Atomically apply field changes to a record.

        A value of None clears the field.
        """

    @abstractmethod
    async def list_stale_analyzing(self, started_before: datetime) -> List[str]:
        """Return ids of records that entered "analyzing" before the cutoff."""


def _serialize_value(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class RedisContractStore(ContractStore):
    """Redis-backed contract store."""

    KEY_PREFIX = "contract:"
    ANALYZING_INDEX_KEY = "contracts:analyzing"

    # Fields persisted as JSON documents inside the hash
    JSON_FIELDS = ("storage", "analysis")

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        redis_client: Optional[redis.Redis] = None
    ):
        """
        Initialize the store.

        Args:
            redis_url: Redis connection URL
            redis_client: Optional existing client (used in tests)

        Raises:
            RedisError: If connection to Redis fails
        """
        if redis_client is not None:
            self.redis_client = redis_client
            return

        try:
            self.redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            self.redis_client.ping()
            logger.info(f"RedisContractStore connected to {redis_url}")
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    def _key(self, contract_id: str) -> str:
        return f"{self.KEY_PREFIX}{contract_id}"

    def _to_record(self, raw: Dict[str, str]) -> ContractRecord:
        data: Dict[str, Any] = dict(raw)
        for field in self.JSON_FIELDS:
            if data.get(field):
                data[field] = json.loads(data[field])
        return ContractRecord.model_validate(data)

    async def get(self, contract_id: str) -> Optional[ContractRecord]:
        raw = self.redis_client.hgetall(self._key(contract_id))
        if not raw:
            return None
        return self._to_record(raw)

    async def create(self, record: ContractRecord) -> ContractRecord:
        fields = record.model_dump()
        fields["storage"] = record.storage
        fields["analysis"] = record.analysis
        await self.update(record.id, fields)
        logger.info(f"Created contract record {record.id}")
        return record

    async def update(self, contract_id: str, fields: Dict[str, Any]) -> None:
        key = self._key(contract_id)
        to_set = {
            name: _serialize_value(value)
            for name, value in fields.items()
            if value is not None
        }
        to_clear = [name for name, value in fields.items() if value is None]

        pipe = self.redis_client.pipeline(transaction=True)
        if to_set:
            pipe.hset(key, mapping=to_set)
        if to_clear:
            pipe.hdel(key, *to_clear)

        status = fields.get("status")
        if status == ContractStatus.ANALYZING:
            started_at = fields.get("analysis_started_at") or datetime.now()
            pipe.zadd(self.ANALYZING_INDEX_KEY, {contract_id: started_at.timestamp()})
        elif status is not None:
            pipe.zrem(self.ANALYZING_INDEX_KEY, contract_id)

        pipe.execute()

    async def list_stale_analyzing(self, started_before: datetime) -> List[str]:
        return list(
            self.redis_client.zrangebyscore(
                self.ANALYZING_INDEX_KEY,
                "-inf",
                started_before.timestamp(),
            )
        )

    def health_check(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except RedisError:
            return False


class InMemoryContractStore(ContractStore):
    """
    Process-local contract store for tests and local development.

    Records are replaced whole on every update and copied on read.
    """

    def __init__(self):
        self._records: Dict[str, ContractRecord] = {}

    async def get(self, contract_id: str) -> Optional[ContractRecord]:
        record = self._records.get(contract_id)
        return record.model_copy(deep=True) if record else None

    async def create(self, record: ContractRecord) -> ContractRecord:
        self._records[record.id] = record.model_copy(deep=True)
        return record

    async def update(self, contract_id: str, fields: Dict[str, Any]) -> None:
        current = self._records.get(contract_id)
        if current is None:
            raise KeyError(contract_id)
        self._records[contract_id] = current.model_copy(update=fields, deep=True)

    async def list_stale_analyzing(self, started_before: datetime) -> List[str]:
        return [
            record.id
            for record in self._records.values()
            if record.status == ContractStatus.ANALYZING
            and record.analysis_started_at is not None
            and record.analysis_started_at < started_before
        ]

    def health_check(self) -> bool:
        return True


def build_contract_store(backend: str, redis_url: str) -> ContractStore:
    """
    Create the configured contract store.

    Args:
        backend: "redis" or "memory"
        redis_url: Redis connection URL for the redis backend

    Raises:
        ValueError: If the backend name is unknown
        RedisError: If the redis backend cannot connect
    """
    if backend == "redis":
        return RedisContractStore(redis_url=redis_url)
    if backend == "memory":
        logger.warning("Using in-memory contract store; records are lost on restart")
        return InMemoryContractStore()
    raise ValueError(f"Unknown contract store backend: {backend}")
