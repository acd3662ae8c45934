"""
IdempotencyService -- at-most-once execution of keyed commands.

Responsibility:
    Looks up and records the stored result of a command executed under a
    (tenant_id, idempotency_key) pair.

Architecture position:
    Services. Depends on the IdempotencyRepository port, a Clock and an
    IdGenerator.

Invariants enforced:
    - A record older than its TTL is purged on lookup and treated as absent.
    - The stored result carries the request fingerprint, so a replay with a
      different payload under the same key is a DuplicateEntryError and
      never a silent replay.
    - The repository rejects a second insert for the same key; that
      rejection surfaces as IdempotencyKeyConflictError for the caller to
      resolve.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from ledger_config import get_active_settings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.ids import IdGenerator, UUID4Generator
from ledger_kernel.exceptions import DuplicateEntryError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import IdempotencyRecord, IdempotencyRepository

logger = get_logger("services.idempotency")

REQUEST_HASH_FIELD = "request_hash"


class IdempotencyService:
    def __init__(
        self,
        repository: IdempotencyRepository,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        ttl_hours: int | None = None,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._ids = id_generator or UUID4Generator()
        if ttl_hours is None:
            ttl_hours = get_active_settings().idempotency_ttl_hours
        self._ttl = timedelta(hours=ttl_hours)

    def find_existing(self, tenant_id: str, idempotency_key: str) -> IdempotencyRecord | None:
        """Live record for the key, or None. Expired records are deleted."""
        record = self._repository.find_by_key(tenant_id, idempotency_key)
        if record is None:
            return None
        if record.is_expired(self._clock.now()):
            logger.info(
                "idempotency_record_expired",
                extra={"tenant_id": tenant_id, "idempotency_key": idempotency_key},
            )
            self._repository.delete(tenant_id, idempotency_key)
            return None
        return record

    def replay(
        self, tenant_id: str, idempotency_key: str, request_hash: str | None = None
    ) -> dict[str, Any] | None:
        """
        Stored result for the key, or None if nothing live is stored.

        Raises:
            DuplicateEntryError: the stored request fingerprint differs from
                ``request_hash``.
        """
        record = self.find_existing(tenant_id, idempotency_key)
        if record is None:
            return None
        stored_hash = record.result.get(REQUEST_HASH_FIELD)
        if request_hash is not None and stored_hash is not None and stored_hash != request_hash:
            logger.warning(
                "idempotency_key_reused",
                extra={"tenant_id": tenant_id, "idempotency_key": idempotency_key},
            )
            raise DuplicateEntryError(idempotency_key, tenant_id)
        result = {k: v for k, v in record.result.items() if k != REQUEST_HASH_FIELD}
        logger.info(
            "idempotent_replay",
            extra={
                "tenant_id": tenant_id,
                "idempotency_key": idempotency_key,
                "command_type": record.command_type,
            },
        )
        return result

    def record_execution(
        self,
        tenant_id: str,
        idempotency_key: str,
        command_type: str,
        result: dict[str, Any],
        request_hash: str | None = None,
    ) -> IdempotencyRecord:
        now = self._clock.now()
        stored = dict(result)
        if request_hash is not None:
            stored[REQUEST_HASH_FIELD] = request_hash
        record = IdempotencyRecord(
            id=self._ids.new_id(),
            tenant_id=tenant_id,
            idempotency_key=idempotency_key,
            command_type=command_type,
            result=stored,
            executed_at=now,
            expires_at=now + self._ttl,
        )
        self._repository.save(record)
        logger.debug(
            "idempotency_recorded",
            extra={"tenant_id": tenant_id, "idempotency_key": idempotency_key},
        )
        return record
