# hotelguard/ledger.py
"""
Forensic ledger: current inspection records, their append-only history and
auditor signatures, kept in one database behind a lazily opened async engine.
"""
import asyncio
import logging
import random
import string
import time
import weakref
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, TypeAdapter
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from hotelguard.forensics import compute_diff, detached_copy, hash_payload
from hotelguard.models import HistoryRow, RecordRow, SignatureRow, utc_now
from hotelguard.schemas import AuditHistoryEntry, Diff, HistoryAction, SignatureData
from hotelguard.settings import settings

log = logging.getLogger("ledger")

_ID_ALPHABET = string.ascii_lowercase + string.digits


class LedgerError(Exception):
    pass


class RecordNotFound(LedgerError):
    def __init__(self, record_id: str):
        super().__init__(f"Inspection record {record_id!r} does not exist")
        self.record_id = record_id


def new_history_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"hist-{int(time.time() * 1000)}-{suffix}"


def iso_utc(value: datetime) -> str:
    # SQLite hands timestamps back without tzinfo; they were written as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _actor_id(actor: Any) -> str:
    if isinstance(actor, str):
        return actor
    if isinstance(actor, Mapping):
        return str(actor["id"])
    return str(actor.id)


_DOCUMENT = TypeAdapter(Dict[str, Any])


def _as_document(record: Any) -> Dict[str, Any]:
    """Detached JSON document for a record given as a mapping or a pydantic model."""
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json", by_alias=True)
    # tuples, enums and the like take the form the JSON column will hand back
    return _DOCUMENT.dump_python(dict(record), mode="json")


def _entry(row: HistoryRow) -> AuditHistoryEntry:
    return AuditHistoryEntry(
        id=row.id,
        record_id=row.record_id,
        timestamp=iso_utc(row.timestamp),
        user_id=row.user_id,
        action=row.action,
        diff=Diff.model_validate(row.diff) if row.diff is not None else None,
        snapshot=row.snapshot,
        snapshot_hash=row.snapshot_hash,
    )


def _signature(row: SignatureRow) -> SignatureData:
    return SignatureData(
        id=row.id,
        record_id=row.record_id,
        signature_base64=row.signature_base64,
        timestamp=row.timestamp,
        pdf_hash=row.pdf_hash,
        auditor_name=row.auditor_name,
    )


class ForensicLedger:
    """
    Records, history and signatures for inspection findings.

    The engine is created on first use. Concurrent first callers share the
    same in-flight open. Writes to the same record id are serialized so each
    diff is computed against the previously committed state.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine: Optional[AsyncEngine] = None
        self._opening: Optional[asyncio.Future] = None
        self._record_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ---------- Lifecycle ----------
    async def engine(self) -> AsyncEngine:
        """Open the store if needed and return the shared engine."""
        if self._engine is not None:
            return self._engine
        if self._opening is None:
            self._opening = asyncio.ensure_future(self._connect())
        opening = self._opening
        try:
            return await asyncio.shield(opening)
        except BaseException:
            if opening.done() and self._opening is opening and self._engine is None:
                self._opening = None
            raise

    async def _connect(self) -> AsyncEngine:
        engine = create_async_engine(self.database_url, future=True)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except Exception:
            await engine.dispose()
            raise
        self._engine = engine
        log.info("Forensic ledger opened at %s", engine.url.render_as_string(hide_password=True))
        return engine

    async def close(self) -> None:
        opening, self._opening = self._opening, None
        if opening is not None and not opening.done():
            # an open still in flight would publish its engine after we return
            await asyncio.wait([opening])
        engine, self._engine = self._engine, None
        if engine is not None:
            await engine.dispose()
            log.info("Forensic ledger closed")

    def _session(self, engine: AsyncEngine) -> AsyncSession:
        return AsyncSession(engine, expire_on_commit=False)

    def _lock_for(self, record_id: str) -> asyncio.Lock:
        lock = self._record_locks.get(record_id)
        if lock is None:
            lock = asyncio.Lock()
            self._record_locks[record_id] = lock
        return lock

    # ---------- RECORDS ----------
    async def get_all_records(self) -> List[Dict[str, Any]]:
        """Every current record, in storage order."""
        engine = await self.engine()
        async with self._session(engine) as s:
            rows = (await s.exec(select(RecordRow))).all()
            return [row.data for row in rows]

    async def get_record(self, record_id: str) -> Optional[Dict[str, Any]]:
        engine = await self.engine()
        async with self._session(engine) as s:
            row = await s.get(RecordRow, record_id)
            return row.data if row is not None else None

    async def save_record(self, record: Any, actor: Any, is_new: bool) -> AuditHistoryEntry:
        """
        Write a complete record and append one history entry in the same transaction.

        The caller decides between create and update. An update whose prior
        record is missing is written without a diff.
        """
        data = _as_document(record)
        record_id = data.get("id")
        if not record_id:
            raise LedgerError("Inspection record has no id")
        action = HistoryAction.CREATE if is_new else HistoryAction.UPDATE

        engine = await self.engine()
        async with self._lock_for(record_id):
            async with self._session(engine) as s:
                async with s.begin():
                    existing = await s.get(RecordRow, record_id, with_for_update=True)
                    diff = None
                    if not is_new and existing is not None:
                        diff = compute_diff(existing.data, data)
                    row = self._apply(s, existing, data, _actor_id(actor), action, diff)
        return _entry(row)

    async def update_status(self, record_id: str, status: Any, actor: Any) -> AuditHistoryEntry:
        """Change only the status of a record, logged as a status_change."""
        if isinstance(status, Enum):
            status = status.value
        return await self._patch(record_id, {"status": status}, actor, HistoryAction.STATUS_CHANGE)

    async def patch_record(
        self,
        record_id: str,
        fields: Mapping,
        actor: Any,
        where: Optional[Mapping] = None,
    ) -> Optional[AuditHistoryEntry]:
        """
        Set top-level fields on the stored record, logged as an update.

        The record is re-read under its lock, so concurrent edits to other
        fields survive. With ``where``, nothing is written unless the stored
        record still holds those values, and None is returned.
        """
        return await self._patch(record_id, fields, actor, HistoryAction.UPDATE, where)

    async def _patch(
        self,
        record_id: str,
        fields: Mapping,
        actor: Any,
        action: HistoryAction,
        where: Optional[Mapping] = None,
    ) -> Optional[AuditHistoryEntry]:
        fields = _DOCUMENT.dump_python(dict(fields), mode="json")
        engine = await self.engine()
        async with self._lock_for(record_id):
            async with self._session(engine) as s:
                async with s.begin():
                    existing = await s.get(RecordRow, record_id, with_for_update=True)
                    if existing is None:
                        raise RecordNotFound(record_id)
                    if where and any(existing.data.get(k) != v for k, v in where.items()):
                        return None
                    data = {**detached_copy(existing.data), **fields}
                    diff = compute_diff(existing.data, data)
                    row = self._apply(s, existing, data, _actor_id(actor), action, diff)
        return _entry(row)

    def _apply(
        self,
        s: AsyncSession,
        existing: Optional[RecordRow],
        data: Dict[str, Any],
        user_id: str,
        action: HistoryAction,
        diff: Optional[Diff],
    ) -> HistoryRow:
        if existing is None:
            s.add(RecordRow(id=data["id"], data=data))
        else:
            existing.data = data
            existing.updated_at = utc_now()
            s.add(existing)

        snapshot = detached_copy(data)
        row = HistoryRow(
            id=new_history_id(),
            record_id=data["id"],
            timestamp=utc_now(),
            user_id=user_id,
            action=action.value,
            diff=diff.to_json() if diff is not None else None,
            snapshot=snapshot,
            snapshot_hash=hash_payload(snapshot),
        )
        s.add(row)
        return row

    async def delete_record(self, record_id: str) -> bool:
        """
        Remove the current record only. History entries for it are kept and
        no entry is written for the deletion itself.
        """
        engine = await self.engine()
        async with self._lock_for(record_id):
            async with self._session(engine) as s:
                async with s.begin():
                    result = await s.execute(delete(RecordRow).where(col(RecordRow.id) == record_id))
        removed = bool(result.rowcount)
        if removed:
            log.info("Deleted inspection record %s (history retained)", record_id)
        return removed

    # ---------- HISTORY ----------
    async def get_history(self, record_id: str) -> List[AuditHistoryEntry]:
        """History entries of one record, most recent first."""
        engine = await self.engine()
        async with self._session(engine) as s:
            q = (
                select(HistoryRow)
                .where(HistoryRow.record_id == record_id)
                .order_by(col(HistoryRow.timestamp).desc(), col(HistoryRow.seq).desc())
            )
            rows = (await s.exec(q)).all()
            return [_entry(row) for row in rows]

    async def verify_history(self) -> List[str]:
        """Ids of history entries whose snapshot no longer matches its stored hash."""
        engine = await self.engine()
        async with self._session(engine) as s:
            rows = (await s.exec(select(HistoryRow).order_by(col(HistoryRow.seq)))).all()
            return [row.id for row in rows if hash_payload(row.snapshot) != row.snapshot_hash]

    # ---------- SIGNATURES ----------
    async def save_signature(self, signature: Any) -> None:
        """Insert or replace a signature, keyed by its own id."""
        if isinstance(signature, BaseModel):
            signature = signature.model_dump(by_alias=False)
        else:
            signature = SignatureData.model_validate(signature).model_dump(by_alias=False)
        engine = await self.engine()
        async with self._session(engine) as s:
            async with s.begin():
                await s.merge(SignatureRow(**signature))

    async def get_signature(self, record_id: str) -> Optional[SignatureData]:
        """First stored signature for the record, if any."""
        engine = await self.engine()
        async with self._session(engine) as s:
            q = select(SignatureRow).where(SignatureRow.record_id == record_id)
            row = (await s.exec(q)).first()
            return _signature(row) if row is not None else None

    # ---------- UTILITY ----------
    async def clear_all(self) -> None:
        """Empty records, history and signatures in a single transaction."""
        engine = await self.engine()
        async with self._session(engine) as s:
            async with s.begin():
                await s.execute(delete(RecordRow))
                await s.execute(delete(HistoryRow))
                await s.execute(delete(SignatureRow))
        log.info("Forensic ledger cleared")


ledger = ForensicLedger(settings.DATABASE_URL)
