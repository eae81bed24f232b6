# hotelguard/preferences.py
"""
Lightweight key-value settings kept beside the ledger: the current auditor,
the property and location pick lists and the assistant chat transcript.
"""
import asyncio
import copy
import logging
from typing import Any, Dict, List

from sqlalchemy import delete
from sqlmodel.ext.asyncio.session import AsyncSession

from hotelguard.ledger import ForensicLedger, RecordNotFound, ledger
from hotelguard.models import SettingRow
from hotelguard.schemas import ChatMessage
from hotelguard.settings import settings

log = logging.getLogger("preferences")

AUDITOR_KEY = "auditor"
PROPERTIES_KEY = "properties"
LOCATIONS_KEY = "locations"
CHAT_KEY = "chat_history"

DEFAULT_PROPERTIES = ["Property Alpha", "Property Beta", "Property Gamma"]
DEFAULT_LOCATIONS = [
    "Main Kitchen", "Guest Rooms", "Lobby Area", "Pool & Spa",
    "Laundry Facility", "Chemical Storage", "Cold Storage A",
    "Service Bar", "Back of House", "Staff Canteen",
]
GREETING = (
    "Greeting Officer. I am currently monitoring the facility audit stream. "
    "How can I assist with your risk analysis today?"
)


def default_chat() -> List[Dict[str, str]]:
    return [{"role": "assistant", "content": GREETING}]


def _sorted_unique(items: List[str]) -> List[str]:
    return sorted(set(items))


class Preferences:
    def __init__(self, store: ForensicLedger):
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        # serializes read-modify-write of one key
        return self._locks.setdefault(key, asyncio.Lock())

    async def _get(self, key: str, default: Any) -> Any:
        engine = await self.store.engine()
        async with AsyncSession(engine) as s:
            row = await s.get(SettingRow, key)
            if row is None or row.value is None:
                return copy.deepcopy(default)
            return row.value

    async def _set(self, key: str, value: Any) -> None:
        engine = await self.store.engine()
        async with AsyncSession(engine) as s:
            async with s.begin():
                await s.merge(SettingRow(key=key, value=value))

    # ---------- Auditor ----------
    async def get_auditor(self) -> str:
        return await self._get(AUDITOR_KEY, settings.DEFAULT_AUDITOR)

    async def set_auditor(self, name: str) -> None:
        await self._set(AUDITOR_KEY, name)

    # ---------- Properties ----------
    async def list_properties(self) -> List[str]:
        return await self._get(PROPERTIES_KEY, DEFAULT_PROPERTIES)

    async def add_property(self, name: str) -> List[str]:
        name = name.strip()
        async with self._lock(PROPERTIES_KEY):
            props = await self.list_properties()
            if name and name not in props:
                props = _sorted_unique(props + [name])
                await self._set(PROPERTIES_KEY, props)
        return props

    async def rename_property(self, old: str, new: str, actor: Any) -> int:
        """
        Rename a property in the pick list and on every record that carries it.
        Each touched record is patched as an update so the rename shows in its history.
        Returns the number of records rewritten.
        """
        new = new.strip()
        if not new:
            return 0
        async with self._lock(PROPERTIES_KEY):
            props = await self.list_properties()
            await self._set(PROPERTIES_KEY, _sorted_unique([new if p == old else p for p in props]))

        rewritten = 0
        for record in await self.store.get_all_records():
            if record.get("propertyName") != old:
                continue
            try:
                entry = await self.store.patch_record(
                    record["id"], {"propertyName": new}, actor, where={"propertyName": old}
                )
            except RecordNotFound:
                continue
            if entry is not None:
                rewritten += 1
        log.info("Renamed property %r to %r on %d records", old, new, rewritten)
        return rewritten

    async def delete_property(self, name: str) -> List[str]:
        """Drops the property from future audit options; existing records keep it."""
        async with self._lock(PROPERTIES_KEY):
            props = [p for p in await self.list_properties() if p != name]
            await self._set(PROPERTIES_KEY, props)
        return props

    # ---------- Locations ----------
    async def list_locations(self) -> List[str]:
        return await self._get(LOCATIONS_KEY, DEFAULT_LOCATIONS)

    async def add_location(self, name: str) -> List[str]:
        name = name.strip()
        async with self._lock(LOCATIONS_KEY):
            locations = await self.list_locations()
            if name and name not in locations:
                locations = _sorted_unique(locations + [name])
                await self._set(LOCATIONS_KEY, locations)
        return locations

    # ---------- Chat ----------
    async def get_chat(self) -> List[Dict[str, str]]:
        return await self._get(CHAT_KEY, default_chat())

    async def append_chat(self, *messages: Any) -> List[Dict[str, str]]:
        """Append messages (ChatMessage models or role/content mappings) to the transcript."""
        entries = [ChatMessage.model_validate(m).to_json() for m in messages]
        async with self._lock(CHAT_KEY):
            chat = await self.get_chat() + entries
            await self._set(CHAT_KEY, chat)
        return chat

    async def remember_inspection(self, record: Dict[str, Any]) -> None:
        """Mirror what the capture flow does after a save: auditor, property and location."""
        if record.get("auditorName"):
            await self.set_auditor(record["auditorName"])
        if record.get("propertyName"):
            await self.add_property(record["propertyName"])
        if record.get("location"):
            await self.add_location(record["location"])

    async def reset(self) -> None:
        engine = await self.store.engine()
        async with AsyncSession(engine) as s:
            async with s.begin():
                await s.execute(delete(SettingRow))
        log.info("Settings reset to defaults")


preferences = Preferences(ledger)
