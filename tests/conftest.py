"""Shared fixtures: a throwaway SQLite ledger per test and record factories."""
from __future__ import annotations

import os
import tempfile
from typing import Any

import pytest
import pytest_asyncio

# Point the process-wide ledger at a scratch database before hotelguard is imported
_scratch = tempfile.mkdtemp(prefix="hotelguard-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_scratch, 'api.db')}"
os.environ["INTEGRITY_CHECK_MINUTES"] = "0"

from hotelguard.ledger import ForensicLedger  # noqa: E402


@pytest_asyncio.fixture
async def store(tmp_path):
    ledger = ForensicLedger(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    yield ledger
    await ledger.close()


def build_record(record_id: str = "insp-1", **overrides: Any) -> dict[str, Any]:
    record = {
        "id": record_id,
        "timestamp": "2026-10-19T08:30:00.000Z",
        "inspectionDate": "19/10/2026",
        "auditorName": "Dana Reyes",
        "propertyName": "Property Alpha",
        "location": "Main Kitchen",
        "photoUrl": "data:image/jpeg;base64,AAAA",
        "riskLevel": "High",
        "category": "Hygiene",
        "faultDescription": "Grease build-up on extraction hood filters.",
        "remediationSteps": ["Degrease filters", "Log cleaning schedule", "Supervisor sign-off"],
        "status": "Open",
    }
    record.update(overrides)
    return record


@pytest.fixture
def make_record():
    return build_record
