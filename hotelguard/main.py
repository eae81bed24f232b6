# hotelguard/main.py
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .settings import settings
from .ledger import ledger, RecordNotFound
from .preferences import preferences
from .assistant import assistant, display_date
from .stats import compute_stats, category_breakdown
from .schemas import (
    ChatMessage,
    InspectionDraft,
    InspectionRecord,
    SignatureData,
    SignatureIn,
    StatusUpdate,
    PhotoIn,
    QueryIn,
    TrainingIn,
    NameIn,
)
from .tasks import scheduler

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger("api")

app = FastAPI(title="HotelGuard Forensic Ledger")


@app.on_event("startup")
async def startup():
    # open the ledger eagerly and start the integrity check
    await ledger.engine()
    if settings.INTEGRITY_CHECK_MINUTES > 0:
        try:
            scheduler.start()
        except Exception:
            log.exception("Scheduler did not start")


@app.on_event("shutdown")
async def shutdown():
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await ledger.close()


@app.exception_handler(SQLAlchemyError)
async def storage_error(request: Request, exc: SQLAlchemyError):
    log.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": f"Storage unavailable: {exc}"})


@app.exception_handler(RecordNotFound)
async def record_not_found(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def _by_newest(records: List[dict]) -> List[dict]:
    return sorted(records, key=lambda r: r.get("timestamp") or "", reverse=True)


async def _require_record(record_id: str) -> dict:
    record = await ledger.get_record(record_id)
    if record is None:
        raise RecordNotFound(record_id)
    return record


@app.get("/health")
async def health():
    return {"status": "ok"}


# ---------- RECORDS ----------
@app.get("/records")
async def list_records():
    return _by_newest(await ledger.get_all_records())


@app.get("/records/{record_id}")
async def get_record(record_id: str):
    return await _require_record(record_id)


@app.post("/records", status_code=201)
async def create_record(draft: InspectionDraft, x_auditor_id: str = Header(default="anonymous")):
    """
    Assign the creation markers the capture flow leaves empty, store the record
    and remember its auditor, property and location for the next inspection.
    """
    now = datetime.now(timezone.utc)
    record = InspectionRecord.model_validate({
        **draft.to_json(),
        "id": draft.id or f"insp-{int(time.time() * 1000)}",
        "timestamp": draft.timestamp or now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "inspectionDate": draft.inspection_date or display_date(now.date()),
    }).to_json()
    entry = await ledger.save_record(record, x_auditor_id, is_new=True)
    await preferences.remember_inspection(record)
    return {"record": record, "history": entry.to_json()}


@app.put("/records/{record_id}")
async def update_record(record_id: str, record: InspectionRecord, x_auditor_id: str = Header(default="anonymous")):
    if record.id != record_id:
        raise HTTPException(status_code=400, detail="Record id does not match the path")
    data = record.to_json()
    entry = await ledger.save_record(data, x_auditor_id, is_new=False)
    await preferences.remember_inspection(data)
    return {"record": data, "history": entry.to_json()}


@app.patch("/records/{record_id}/status")
async def update_status(record_id: str, body: StatusUpdate, x_auditor_id: str = Header(default="anonymous")):
    entry = await ledger.update_status(record_id, body.status, x_auditor_id)
    return entry.to_json()


@app.delete("/records/{record_id}", status_code=204)
async def delete_record(record_id: str):
    if not await ledger.delete_record(record_id):
        raise RecordNotFound(record_id)


@app.get("/records/{record_id}/history")
async def record_history(record_id: str):
    return [entry.to_json() for entry in await ledger.get_history(record_id)]


# ---------- SIGNATURES ----------
@app.post("/records/{record_id}/signature", status_code=201)
async def sign_record(record_id: str, body: SignatureIn):
    await _require_record(record_id)
    signature = SignatureData(
        id=body.id or f"sig-{int(time.time() * 1000)}",
        record_id=record_id,
        signature_base64=body.signature_base64,
        timestamp=body.timestamp or datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        pdf_hash=body.pdf_hash,
        auditor_name=body.auditor_name,
    )
    await ledger.save_signature(signature)
    return signature.to_json()


@app.get("/records/{record_id}/signature")
async def get_signature(record_id: str):
    signature = await ledger.get_signature(record_id)
    if signature is None:
        raise HTTPException(status_code=404, detail="No signature for this record")
    return signature.to_json()


@app.get("/records/{record_id}/report")
async def record_report(record_id: str):
    """Everything the export flow needs to lay out a signed audit report."""
    record = await _require_record(record_id)
    signature = await ledger.get_signature(record_id)
    history = await ledger.get_history(record_id)
    return {
        "record": record,
        "signature": signature.to_json() if signature else None,
        "integrityHash": (signature.pdf_hash if signature else None) or "PENDING_VALIDATION",
        "history": [entry.to_json() for entry in history],
    }


# ---------- DASHBOARD ----------
@app.get("/stats")
async def stats():
    records = await ledger.get_all_records()
    return {
        "stats": compute_stats(records).to_json(),
        "categories": [c.to_json() for c in category_breakdown(records)],
    }


# ---------- ASSISTANT ----------
@app.post("/analyze-photo")
def analyze_photo(body: PhotoIn):
    return assistant.analyze_photo(body.base64_image).to_json()


@app.post("/assistant/query")
async def query_assistant(body: QueryIn):
    records = _by_newest(await ledger.get_all_records())
    answer = assistant.query(body.question, records)
    chat = await preferences.append_chat(
        ChatMessage(role="user", content=body.question),
        ChatMessage(role="assistant", content=answer),
    )
    return {"answer": answer, "chat": chat}


@app.post("/training")
async def training(body: TrainingIn):
    records = _by_newest(await ledger.get_all_records())
    return [m.to_json() for m in assistant.training_modules(records, body.property_name)]


# ---------- SETTINGS ----------
@app.get("/settings/auditor")
async def get_auditor():
    return {"name": await preferences.get_auditor()}


@app.put("/settings/auditor")
async def set_auditor(body: NameIn):
    await preferences.set_auditor(body.name)
    return {"name": body.name}


@app.get("/settings/properties")
async def list_properties():
    return await preferences.list_properties()


@app.post("/settings/properties")
async def add_property(body: NameIn):
    return await preferences.add_property(body.name)


@app.put("/settings/properties/{name}")
async def rename_property(name: str, body: NameIn, x_auditor_id: str = Header(default="anonymous")):
    rewritten = await preferences.rename_property(name, body.name, x_auditor_id)
    return {"properties": await preferences.list_properties(), "recordsUpdated": rewritten}


@app.delete("/settings/properties/{name}")
async def delete_property(name: str):
    return await preferences.delete_property(name)


@app.get("/settings/locations")
async def list_locations():
    return await preferences.list_locations()


@app.post("/settings/locations")
async def add_location(body: NameIn):
    return await preferences.add_location(body.name)


@app.get("/settings/chat")
async def chat_history():
    return await preferences.get_chat()


@app.post("/reset")
async def reset(x_auditor_id: Optional[str] = Header(default=None)):
    """Wipe the ledger and restore default settings."""
    await ledger.clear_all()
    await preferences.reset()
    log.warning("System reset requested by %s", x_auditor_id or "anonymous")
    return {"status": "cleared"}


def serve():
    import uvicorn

    uvicorn.run("hotelguard.main:app", host=settings.HOST, port=settings.PORT)
