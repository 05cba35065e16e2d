import datetime
import io
import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_204_NO_CONTENT,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from .database import get_db
from .errors import (
    AlreadyExited,
    NotFound,
    RegisterError,
    StorageUnavailable,
    ValidationError,
)
from .exports import entries_pdf, entries_to_xlsx, qr_batch_pdf, qr_png
from .importer import import_entries, read_rows
from .lifecycle import EntryLifecycle, ScanHandler, ScanOutcome
from .models import EntryStatus
from .storage import EntryFilter, EntryStore, list_entries

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Visitor Register Backend",
    description="API for visitor check-in/check-out: entries, QR scan-to-exit, spreadsheet import and PDF/XLSX export.",
    version="1.0.0",
    openapi_tags=[
        {"name": "entries", "description": "Visitor entry records"},
        {"name": "scan", "description": "QR code / badge scan for exit"},
        {"name": "import", "description": "Bulk import from spreadsheets"},
        {"name": "export", "description": "PDF, XLSX and QR code exports"},
        {"name": "admin", "description": "Health check"},
    ],
)

frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_url],  # Restrict to frontend origin for security
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------- Pydantic Schemas --------------------

class EntryCreatePayload(BaseModel):
    """Entry fields supplied by the front desk. Status is always forced to `entered`."""
    name: str = Field(..., examples=["Alice Smith"])
    address: str = Field(..., examples=["123 Rd"])
    phone_number: Optional[str] = None
    whom_to_meet: Optional[str] = None
    purpose: Optional[str] = None
    badge_tag: Optional[str] = Field(None, description="Optional badge tag usable instead of the QR code")
    status: Optional[str] = Field(None, description="Ignored; new entries are always 'entered'")


class EntryOut(BaseModel):
    id: str
    number: str
    name: str
    address: str
    phone_number: Optional[str]
    whom_to_meet: Optional[str]
    purpose: Optional[str]
    badge_tag: Optional[str]
    status: EntryStatus
    entry_time: datetime.datetime
    exit_time: Optional[datetime.datetime]
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class StatusUpdatePayload(BaseModel):
    status: EntryStatus
    exit_time: Optional[datetime.datetime] = None


class ScanPayload(BaseModel):
    code: str = Field(..., description="Decoded QR payload (entry id) or badge tag")


class ScanResultOut(BaseModel):
    outcome: ScanOutcome
    success: bool
    message: str
    entry: Optional[EntryOut] = None

    model_config = ConfigDict(from_attributes=True)


class ImportResultOut(BaseModel):
    imported: int
    entries: List[EntryOut]

# -------------------- Error Handlers --------------------

def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    messages = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc)
        fields.append(field)
        messages.append({"field": field, "message": err.get("msg")})
    return _error(HTTP_400_BAD_REQUEST, "Invalid data", fields=fields, details=messages)


@app.exception_handler(ValidationError)
def validation_handler(request: Request, exc: ValidationError):
    return _error(HTTP_400_BAD_REQUEST, exc.message, fields=exc.fields)


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound):
    return _error(HTTP_404_NOT_FOUND, exc.message)


@app.exception_handler(AlreadyExited)
def already_exited_handler(request: Request, exc: AlreadyExited):
    entry = jsonable_encoder(EntryOut.model_validate(exc.entry))
    return _error(HTTP_400_BAD_REQUEST, exc.message, entry=entry)


@app.exception_handler(StorageUnavailable)
def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.error(f"{request.method} {request.url.path} failed: storage unavailable")
    return _error(HTTP_503_SERVICE_UNAVAILABLE, exc.message)


@app.exception_handler(RegisterError)
def register_error_handler(request: Request, exc: RegisterError):
    # InvalidTransition, NoValidRows, UnsupportedFile, NothingToExport
    return _error(HTTP_400_BAD_REQUEST, exc.message)

# -------------------- Dependencies --------------------

def get_store(db: Session = Depends(get_db)) -> EntryStore:
    return EntryStore(db)


def get_lifecycle(store: EntryStore = Depends(get_store)) -> EntryLifecycle:
    return EntryLifecycle(store)

# -------------------- Health Check --------------------

# PUBLIC_INTERFACE
@app.get("/", tags=["admin"])
def health_check():
    """
    Health check endpoint.
    ---
    Returns {"message": "Healthy"} if API is up.
    """
    return {"message": "Healthy"}

# -------------------- Entries --------------------

# PUBLIC_INTERFACE
@app.get("/api/entries", response_model=List[EntryOut], tags=["entries"])
def get_entries(
    entry_filter: EntryFilter = Query(EntryFilter.ALL, alias="filter"),
    store: EntryStore = Depends(get_store),
):
    """
    List entries, newest first. `filter` is one of all, entered, exited.
    """
    return store.list(entry_filter)


# PUBLIC_INTERFACE
@app.get("/api/entries/{entry_id}", response_model=EntryOut, tags=["entries"])
def get_entry(entry_id: str, store: EntryStore = Depends(get_store)):
    return store.get_by_id(entry_id)


# PUBLIC_INTERFACE
@app.post("/api/entries", response_model=EntryOut, status_code=HTTP_201_CREATED, tags=["entries"])
def create_entry(payload: EntryCreatePayload, store: EntryStore = Depends(get_store)):
    """
    Check a visitor in. The id, visit number and times are assigned by the server.
    """
    return store.create(payload)


# PUBLIC_INTERFACE
@app.post("/api/entries/bulk", response_model=List[EntryOut], status_code=HTTP_201_CREATED, tags=["entries"])
def create_entries_bulk(payload: List[EntryCreatePayload], store: EntryStore = Depends(get_store)):
    """
    Create many entries in one batch; either all are stored or none.
    """
    return store.create_many(payload)


# PUBLIC_INTERFACE
@app.patch("/api/entries/{entry_id}/exit", response_model=EntryOut, tags=["entries"])
def exit_entry(entry_id: str, lifecycle: EntryLifecycle = Depends(get_lifecycle)):
    """
    Mark a visitor as exited.
    Returns 400 with the entry when it was already exited, 404 for unknown ids.
    """
    return lifecycle.mark_exited(entry_id)


# PUBLIC_INTERFACE
@app.patch("/api/entries/{entry_id}/status", response_model=EntryOut, tags=["entries"])
def update_entry_status(
    entry_id: str,
    payload: StatusUpdatePayload,
    lifecycle: EntryLifecycle = Depends(get_lifecycle),
):
    """
    Generic status update. Only `exited` is accepted, optionally with an explicit exit time.
    """
    return lifecycle.change_status(entry_id, payload.status, payload.exit_time)


# PUBLIC_INTERFACE
@app.delete("/api/entries/{entry_id}", status_code=HTTP_204_NO_CONTENT, tags=["entries"])
def delete_entry(entry_id: str, store: EntryStore = Depends(get_store)):
    if not store.delete(entry_id):
        raise NotFound()
    return Response(status_code=HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@app.get("/api/entries/{entry_id}/qr.png", tags=["export"])
def get_entry_qr(entry_id: str, store: EntryStore = Depends(get_store)):
    """
    QR code image whose payload is the entry id.
    """
    entry = store.get_by_id(entry_id)
    return Response(content=qr_png(entry.id), media_type="image/png")

# -------------------- Scan --------------------

# PUBLIC_INTERFACE
@app.post("/api/entries/scan", response_model=ScanResultOut, tags=["scan"])
def scan_entry(payload: ScanPayload, lifecycle: EntryLifecycle = Depends(get_lifecycle)):
    """
    Handle decoded scanner text (QR payload or badge tag).
    Domain outcomes (exited, already_exited, not_found) are reported in the body.
    """
    result = ScanHandler(lifecycle).on_decoded(payload.code)
    return ScanResultOut.model_validate(result)

# -------------------- Import --------------------

# PUBLIC_INTERFACE
@app.post("/api/import", response_model=ImportResultOut, status_code=HTTP_201_CREATED, tags=["import"])
def import_file(file: UploadFile = File(...), store: EntryStore = Depends(get_store)):
    """
    Import visitors from an .xlsx or .csv file.
    Columns: Nama/Name, Alamat/Address, HP/Phone, Ketemu/Meet, Tujuan/Purpose.
    Rows without a name or address are skipped.
    """
    rows = read_rows(file.filename, file.file.read())
    entries = import_entries(store, rows)
    return ImportResultOut(
        imported=len(entries),
        entries=[EntryOut.model_validate(e) for e in entries],
    )

# -------------------- Export --------------------

def _attachment(data: bytes, media_type: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(data),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# PUBLIC_INTERFACE
@app.get("/api/export/entries.xlsx", tags=["export"])
def export_entries_xlsx(
    entry_filter: EntryFilter = Query(EntryFilter.ALL, alias="filter"),
    db: Session = Depends(get_db),
):
    data = entries_to_xlsx(list_entries(db, entry_filter))
    return _attachment(
        data,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        f"Visitors_{datetime.date.today().isoformat()}.xlsx",
    )


# PUBLIC_INTERFACE
@app.get("/api/export/entries.pdf", tags=["export"])
def export_entries_pdf(
    entry_filter: EntryFilter = Query(EntryFilter.ALL, alias="filter"),
    db: Session = Depends(get_db),
):
    """
    Visitor list as PDF, exited visitors first.
    """
    data = entries_pdf(list_entries(db, entry_filter))
    return _attachment(data, "application/pdf", f"Visitor_List_{datetime.date.today().isoformat()}.pdf")


# PUBLIC_INTERFACE
@app.get("/api/export/qr-codes.pdf", tags=["export"])
def export_qr_codes_pdf(
    entry_filter: EntryFilter = Query(EntryFilter.ALL, alias="filter"),
    db: Session = Depends(get_db),
):
    """
    Printable QR code sheet for the selected entries. 400 when there is nothing to print.
    """
    data = qr_batch_pdf(list_entries(db, entry_filter))
    return _attachment(data, "application/pdf", f"QR_Codes_Batch_{datetime.date.today().isoformat()}.pdf")
