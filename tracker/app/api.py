# tracker/app/api.py
import csv
import io
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request, Response

from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PackageClosedError,
    ServiceError,
    ValidationError,
)
from .logging_utils import get_logger
from .schemas import (
    PackageCreateIn,
    ScanIn,
    SessionConnectIn,
    SessionEndIn,
    SessionJoinIn,
    SessionStartIn,
)
from .services import Services, build_services
from .settings import Settings, get_settings

try:
    import pandas as pd
    PANDAS_AVAILABLE = True
except ImportError:
    PANDAS_AVAILABLE = False

logger = get_logger(__name__)

router = APIRouter()


def http_error(e: ServiceError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=f"{e.entity.capitalize()} not found")
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, PackageClosedError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=503, detail="write conflict, try again")
    return HTTPException(status_code=500, detail=str(e))


def services(request: Request) -> Services:
    return request.app.state.services


@router.get("/api/test")
def health():
    return {"message": "Package tracker server running"}


# ---------------------------
# Packages
# ---------------------------
@router.post("/api/package/create")
def create_package(body: PackageCreateIn, request: Request):
    try:
        pkg = services(request).lifecycle.create(
            body.customer_name, body.recipient_name, body.destination, body.details)
    except ServiceError as e:
        raise http_error(e)
    return {"message": "Package created", "package": pkg.to_json()}


@router.post("/api/package/scan")
def scan_package(body: ScanIn, request: Request):
    try:
        pkg = services(request).scanner.scan(
            body.session_key, body.barcode, body.action, body.location, body.employee, body.notes)
    except ServiceError as e:
        raise http_error(e)
    return {"message": "Package updated", "package": pkg.to_json()}


@router.get("/api/package/tracking/{tracking_number}")
def get_package_by_tracking(tracking_number: str, request: Request):
    try:
        return services(request).lifecycle.get_by_tracking_number(tracking_number).to_json()
    except ServiceError as e:
        raise http_error(e)


@router.get("/api/package/{barcode}")
def get_package(barcode: str, request: Request):
    try:
        return services(request).lifecycle.get(barcode).to_json()
    except ServiceError as e:
        raise http_error(e)


@router.get("/api/packages")
def list_packages(request: Request, limit: int = Query(200, ge=1, le=1000)):
    return [p.to_json() for p in services(request).lifecycle.list_packages(limit)]


# ---------------------------
# Scanning sessions
# ---------------------------
@router.post("/api/session/start")
def start_session(body: SessionStartIn, request: Request):
    try:
        session = services(request).pairing.start(body.employee, body.location)
    except ServiceError as e:
        raise http_error(e)
    return {"message": "Session started", "sessionKey": session.session_key,
            "session": session.to_json()}


@router.post("/api/session/join")
def join_session(body: SessionJoinIn, request: Request):
    try:
        session = services(request).pairing.join(body.session_key, body.device_name)
    except ServiceError as e:
        raise http_error(e)
    return {"message": "Joined session", "session": session.to_json()}


@router.post("/api/session/connect")
def connect_session(body: SessionConnectIn, request: Request):
    try:
        session = services(request).pairing.connect(body.session_key, body.device_name)
    except ServiceError as e:
        raise http_error(e)
    return {"message": "Device connected", "session": session.to_json()}


@router.post("/api/session/end")
def end_session(body: SessionEndIn, request: Request):
    try:
        services(request).pairing.end(body.session_key)
    except ServiceError as e:
        raise http_error(e)
    return {"message": "Session ended"}


@router.get("/api/session/{session_key}")
def get_session(session_key: str, request: Request):
    pairing = services(request).pairing
    try:
        session = pairing.get(session_key)
    except ServiceError as e:
        raise http_error(e)
    return {"session": session.to_json(), "scans": [s.to_json() for s in pairing.history(session_key)]}


# ---------------------------
# Reports: one row per checkpoint
# ---------------------------
REPORT_FIELDS = [
    "packageId", "trackingNumber", "recipientName", "destination", "order",
    "locationName", "scannedBy", "internalStatus", "publicStatus", "timestamp", "notes",
]


@router.get("/api/reports/export")
def export_report(request: Request, fmt: str = Query("csv", pattern="^(csv|xlsx)$"),
                  limit: int = Query(1000, ge=1)):
    rows = []
    for pkg in services(request).lifecycle.list_packages(limit):
        data = pkg.to_json()
        for cp in data["checkpoints"]:
            row = {k: data[k] for k in ("packageId", "trackingNumber", "recipientName", "destination")}
            row.update({k: cp.get(k) for k in REPORT_FIELDS[4:]})
            rows.append(row)

    if fmt == "csv" or not PANDAS_AVAILABLE:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=REPORT_FIELDS)
        writer.writeheader()
        writer.writerows(rows)
        return Response(content=buffer.getvalue(), media_type="text/csv",
                        headers={"Content-Disposition": 'attachment; filename="package_report.csv"'})

    df = pd.DataFrame(rows, columns=REPORT_FIELDS)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="checkpoints")
    buffer.seek(0)
    return Response(content=buffer.read(),
                    media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                    headers={"Content-Disposition": 'attachment; filename="package_report.xlsx"'})


def create_app(settings: Optional[Settings] = None, store=None) -> FastAPI:
    """Build the API. ``store`` overrides the backend chosen by settings."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = build_services(settings, store=store)
        logger.info("package tracker ready (strict_terminal=%s)", settings.strict_terminal)
        try:
            yield
        finally:
            app.state.services.close()
            logger.info("package tracker stopped")

    app = FastAPI(title="Package Tracker API", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
