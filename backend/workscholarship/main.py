"""FastAPI application entrypoint and HTTP controllers.

Controllers are thin: they validate the request through the schemas,
delegate to a service and wrap the service `Result` in the response
envelope `{success, message, data, error}`.

Endpoints implemented (all `/api` routes require an admin bearer token):
- POST /api/cycles
- GET /api/cycles
- GET /api/cycles/active
- GET /api/cycles/{id}
- PUT /api/cycles/{id}/configure
- POST /api/cycles/{id}/open-applications
- POST /api/cycles/{id}/close-applications
- POST /api/cycles/{id}/reopen-applications
- POST /api/cycles/{id}/activate
- POST /api/cycles/{id}/close
- PUT /api/cycles/{id}/extend-dates
- POST /api/locations, GET /api/locations, PUT /api/locations/{id}
- POST /api/locations/{id}/activate, POST /api/locations/{id}/deactivate
- GET /api/admin/dashboard-state
- GET /health
"""

import json
import logging
import time
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models, schemas, services
from .auth import require_admin
from .config import settings
from .database import create_db_and_tables, get_session
from .enums import CycleStatus
from .results import Result

app = FastAPI(title="Work Scholarship Cycle API")
logger = logging.getLogger("workscholarship.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

_CONFLICT_CODES = {"INVALID_TRANSITION", "CYCLE_CLOSED", "DUPLICATE_CYCLE"}
_HTTP_ERROR_CODES = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


def status_for(code: str) -> int:
    """HTTP status for a failed service result."""
    if "NOT_FOUND" in code:
        return 404
    if code in _CONFLICT_CODES:
        return 409
    return 400


def _envelope(status_code: int, data=None, message: Optional[str] = None, error: Optional[dict] = None,
              headers: Optional[dict] = None) -> JSONResponse:
    body = {"success": error is None, "message": message, "data": data, "error": error}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def _respond(result: Result, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    if result.is_failure:
        return _envelope(status_for(result.error.code), error=result.error.to_dict())
    return _envelope(status_code, data=result.value, message=message)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith("/api"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc) or "request", "message": err.get("msg", "invalid value")})
    return _envelope(400, error={
        "code": "VALIDATION_ERROR",
        "message": "One or more validation errors occurred.",
        "details": details,
    })


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return _envelope(exc.status_code, error={"code": code, "message": str(exc.detail), "details": []},
                     headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    return _envelope(500, error={
        "code": "INTERNAL_SERVER_ERROR",
        "message": "An unexpected error occurred.",
        "details": [],
    })


@app.get("/health")
def health():
    """Simple health check endpoint."""
    return {"status": "ok"}


# Cycles


@app.post('/api/cycles')
def create_cycle(payload: schemas.CreateCycleIn, db: Session = Depends(get_session),
                 actor: models.User = Depends(require_admin)):
    """Create a cycle in Configuration, optionally cloning a closed cycle."""
    result = services.CycleService(db).create_cycle(payload, actor)
    return _respond(result, message="Cycle created.", status_code=201)


@app.get('/api/cycles')
def list_cycles(department: Optional[str] = None, year: Optional[int] = Query(None, ge=1900, le=9999),
                status: Optional[int] = Query(None, ge=0, le=4), page: int = Query(1, ge=1),
                page_size: Optional[int] = Query(None, ge=1, le=settings.MAX_PAGE_SIZE),
                db: Session = Depends(get_session), actor: models.User = Depends(require_admin)):
    """List cycles newest first. `status` is the numeric cycle status."""
    result = services.CycleService(db).list_cycles(
        department=department,
        year=year,
        status=CycleStatus(status) if status is not None else None,
        page=page,
        page_size=page_size or settings.DEFAULT_PAGE_SIZE,
    )
    return _respond(result)


@app.get('/api/cycles/active')
def get_active_cycle(department: str = Query(..., min_length=1), db: Session = Depends(get_session),
                     actor: models.User = Depends(require_admin)):
    """Return the department's current non-closed cycle; `data` is null when there is none."""
    result = services.CycleService(db).get_active_cycle(department)
    message = None if result.value is not None else "The department has no active cycle."
    return _respond(result, message=message)


@app.get('/api/cycles/{cycle_id}')
def get_cycle(cycle_id: uuid.UUID, db: Session = Depends(get_session),
              actor: models.User = Depends(require_admin)):
    return _respond(services.CycleService(db).get_cycle(cycle_id))


@app.put('/api/cycles/{cycle_id}/configure')
def configure_cycle(cycle_id: uuid.UUID, payload: schemas.ConfigureCycleIn, db: Session = Depends(get_session),
                    actor: models.User = Depends(require_admin)):
    result = services.CycleService(db).configure_cycle(cycle_id, payload, actor)
    return _respond(result, message="Cycle configured.")


@app.post('/api/cycles/{cycle_id}/open-applications')
def open_applications(cycle_id: uuid.UUID, db: Session = Depends(get_session),
                      actor: models.User = Depends(require_admin)):
    result = services.CycleService(db).open_applications(cycle_id, actor)
    return _respond(result, message="Applications opened.")


@app.post('/api/cycles/{cycle_id}/close-applications')
def close_applications(cycle_id: uuid.UUID, db: Session = Depends(get_session),
                       actor: models.User = Depends(require_admin)):
    result = services.CycleService(db).close_applications(cycle_id, actor)
    return _respond(result, message="Applications closed.")


@app.post('/api/cycles/{cycle_id}/reopen-applications')
def reopen_applications(cycle_id: uuid.UUID, db: Session = Depends(get_session),
                        actor: models.User = Depends(require_admin)):
    result = services.CycleService(db).reopen_applications(cycle_id, actor)
    return _respond(result, message="Applications reopened.")


@app.post('/api/cycles/{cycle_id}/activate')
def activate_cycle(cycle_id: uuid.UUID, db: Session = Depends(get_session),
                   actor: models.User = Depends(require_admin)):
    result = services.CycleService(db).activate_cycle(cycle_id, actor)
    return _respond(result, message="Cycle activated.")


@app.post('/api/cycles/{cycle_id}/close')
def close_cycle(cycle_id: uuid.UUID, db: Session = Depends(get_session),
                actor: models.User = Depends(require_admin)):
    result = services.CycleService(db).close_cycle(cycle_id, actor)
    return _respond(result, message="Cycle closed.")


@app.put('/api/cycles/{cycle_id}/extend-dates')
def extend_dates(cycle_id: uuid.UUID, payload: schemas.ExtendDatesIn, db: Session = Depends(get_session),
                 actor: models.User = Depends(require_admin)):
    result = services.CycleService(db).extend_dates(cycle_id, payload, actor)
    return _respond(result, message="Cycle dates extended.")


# Locations


@app.post('/api/locations')
def create_location(payload: schemas.LocationIn, db: Session = Depends(get_session),
                    actor: models.User = Depends(require_admin)):
    result = services.LocationService(db).create(payload, actor)
    return _respond(result, message="Location created.", status_code=201)


@app.get('/api/locations')
def list_locations(department: Optional[str] = None, active_only: bool = False,
                   db: Session = Depends(get_session), actor: models.User = Depends(require_admin)):
    return _respond(services.LocationService(db).list(department, active_only))


@app.put('/api/locations/{location_id}')
def update_location(location_id: uuid.UUID, payload: schemas.LocationIn, db: Session = Depends(get_session),
                    actor: models.User = Depends(require_admin)):
    return _respond(services.LocationService(db).update(location_id, payload, actor), message="Location updated.")


@app.post('/api/locations/{location_id}/activate')
def activate_location(location_id: uuid.UUID, db: Session = Depends(get_session),
                      actor: models.User = Depends(require_admin)):
    return _respond(services.LocationService(db).set_active(location_id, True, actor))


@app.post('/api/locations/{location_id}/deactivate')
def deactivate_location(location_id: uuid.UUID, db: Session = Depends(get_session),
                        actor: models.User = Depends(require_admin)):
    return _respond(services.LocationService(db).set_active(location_id, False, actor))


# Admin


@app.get('/api/admin/dashboard-state')
def dashboard_state(department: str = Query(..., min_length=1), db: Session = Depends(get_session),
                    actor: models.User = Depends(require_admin)):
    """Setup progress of a department: counts, current cycles and pending actions."""
    return _respond(services.DashboardService(db).get_state(department))
