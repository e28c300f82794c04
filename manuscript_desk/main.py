import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .database import init_db
from .errors import DeskError
from .routers import clients, confirm, custom, manuscripts, notifications, templates
from .services.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="Manuscript Desk")

# Enable CORS for the admin dashboard and the public confirm page
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Route Includes
# ----------------------
app.include_router(clients.router)
app.include_router(templates.router)
app.include_router(manuscripts.router)
app.include_router(confirm.router)
app.include_router(custom.router)
app.include_router(notifications.router)


# ----------------------
# Error mapping
# ----------------------
@app.exception_handler(DeskError)
async def _desk_error_handler(request: Request, exc: DeskError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    first = (exc.errors() or [{}])[0]
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg") or "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"error": f"{where}: {message}" if where else message},
    )


@app.exception_handler(SQLAlchemyError)
async def _db_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.on_event("startup")
async def on_startup():
    from . import models  # Required for SQLAlchemy model detection
    await init_db()
    start_scheduler()


@app.on_event("shutdown")
async def on_shutdown():
    stop_scheduler()
