from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os

from .routers import health, requests, tickets, comments
from .models.user import Base
from .db import engine
from .core.errors import ConflictError, NotFoundError, ServiceError, ValidationError
from .core.settings import settings
from .services.mail_service import start_mail_worker_thread

import portal.models.request  # noqa: F401
import portal.models.ticket  # noqa: F401
import portal.models.comment  # noqa: F401
import portal.models.event  # noqa: F401
import portal.models.mail_log  # noqa: F401


app = FastAPI(title="Operations Portal API")

ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
}


@app.exception_handler(ServiceError)
def handle_service_error(request: Request, exc: ServiceError):
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    body = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.details:
        body["errors"] = exc.details
    return JSONResponse(status_code=status_code, content=body)


@app.on_event("startup")
def on_startup():
    if settings.AUTO_DB_BOOTSTRAP:
        # Create tables in dev if missing.
        Base.metadata.create_all(bind=engine)

    start_mail_worker_thread()


app.include_router(health.router)
app.include_router(requests.router)
app.include_router(tickets.router)
app.include_router(comments.router)

# CORS: allow local dev origins by default.
raw_origins = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
)
allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
