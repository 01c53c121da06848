import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from errors import register_exception_handlers
from logging_config import generate_request_id, logger, set_request_id, set_user_id
from routers import admin_router, students_router, teachers_router
from settings import settings

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
    db = database.connect()
    if db is not None:
        try:
            database.ensure_indexes(db)
            logger.info("MongoDB indexes ensured")
        except PyMongoError as e:
            logger.warning(f"Could not ensure indexes, continuing without: {e}")
    yield
    logger.info("Shutting down")
    database.close()


app = FastAPI(title=settings.APP_NAME, version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_id(request_id)
    set_user_id("")
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request_id
    if request.url.path != "/healthz":
        logger.log_request(request.method, request.url.path, response.status_code, duration_ms)
    return response


register_exception_handlers(app)

app.include_router(students_router)
app.include_router(teachers_router)
app.include_router(admin_router)


# ----------------------- Health -----------------------
@app.get("/")
def read_root():
    index = os.path.join(settings.STATIC_DIR, "index.html")
    if os.path.isfile(index):
        return FileResponse(index)
    return {"message": "School Portal API is running"}


@app.get("/healthz")
def health(db: Optional[Database] = Depends(database.get_optional_db)):
    state = database.connection_state(db)
    body = {
        "status": "ok" if state == "connected" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "database": state,
    }
    return JSONResponse(status_code=200 if state == "connected" else 503, content=body)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
