"""
Blood Donation Matching API.
Wires the routers, the database and the live query hub together.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import db, ensure_indexes, migrate_request_schema
from services import BloodMatchError, LiveQueryHub
from routers import compatibility, dashboard, donations, donors, live, requests

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes(db)
    await migrate_request_schema(db)
    app.state.live_hub = LiveQueryHub(db)
    logger.info("Blood Donation Matching API started")
    yield
    await app.state.live_hub.close()


app = FastAPI(title="Blood Donation Matching API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BloodMatchError)
async def blood_match_error_handler(request: Request, exc: BloodMatchError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code.value},
    )


app.include_router(dashboard.router)
app.include_router(compatibility.router)
app.include_router(donors.router)
app.include_router(donations.router)
app.include_router(requests.router)
app.include_router(live.router)
