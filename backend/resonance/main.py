from contextlib import asynccontextmanager
import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from resonance.api import tracks, jobs
from resonance.api.limits import UploadLimitMiddleware
from resonance.config import settings
from resonance.core.errors import ResonanceError

log = structlog.get_logger()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("startup", env=settings.APP_ENV, version=VERSION)
    from resonance.db import init_db
    await init_db()
    from resonance.core.storage import init_storage
    await init_storage()
    log.info("startup_complete")
    yield
    from resonance.db import dispose_engine
    await dispose_engine()
    log.info("shutdown")


app = FastAPI(
    title="Resonance",
    description="Shared music library: ingest, duplicate detection and Radio mode",
    version=VERSION,
    lifespan=lifespan,
)

# Cap upload bodies while they stream in, before multipart parsing spools them
app.add_middleware(UploadLimitMiddleware, paths=["/api/v1/tracks/upload"])

# CORS_ORIGINS may arrive as a comma-separated string from the environment
cors_origins = settings.CORS_ORIGINS
if isinstance(cors_origins, str):
    cors_origins = [o.strip() for o in cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ResonanceError)
async def resonance_error_handler(request: Request, exc: ResonanceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request body", "errors": jsonable_encoder(exc.errors())},
    )


app.include_router(tracks.router, prefix="/api/v1/tracks", tags=["Tracks"])
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["Jobs"])


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "version": VERSION, "env": settings.APP_ENV}


@app.get("/", tags=["System"])
async def root():
    return {"name": "Resonance API", "docs": "/docs", "health": "/health"}
