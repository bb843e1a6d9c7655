import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from ayurmed.config import STATIC_DIR
from ayurmed.database import close_db, init_db
from ayurmed.exceptions import AyurMedError, ayurmed_exception_handler
from ayurmed.routers import admin, auth, patients, prescriptions, risk

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting AyurMed...")
    await init_db()
    logger.info("Database initialized")
    yield
    await close_db()
    logger.info("AyurMed shut down")


app = FastAPI(
    title="AyurMed",
    description="Hospital management with AI-assisted prescription digitization",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(AyurMedError, ayurmed_exception_handler)

# Include routers
app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(patients.router)
app.include_router(prescriptions.router)
app.include_router(risk.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# Serve the front-end bundle
_static_root = Path(STATIC_DIR).resolve()
if (_static_root / "assets").is_dir():
    app.mount("/assets", StaticFiles(directory=_static_root / "assets"), name="assets")


@app.get("/{full_path:path}", include_in_schema=False)
async def serve_frontend(full_path: str):
    """Serve a bundle file if it exists, otherwise the single-page entry document."""
    if full_path == "api" or full_path.startswith("api/"):
        raise HTTPException(status_code=404, detail="Not found")

    candidate = (_static_root / full_path).resolve()
    if full_path and candidate.is_file() and candidate.is_relative_to(_static_root):
        return FileResponse(candidate)

    index = _static_root / "index.html"
    if not index.is_file():
        logger.error("Front-end bundle not found at %s", _static_root)
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(index)
