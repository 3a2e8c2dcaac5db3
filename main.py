import logging
import os

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from config import DEFAULT_SECRET_KEY, Config
from database import ensure_indexes, get_db, get_documents
from security import seed_admin
from uploads import BANNER_DIR
from utils import serialize_doc
from routes import admin, auth, comments, faculty, results, students, subjects

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="School Portal API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(os.path.join(Config.UPLOAD_FOLDER, BANNER_DIR), exist_ok=True)
app.mount("/uploads", StaticFiles(directory=Config.UPLOAD_FOLDER), name="uploads")

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(faculty.router, prefix="/api/faculty", tags=["faculty"])
app.include_router(students.router, prefix="/api/students", tags=["students"])
app.include_router(subjects.router, prefix="/api/subjects", tags=["subjects"])
app.include_router(results.router, prefix="/api/results", tags=["results"])
app.include_router(comments.router, prefix="/api/comments", tags=["comments"])


# ----------------------
# Error responses
# ----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(status_code=400, content={"message": "; ".join(problems) or "Invalid request"})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_error(request: Request, exc: DuplicateKeyError):
    logger.info(f"Duplicate key on {request.url.path}")
    return JSONResponse(status_code=409, content={"message": "A record with these details already exists."})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# ----------------------
# Startup: indexes and admin account
# ----------------------
@app.on_event("startup")
def startup():
    if Config.SECRET_KEY == DEFAULT_SECRET_KEY:
        logger.warning("SECRET_KEY is not set; using the development default")
    # If DB is not configured, skip so the app can start
    if database.db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; database features unavailable")
        return
    try:
        ensure_indexes(database.db)
        seed_admin(database.db)
    except Exception:
        logger.exception("Database initialisation failed")


# ----------------------
# Basic routes
# ----------------------
@app.get("/")
def root():
    return {"message": "School Portal API running"}


def database_report(handle) -> dict:
    """Ping the server and list collections; never raises."""
    if handle is None:
        return {"configured": False, "connected": False, "collections": []}
    try:
        handle.command("ping")
        return {"configured": True, "connected": True, "collections": sorted(handle.list_collection_names())}
    except PyMongoError as e:
        logger.warning(f"Database ping failed: {e}")
        return {"configured": True, "connected": False, "collections": [], "error": type(e).__name__}


@app.get("/test")
def health_report():
    return {"service": app.title, "database": database_report(database.db)}


@app.get("/api/banners", tags=["banners"])
def public_banners(db=Depends(get_db)):
    return [serialize_doc(b) for b in get_documents(db, "banner")]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
