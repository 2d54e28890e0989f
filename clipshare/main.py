from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, File, Form, Header, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
import hmac
import time
import logging
from typing import Optional
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

from . import crud, models, schemas
from .config import Settings, get_settings
from .database import create_database_engine, create_session_factory, session_scope
from .exceptions import ClipsException, InvalidInput, RangeNotSatisfiable
from .service import ClipService
from .storage import BlobStore

logger = logging.getLogger(__name__)

# Prometheus Metrics
HTTP_REQUESTS = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'Request duration', ['method', 'endpoint'])
CLIPS_UPLOADED = Counter('clips_uploaded_total', 'Total clips uploaded')
CLIP_VIEWS = Counter('clip_views_total', 'Total clip views recorded')
CLIPS_DELETED = Counter('clips_deleted_total', 'Total clips deleted')
ACTIVE_CLIPS = Gauge('clips_total', 'Total clips in database')
TOTAL_VIEWS = Gauge('clips_total_views', 'Total views across all clips')
DB_OPERATIONS = Counter('database_operations_total', 'Database operations', ['operation'])


def envelope(success: bool, message: Optional[str] = None, **payload) -> dict:
    body = {"success": success}
    if message is not None:
        body["message"] = message
    body.update(jsonable_encoder(payload))
    return body


def clip_out(clip: models.Clip) -> dict:
    return schemas.Clip.model_validate(clip).model_dump()


# Dependencies
def get_db(request: Request):
    yield from session_scope(request.app.state.session_factory)


def get_store(request: Request) -> BlobStore:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_service(db: Session = Depends(get_db),
                store: BlobStore = Depends(get_store),
                settings: Settings = Depends(get_app_settings)) -> ClipService:
    return ClipService(db, store, settings)


def caller_is_privileged(request: Request, settings: Settings = Depends(get_app_settings)) -> bool:
    """Resolve the operator capability once, at the edge"""
    token = request.headers.get(settings.privileged_header)
    if settings.privileged_token and token is not None:
        if hmac.compare_digest(token.encode(), settings.privileged_token.encode()):
            return True

    origin = request.headers.get("origin")
    return bool(origin) and origin in settings.privileged_origins


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(levelname)s - %(message)s")

    engine = create_database_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_create_tables:
            models.Base.metadata.create_all(bind=engine)
            logger.info("✅ Database tables ready")
        yield
        engine.dispose()

    app = FastAPI(
        title="Clips API",
        description="Upload, share and stream short video clips",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.store = BlobStore(settings.storage_root, chunk_size=settings.stream_chunk_size)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "HEAD", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Range", settings.privileged_header],
        expose_headers=["Content-Range", "Content-Length", "Accept-Ranges"],
        max_age=600
    )

    # Metrics middleware
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(f"💥 {request.method} {request.url.path} - ERROR: {e} - {process_time:.3f}s", exc_info=True)
            return JSONResponse(status_code=500, content=envelope(False, "Internal server error"))

        process_time = time.time() - start_time
        route = request.scope.get("route")
        endpoint = route.path if route is not None else request.url.path

        HTTP_REQUESTS.labels(method=request.method, endpoint=endpoint, status=str(response.status_code)).inc()
        REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(process_time)

        status_emoji = "✅" if response.status_code < 400 else "❌"
        logger.info(f"{status_emoji} {request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s")

        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.exception_handler(ClipsException)
    async def clips_exception_handler(request: Request, exc: ClipsException):
        headers = {}
        if isinstance(exc, RangeNotSatisfiable):
            headers["Content-Range"] = f"bytes */{exc.size}"

        if exc.status_code >= 500:
            logger.error(f"💥 {request.method} {request.url.path} - {exc.message}", exc_info=exc)
            message = "Internal server error"
        else:
            message = exc.message

        return JSONResponse(status_code=exc.status_code, content=envelope(False, message), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content=envelope(False, f"Invalid request: {details}"))

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # Root endpoint
    @app.get("/")
    def root():
        return {
            "message": "🎬 Clips API - Video clip sharing service",
            "version": "1.0.0",
            "status": "online",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "metrics": "/metrics",
                "upload": "/clips",
                "by_hash": "/clips/by-hash/{hash}",
                "owner": "/clips/owner/{owner_id}",
                "recent": "/clips/recent",
                "privacy": "/clips/{id}/privacy",
                "view": "/clips/{id_or_hash}/view",
                "files": "/files/{path}"
            }
        }

    # Health check
    @app.get("/health")
    def health_check(settings: Settings = Depends(get_app_settings)):
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "environment": settings.environment
        }

    # Metrics endpoint
    @app.get("/metrics")
    def get_metrics(db: Session = Depends(get_db)):
        """Prometheus metrics endpoint"""
        try:
            clip_count, total_views = crud.get_stats(db)
            ACTIVE_CLIPS.set(clip_count)
            TOTAL_VIEWS.set(total_views)
        except ClipsException as e:
            # Scrapes keep working while the database is down
            logger.warning(f"Could not refresh clip gauges: {e.message}")

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Upload clip
    @app.post("/clips", status_code=201)
    def upload_clip(
        file: Optional[UploadFile] = File(None),
        title: Optional[str] = Form(None),
        subtitle: Optional[str] = Form(None),
        game: Optional[str] = Form(None),
        duration: Optional[str] = Form(None),
        ownerId: Optional[str] = Form(None),
        service: ClipService = Depends(get_service),
    ):
        owner_id = None
        if ownerId not in (None, ""):
            try:
                owner_id = int(ownerId)
            except ValueError:
                raise InvalidInput("ownerId must be an integer")

        metadata = schemas.ClipCreate(
            title=title or "",
            subtitle=subtitle or "",
            game=game or "",
            duration=duration or "",
            owner_id=owner_id,
        )

        DB_OPERATIONS.labels(operation="INSERT").inc()
        if file is None:
            clip = service.upload(metadata, None, None, None)
        else:
            clip = service.upload(metadata, file.file, file.filename, file.content_type)
        CLIPS_UPLOADED.inc()

        return envelope(True, "Clip uploaded successfully", clip=clip_out(clip))

    # Recent public clips
    @app.get("/clips/recent")
    def get_recent_clips(limit: Optional[int] = None, service: ClipService = Depends(get_service)):
        DB_OPERATIONS.labels(operation="SELECT").inc()
        clips = service.list_recent_public(limit)
        return envelope(True, clips=[clip_out(c) for c in clips])

    # Clip by share hash
    @app.get("/clips/by-hash/{video_hash}")
    def get_clip_by_hash(video_hash: str,
                         privileged: bool = Depends(caller_is_privileged),
                         service: ClipService = Depends(get_service)):
        DB_OPERATIONS.labels(operation="SELECT").inc()
        clip = service.get_by_hash(video_hash, privileged)
        return envelope(True, clip=clip_out(clip))

    # Owner clips
    @app.get("/clips/owner/{owner_id}")
    def get_owner_clips(owner_id: int,
                        privileged: bool = Depends(caller_is_privileged),
                        service: ClipService = Depends(get_service)):
        DB_OPERATIONS.labels(operation="SELECT").inc()
        clips = service.list_for_owner(owner_id, privileged)
        return envelope(True, clips=[clip_out(c) for c in clips])

    # Toggle privacy
    @app.patch("/clips/{clip_id}/privacy")
    def update_clip_privacy(clip_id: int, body: schemas.PrivacyUpdate,
                            service: ClipService = Depends(get_service)):
        DB_OPERATIONS.labels(operation="UPDATE").inc()
        service.set_privacy(clip_id, body.is_private)
        return envelope(True, "Clip privacy updated successfully")

    # Record a view
    @app.post("/clips/{id_or_hash}/view")
    def record_clip_view(id_or_hash: str, service: ClipService = Depends(get_service)):
        DB_OPERATIONS.labels(operation="UPDATE").inc()
        clip = service.record_view(id_or_hash)
        CLIP_VIEWS.inc()
        return envelope(True, "View recorded", views=clip.views)

    # Delete clip
    @app.delete("/clips/{clip_id}")
    def delete_clip(clip_id: int, service: ClipService = Depends(get_service)):
        DB_OPERATIONS.labels(operation="DELETE").inc()
        service.delete_clip(clip_id)
        CLIPS_DELETED.inc()
        return envelope(True, "Clip deleted successfully")

    # Stream stored bytes. No visibility check here: the path is only handed
    # out through the clip endpoints.
    @app.get("/files/{storage_path:path}")
    def stream_file(storage_path: str,
                    range_header: Optional[str] = Header(None, alias="range"),
                    store: BlobStore = Depends(get_store)):
        blob = store.open_range(storage_path, range_header)

        headers = {
            "Accept-Ranges": "bytes",
            "Content-Length": str(blob.length if blob.size else 0),
        }
        if blob.partial:
            headers["Content-Range"] = blob.content_range

        return StreamingResponse(
            store.iter_bytes(blob),
            status_code=206 if blob.partial else 200,
            headers=headers,
            media_type=blob.content_type
        )


app = create_app()
