from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import init_db
from app.core.exceptions import DirectoryError, PersistenceFailure, Unauthorized, ValidationFailed
from app.features.users.routes import auth_router, router as user_router
from app.features.roles.routes import router as role_router
from app.features.modules.routes import router as module_router
from app.features.permissions.routes import router as permission_router
from app.features.products.routes import router as product_router
from app.features.users.dependencies import get_authorization_header
from app.utils import get_logger


API_VERSION = "0.1.0"

ROUTERS = [
    (auth_router, "/auth", "auth"),
    (user_router, "/users", "users"),
    (role_router, "/roles", "roles"),
    (module_router, "/modules", "modules"),
    (permission_router, "/permissions", "permissions"),
    (product_router, "/products", "products"),
]

log = get_logger(__name__)
log.info("Initializing module directory")
app = FastAPI(
    title="Module Directory",
    description="Module tree with role grants, user overrides and an admin bypass",
    version=API_VERSION,
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = Limiter(key_func=get_authorization_header)


class LogTimings(TimingClient):
    """Request timings at DEBUG, keyed by route handler."""

    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("directory.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=LogTimings(), metric_namer=StarletteScopeToName("directory", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.ALLOW_ORIGIN],
        # Sessions ride on a cookie
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def request_validation_handler(_request: Request, exc: RequestValidationError):
    """Field name → first message, as a 400."""
    fields = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        fields.setdefault("root" if key == "__root__" else key, error["msg"])
    log.info("Request validation error %s", fields)
    return JSONResponse(status_code=400, content=jsonable_encoder(fields))


@app.exception_handler(DirectoryError)
async def directory_error_handler(request: Request, exc: DirectoryError):
    if isinstance(exc, Unauthorized):
        log.info("Access denied on %s: %s", request.url.path, exc.message)
        content = {"error": "Access Denied", "detail": exc.message, "redirect": config.SAFE_REDIRECT_PATH}
    elif isinstance(exc, PersistenceFailure):
        # The cause was logged where it was caught
        content = {"error": PersistenceFailure.default_message}
    elif isinstance(exc, ValidationFailed):
        content = {"error": exc.message, "fields": jsonable_encoder(exc.fields)}
    else:
        content = {"error": exc.message}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    log.info("Creating missing tables")
    await init_db()


# ============================================================================
# Service Routes
# ============================================================================

@app.get("/")
async def root():
    """Service summary."""
    return {
        "message": "Module Directory API",
        "version": API_VERSION,
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": "session cookie or Authorization: Bearer <token>",
        "public_endpoints": ["/auth/signup", "/auth/login", "/auth/logout", "/health"],
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


for feature_router, prefix, tag in ROUTERS:
    app.include_router(feature_router, prefix=prefix, tags=[tag])
