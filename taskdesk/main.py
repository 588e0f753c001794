from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from taskdesk.core import config
from taskdesk.core.database.engine import init_db
from taskdesk.features.permissions.account_status import StatusTransitionError
from taskdesk.features.permissions.errors import (
    AccountNotActive,
    InvalidPermissionQuery,
    Unauthenticated,
)
from taskdesk.features.users.routes import router as user_router, auth_router
from taskdesk.features.departments.routes import router as department_router
from taskdesk.features.projects.routes import router as project_router
from taskdesk.features.tasks.routes import router as task_router
from taskdesk.features.comments.routes import router as comment_router
from taskdesk.features.permissions.routes import router as permission_router
from taskdesk.features.users.dependencies import limiter
from taskdesk.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Taskdesk",
    description="Task management API with position-based access control",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.taskdesk.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(_request: Request, exc: Unauthenticated):
    return JSONResponse(
        status_code=401,
        content={"detail": exc.message},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(AccountNotActive)
async def account_not_active_handler(_request: Request, exc: AccountNotActive):
    return JSONResponse(
        status_code=403,
        content={
            "detail": exc.message,
            "account_status": exc.status.value,
            "reason": exc.reason.value,
        },
    )


@app.exception_handler(StatusTransitionError)
async def status_transition_handler(_request: Request, exc: StatusTransitionError):
    return JSONResponse(
        status_code=400,
        content={
            "detail": str(exc),
            "current_status": exc.current_status.value,
            "requested_status": exc.requested_status.value,
            "allowed_transitions": [s.value for s in exc.allowed_transitions],
        },
    )


@app.exception_handler(InvalidPermissionQuery)
async def invalid_permission_query_handler(_request: Request, exc: InvalidPermissionQuery):
    log.error("Invalid permission query %s.%s: %s", exc.resource_group, exc.action, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal authorization error"})


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Taskdesk API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": [
                "/users/*", "/departments/*", "/projects/*", "/tasks/*", "/comments/*", "/permissions/*"
            ],
            "public_endpoints": ["/", "/health", "/auth/refresh", "/permissions/schema"]
        },
        "features": {
            "account_status": "Account lifecycle with a status gate on every request",
            "departments": "Departments with leveled positions and access requests",
            "permissions": "Position-based permissions with own/assigned/department/all scopes",
            "projects": "Team and personal projects with member assignment",
            "tasks": "Tasks and subtasks with assignees",
            "comments": "Comments on tasks, visible to whoever can view the task"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(department_router, prefix="/departments", tags=["departments"])
app.include_router(project_router, prefix="/projects", tags=["projects"])
app.include_router(task_router, prefix="/tasks", tags=["tasks"])
app.include_router(comment_router, prefix="/comments", tags=["comments"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
