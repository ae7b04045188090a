from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi import Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager, suppress
import asyncio
import logging
import os
import traceback

from . import config
from .db import create_db_and_tables, async_session_maker
from .exceptions import SessionError
from .models import user_model, test_model, billing_model, attempt_model  # noqa: F401
from .routers import auth, session_routers, test_routers, admin_routers
from .security import auth_backend, app_users
from .dependencies import users_router_permission
from .schemas.user_schema import UserCreate, UserRead, UserUpdate
from .services.session_service import expire_overdue_attempts

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def _auto_submit_loop(interval: int):
    while True:
        await asyncio.sleep(interval)
        try:
            async with async_session_maker() as session:
                await expire_overdue_attempts(session, grace_seconds=config.AUTO_SUBMIT_GRACE_SECONDS)
        except Exception:
            logger.exception("Overdue attempt sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # run once when app starts. Make DB and media folder.
    await create_db_and_tables()
    os.makedirs(config.MEDIA_ROOT, exist_ok=True)

    sweeper = None
    if config.AUTO_SUBMIT_INTERVAL_SECONDS > 0:
        logger.info("Overdue attempt sweep every %ss", config.AUTO_SUBMIT_INTERVAL_SECONDS)
        sweeper = asyncio.create_task(_auto_submit_loop(config.AUTO_SUBMIT_INTERVAL_SECONDS))
    yield
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(title="ExamPrep API", debug=config.DEBUG, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # role guards, upload checks and fastapi-users auth errors share the error envelope
    body = {"success": False}
    if isinstance(exc.detail, str):
        body["message"] = exc.detail
    else:
        body["message"] = "Request failed"
        body["detail"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else (first.get("msg") or "Invalid request body")
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": message, "errors": jsonable_errors(errors)},
    )


def jsonable_errors(errors) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {"success": False, "message": "Internal server error"}
    if config.DEBUG:
        body["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=body)


# mount media static files at /media (question images resolve here)
os.makedirs(config.MEDIA_ROOT, exist_ok=True)
app.mount("/media", StaticFiles(directory=config.MEDIA_ROOT), name="media")

# Attach users router with small permission check. This router provides /users and /users/me
app.include_router(
    app_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(users_router_permission)],
)

app.include_router(session_routers.router, prefix="/api")
app.include_router(test_routers.router, prefix="/api")
app.include_router(admin_routers.router, prefix="/api")

# Auth routers
app.include_router(app_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"])
app.include_router(auth.router)
app.include_router(app_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])


@app.get("/health")
async def health_check():
    return {"success": True, "message": "Server is running"}
