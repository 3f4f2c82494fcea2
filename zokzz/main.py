import logging
from dotenv import load_dotenv

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import routers as auth_router
from .friendship import routers as friend_router
from .chat import routers as chat_router

from .core.errors import CoreError, ErrorKind, StoreError
from .core.middleware import logging_middleware
from .utils.env_helper import env_bool, env_list
from .utils.logging_config import setup_logging

load_dotenv()
setup_logging()

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"

docs_enabled = env_bool("ENABLE_DOCS", True)

app = FastAPI(
    title="Zokzz Chat",
    docs_url="/docs" if docs_enabled else None,
    redoc_url="/redoc" if docs_enabled else None,
    openapi_url="/openapi.json" if docs_enabled else None,
)
app.include_router(auth_router.router, prefix="/auth", tags=["Authentication"])
app.include_router(friend_router.router, prefix="/friends", tags=["Friendship"])
app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])


origins = env_list(
    "CORS_ORIGINS",
    default=["http://localhost:5173", "http://localhost:8080"],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(logging_middleware)


@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    if exc.kind is ErrorKind.INTERNAL:
        logger.error(f"core_internal_error path={request.url.path} detail={exc.message}")
        message = INTERNAL_ERROR_MESSAGE
    else:
        logger.info(f"core_error path={request.url.path} code={exc.kind.value}")
        message = exc.message

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": message, "code": exc.kind.value},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"store_error path={request.url.path} detail={exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": INTERNAL_ERROR_MESSAGE, "code": ErrorKind.INTERNAL.value},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error path={request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": INTERNAL_ERROR_MESSAGE, "code": ErrorKind.INTERNAL.value},
    )


@app.get("/health")
def health():
    return {"status": "ok"}
