import logging
import os
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.datastructures import Headers

from actions import ActionError, ActionsResource
from store import ActionStore

logger = logging.getLogger(__name__)

DATA_FILE = os.getenv("DATA_FILE", str(Path(__file__).parent / "data" / "data.json"))
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]
MAX_BODY_BYTES = 10 * 1024 * 1024
VERSION = "1.0.0"

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /api/actions",
    "POST /api/actions",
    "PUT /api/actions/:id",
    "PATCH /api/actions/:id",
    "DELETE /api/actions/:id",
]

app = FastAPI(title="Sustainability Actions API", version=VERSION)

_store = ActionStore(DATA_FILE)


def get_store():
    return _store


def get_actions(store: Annotated[Any, Depends(get_store)]) -> ActionsResource:
    return ActionsResource(store)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def too_large_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        content={"error": "Request body too large", "limit": MAX_BODY_BYTES},
    )


class BodySizeLimitMiddleware:
    """Rejects bodies over MAX_BODY_BYTES, by header or by counting the stream."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > MAX_BODY_BYTES:
            await too_large_response()(scope, receive, send)
            return

        received = 0

        async def counting_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > MAX_BODY_BYTES:
                    # FastAPI re-raises HTTPException from body parsing unchanged.
                    raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE)
            return message

        await self.app(scope, counting_receive, send)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


app.add_middleware(BodySizeLimitMiddleware)
# 500 responses are produced outside this middleware; see cors_headers().
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def cors_headers(request: Request) -> dict:
    origin = request.headers.get("origin")
    if origin not in CORS_ORIGINS:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


@app.exception_handler(ActionError)
def action_error_handler(request: Request, exc: ActionError):
    return JSONResponse(status_code=exc.status_code, content=exc.body)


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": "Endpoint not found",
                "message": f"The requested endpoint {request.url.path} does not exist",
                "availableEndpoints": AVAILABLE_ENDPOINTS,
            },
        )
    if exc.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE:
        return too_large_response()
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError):
    if any(err.get("type") == "json_invalid" for err in exc.errors()):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid JSON body"})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request"})


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred",
            "timestamp": now_iso(),
        },
        headers=cors_headers(request),
    )


@app.get("/")
def root():
    return {
        "message": "Sustainability Actions API is running!",
        "version": VERSION,
        "timestamp": now_iso(),
        "endpoints": {"actions": "/api/actions"},
    }


@app.get("/api/actions")
def list_actions(actions: Annotated[ActionsResource, Depends(get_actions)]):
    return actions.list_actions()


@app.post("/api/actions", status_code=201)
def create_action(
    actions: Annotated[ActionsResource, Depends(get_actions)],
    payload: Annotated[Any, Body()] = None,
):
    return actions.create(payload)


@app.put("/api/actions/{action_id}")
def replace_action(
    action_id: str,
    actions: Annotated[ActionsResource, Depends(get_actions)],
    payload: Annotated[Any, Body()] = None,
):
    return actions.replace(action_id, payload)


@app.patch("/api/actions/{action_id}")
def patch_action(
    action_id: str,
    actions: Annotated[ActionsResource, Depends(get_actions)],
    payload: Annotated[Any, Body()] = None,
):
    return actions.patch(action_id, payload)


@app.delete("/api/actions/{action_id}")
def delete_action(action_id: str, actions: Annotated[ActionsResource, Depends(get_actions)]):
    return actions.delete(action_id)
