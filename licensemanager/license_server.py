"""
License Server

FastAPI application acting as the online authority for license verification
and device registration. Routes:

    GET  /api/health
    POST /api/v1/license/verify/online
    POST /api/v1/device/register
    GET  /api/v1/device/{device_id}

Error responses share one body shape: {"error": {"code": ..., "message": ...}}.
"""

import logging
import socket
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from licensemanager.errors import LicenseNotFound
from licensemanager.license_models import DeviceRecord, VerifyResult, format_timestamp
from licensemanager.license_storage import LicenseStorage
from licensemanager.token_auth import authorize_request

logger = logging.getLogger(__name__)

SERVER_VERSION = "1.0.0"

DEFAULT_ERROR_CODES = {
    400: "INVALID_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}

bearer_scheme = HTTPBearer(auto_error=False)
router = APIRouter()


class DeviceRequest(BaseModel):
    device_id: str = Field(min_length=1)
    app_id: Optional[str] = None


class DeviceRegistration(DeviceRequest):
    device_name: Optional[str] = None


def api_error(status_code: int, code: str, message: str) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return HTTPException(status_code=status_code, detail={"code": code, "message": message}, headers=headers)


def get_storage(request: Request) -> LicenseStorage:
    return request.app.state.storage


def current_time(request: Request) -> datetime:
    return request.app.state.clock()


def authorize(request: Request, credentials: Optional[HTTPAuthorizationCredentials],
              app_id: Optional[str]):
    """
    Enforce the bearer token when the server requires one

    Requests without an app id are admin-only.
    """
    if not request.app.state.require_token:
        return
    if credentials is None or not credentials.credentials:
        raise api_error(401, "UNAUTHORIZED", "Bearer token required")

    record = authorize_request(get_storage(request), credentials.credentials,
                               app_id=app_id, now=current_time(request))
    if record is None:
        raise api_error(401, "UNAUTHORIZED", "Invalid token")


@router.get("/api/health")
def health(request: Request):
    return {
        "status": "ok",
        "version": SERVER_VERSION,
        "timestamp": format_timestamp(current_time(request)),
    }


@router.post("/api/v1/license/verify/online")
def verify_online(body: DeviceRequest, request: Request,
                  credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
                  storage: LicenseStorage = Depends(get_storage)):
    authorize(request, credentials, body.app_id)
    device_id = body.device_id

    try:
        record = storage.get_license_by_device_id(device_id)
    except LicenseNotFound:
        logger.info(f"Online verification for unknown device {device_id[:8]}...")
        raise api_error(404, "LICENSE_NOT_FOUND", "License not found")

    expired = current_time(request) > record.expiry_date
    result = VerifyResult(
        valid=not expired,
        expired=expired,
        expiry_date=record.expiry_date,
        device_id=device_id,
        license_type=record.license_type,
        message="License expired" if expired else "Online verification"
    )
    storage.touch_device(device_id)

    logger.info(f"Online verification for {device_id[:8]}...: valid={result.valid}")
    return result.to_dict()


@router.post("/api/v1/device/register", status_code=201)
def register_device(body: DeviceRegistration, request: Request,
                    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
                    storage: LicenseStorage = Depends(get_storage)):
    authorize(request, credentials, body.app_id)

    record = DeviceRecord(
        device_id=body.device_id,
        device_name=body.device_name or "",
        app_id=body.app_id or "",
        status="active"
    )
    try:
        record.license_id = storage.get_license_by_device_id(body.device_id).id
    except LicenseNotFound:
        pass

    device_pk = storage.save_device(record)
    logger.info(f"Registered device {body.device_id[:8]}...")
    return {"id": device_pk, "device_id": body.device_id, "status": "registered"}


@router.get("/api/v1/device/")
def device_id_missing():
    raise api_error(400, "INVALID_REQUEST", "Device ID required")


@router.get("/api/v1/device/{device_id}")
def get_device(device_id: str, request: Request,
               credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
               storage: LicenseStorage = Depends(get_storage)):
    authorize(request, credentials, None)

    device = storage.get_device(device_id)
    if device is None:
        raise api_error(404, "DEVICE_NOT_FOUND", "Device not found")

    response: Dict[str, Any] = {
        "device_id": device.device_id,
        "device_name": device.device_name,
        "registered_at": format_timestamp(device.registered_at),
        "last_seen": format_timestamp(device.last_seen),
        "status": device.status,
    }

    try:
        record = storage.get_license_by_device_id(device_id)
    except LicenseNotFound:
        return response

    response["license_status"] = "expired" if current_time(request) > record.expiry_date else "active"
    response["expiry_date"] = format_timestamp(record.expiry_date)
    return response


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        error = exc.detail
    else:
        error = {"code": DEFAULT_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"), "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content={"error": error}, headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.debug(f"Rejected request body for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={
        "error": {"code": "INVALID_REQUEST", "message": "Invalid request body"}
    })


def create_app(storage: LicenseStorage, require_token: bool = False,
               clock: Optional[Callable[[], datetime]] = None) -> FastAPI:
    """
    Build the license server application

    Args:
        storage: License, device and token store
        require_token: Require a bearer token on /api/v1 routes
        clock: Returns the current time (defaults to UTC now)
    """
    app = FastAPI(title="License Server", version=SERVER_VERSION)
    app.state.storage = storage
    app.state.require_token = require_token
    app.state.clock = clock or (lambda: datetime.now(timezone.utc))

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.middleware("http")
    async def catch_unhandled_errors(request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error serving {request.method} {request.url.path}: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={
                "error": {"code": "SERVER_ERROR", "message": "Internal server error"}
            })
        logger.debug(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

    app.include_router(router)
    return app


def serve_forever(app: FastAPI, host: str = "127.0.0.1", port: int = 8080):
    """Serve the application until interrupted"""
    logger.info(f"License server listening on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None, access_log=False)


class ServerThread:
    """
    Serves the application with uvicorn on a daemon thread

    The listening socket is bound up front, so port 0 picks a free port
    that is known before the server starts.
    """

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 0):
        self.host = host
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind((host, port))
        self.port = self._socket.getsockname()[1]

        self.server = uvicorn.Server(uvicorn.Config(app, log_config=None, access_log=False))
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"sockets": [self._socket]},
            name="license-server",
            daemon=True
        )

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self, timeout: float = 10.0) -> "ServerThread":
        self._thread.start()
        deadline = time.monotonic() + timeout
        while not self.server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise RuntimeError("License server failed to start")
            time.sleep(0.01)

        logger.info(f"License server listening on {self.base_url}")
        return self

    def stop(self, timeout: float = 5.0):
        self.server.should_exit = True
        if self._thread.is_alive():
            self._thread.join(timeout)
        self._socket.close()
