"""
MDS Agency Service - Main Application
Accepts vehicle registrations, events and telemetry from providers
"""

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging
from datetime import datetime

from . import __version__
from .agency import AgencyService
from .config import settings
from .errors import (
    AgencyError,
    BadParamError,
    InvalidProviderError,
    MissingProviderError,
    NotFoundResponse,
    ServerError,
)
from .models import HealthStatus
from .storage import create_backends
from .utils import is_uuid

# Set up logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def build_agency() -> AgencyService:
    store, cache, stream = create_backends(settings)
    return AgencyService(
        store,
        cache,
        stream,
        slow_event_ms=settings.SLOW_EVENT_MS,
        slow_telemetry_ms=settings.SLOW_TELEMETRY_MS
    )


def create_app(agency: Optional[AgencyService] = None) -> FastAPI:
    """Build the app; backends come from settings unless an AgencyService is given"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.SERVICE_NAME} service...")
        if getattr(app.state, 'agency', None) is None:
            app.state.agency = build_agency()
            logger.info(f"Using {settings.STORAGE_BACKEND} backends")
        yield
        logger.info(f"Shutting down {settings.SERVICE_NAME} service...")

    app = FastAPI(
        title="MDS Agency Service",
        description="Mobility Data Specification agency API",
        version=__version__,
        lifespan=lifespan
    )
    app.state.agency = agency

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    register_error_handlers(app)
    return app


# Dependencies

def get_agency(request: Request) -> AgencyService:
    agency = request.app.state.agency
    if agency is None:
        raise ServerError('Service not initialized')
    return agency


async def get_provider_id(x_provider_id: Optional[str] = Header(None)) -> str:
    """The provider identity arrives already authenticated upstream"""
    if not x_provider_id:
        raise MissingProviderError('missing provider_id')
    if not is_uuid(x_provider_id):
        raise InvalidProviderError(f"invalid provider_id {x_provider_id} is not a UUID")
    return x_provider_id


async def valid_device_id(device_id: str) -> str:
    if not is_uuid(device_id):
        logger.warning(f"Bogus device_id {device_id}")
        raise BadParamError(f"invalid device_id {device_id} is not a UUID")
    return device_id


def register_routes(app: FastAPI):

    @app.get("/", response_model=dict)
    async def root():
        """Root endpoint"""
        return {
            "service": "MDS Agency",
            "version": __version__,
            "status": "running"
        }

    @app.get("/health", response_model=HealthStatus)
    async def health_check(agency: AgencyService = Depends(get_agency)):
        """Health check endpoint"""
        healthy = await agency.store.health_check()
        health = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.utcnow().isoformat(),
            "components": {"store": "healthy" if healthy else "unhealthy"}
        }
        if not healthy:
            return JSONResponse(content=health, status_code=503)
        return HealthStatus(**health)

    @app.get("/metrics")
    async def metrics(agency: AgencyService = Depends(get_agency)):
        """Ingestion counters"""
        return agency.diagnostics.as_dict()

    @app.post("/vehicles", status_code=201)
    async def register_vehicle(
        body: Dict[str, Any] = Body(...),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        return await agency.register_vehicle(provider_id, body)

    @app.get("/vehicles")
    async def list_vehicles(
        request: Request,
        skip: int = Query(0, ge=0),
        take: int = Query(settings.PAGE_SIZE, ge=1),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        url = str(request.url.replace(query=""))
        query = {k: v for k, v in request.query_params.items() if k not in ('skip', 'take')}
        return await agency.list_vehicles(skip, take, url, query, provider_id)

    @app.post("/vehicles/telemetry")
    async def submit_telemetry(
        body: Dict[str, Any] = Body(...),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        return await agency.submit_telemetry(provider_id, body.get('data'))

    @app.get("/vehicles/{device_id}")
    async def get_vehicle(
        device_id: str = Depends(valid_device_id),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        return await agency.get_vehicle(device_id, provider_id)

    @app.put("/vehicles/{device_id}", status_code=201)
    async def update_vehicle(
        body: Dict[str, Any] = Body(...),
        device_id: str = Depends(valid_device_id),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        return await agency.update_vehicle(provider_id, device_id, body)

    @app.post("/vehicles/{device_id}/event", status_code=201)
    async def submit_event(
        body: Dict[str, Any] = Body(...),
        device_id: str = Depends(valid_device_id),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        return await agency.submit_event(provider_id, device_id, body)

    @app.post("/trips", status_code=201)
    async def write_trip_metadata(
        body: Dict[str, Any] = Body(...),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        return await agency.write_trip_metadata(provider_id, body)

    @app.post("/vehicles/{device_id}/refresh")
    async def refresh_vehicle(
        device_id: str = Depends(valid_device_id),
        provider_id: str = Depends(get_provider_id),
        agency: AgencyService = Depends(get_agency)
    ):
        return {"result": await agency.refresh(device_id, provider_id)}


def register_error_handlers(app: FastAPI):

    @app.exception_handler(AgencyError)
    async def agency_error_handler(request, exc: AgencyError):
        if isinstance(exc, NotFoundResponse):
            return JSONResponse(status_code=exc.status_code, content={})
        return JSONResponse(status_code=exc.status_code, content=exc.to_error_object().to_response())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "bad_param",
                "error_description": "A validation error occurred.",
                "error_details": [
                    {"property": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()
                ]
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content=ServerError().to_error_object().to_response()
        )


app = create_app()
