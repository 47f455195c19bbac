# ambutrack/api.py
"""FastAPI application for the dispatch service."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import config, dispatch
from .errors import ValidationError
from .events import COLLECTIONS
from .lifecycle import RequestLifecycle
from .models import AmbulanceStatus
from .routing import RouteEstimator
from .schemas import (
    AmbulanceRead,
    AmbulanceUpsert,
    HospitalCreate,
    HospitalNearbyRead,
    HospitalRead,
    LocationUpdate,
    NearestAmbulanceRead,
    RequestCreate,
    RequestRead,
    RequestStatusUpdate,
    StatusUpdate,
    TrackingRead,
)
from .simulator import LocationSimulator
from .store import DispatchStore
from .tracking import TrackingService

logger = logging.getLogger(__name__)


def _not_found(what: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": f"{what} not found"})


def get_store(request: Request) -> DispatchStore:
    return request.app.state.store


def get_lifecycle(request: Request) -> RequestLifecycle:
    return request.app.state.lifecycle


def get_tracking(request: Request) -> TrackingService:
    return request.app.state.tracking


# Ambulances -----------------------------------------------------------------

ambulances = APIRouter(prefix="/api/ambulances", tags=["ambulances"])


@ambulances.get("", response_model=List[AmbulanceRead])
def list_ambulances(store: DispatchStore = Depends(get_store)):
    return store.list_ambulances()


@ambulances.post("", response_model=AmbulanceRead)
def upsert_ambulance(payload: AmbulanceUpsert, lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    return lifecycle.register_ambulance(payload.model_dump(exclude_unset=True, exclude_none=True))


@ambulances.get("/nearest", response_model=NearestAmbulanceRead)
def nearest_ambulance(
    lat: float = Query(...),
    lng: float = Query(...),
    type: Optional[str] = Query(None),
    store: DispatchStore = Depends(get_store),
):
    match = dispatch.find_nearest_ambulance(store, lat, lng, type)
    if match is None:
        return _not_found("Available ambulance")
    return match


@ambulances.get("/{driver_id}", response_model=AmbulanceRead)
def get_ambulance(driver_id: str, store: DispatchStore = Depends(get_store)):
    ambulance = store.get_ambulance_by_driver_id(driver_id)
    if ambulance is None:
        return _not_found("Ambulance")
    return ambulance


@ambulances.patch("/{driver_id}/location", response_model=AmbulanceRead)
def update_location(driver_id: str, payload: LocationUpdate, store: DispatchStore = Depends(get_store)):
    ambulance = store.update_ambulance_location(driver_id, payload.lat, payload.lng)
    if ambulance is None:
        return _not_found("Ambulance")
    return ambulance


@ambulances.patch("/{driver_id}/status", response_model=AmbulanceRead)
async def update_status(
    driver_id: str,
    payload: StatusUpdate,
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    tracking: TrackingService = Depends(get_tracking),
):
    ambulance = lifecycle.set_ambulance_status(driver_id, payload.status)
    if ambulance is None:
        return _not_found("Ambulance")
    if ambulance.status == AmbulanceStatus.OFFLINE:
        tracking.stop_simulation(driver_id)
    return ambulance


@ambulances.post("/{driver_id}/jitter", status_code=status.HTTP_202_ACCEPTED)
async def start_jitter(driver_id: str, tracking: TrackingService = Depends(get_tracking)):
    if not tracking.start_jitter(driver_id):
        return _not_found("Ambulance")
    return {"driverId": driver_id, "simulating": True}


@ambulances.delete("/{driver_id}/jitter")
async def stop_jitter(driver_id: str, tracking: TrackingService = Depends(get_tracking)):
    return {"driverId": driver_id, "stopped": tracking.stop_simulation(driver_id)}


# Requests -------------------------------------------------------------------

requests_router = APIRouter(prefix="/api/requests", tags=["requests"])


@requests_router.get("", response_model=List[RequestRead])
def list_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    store: DispatchStore = Depends(get_store),
):
    return store.list_requests(status_filter)


@requests_router.post("", response_model=RequestRead)
def create_request(payload: RequestCreate, lifecycle: RequestLifecycle = Depends(get_lifecycle)):
    return lifecycle.create_request(payload.model_dump(exclude_none=True))


@requests_router.patch("/{request_id}", response_model=RequestRead)
async def update_request(
    request_id: int,
    payload: RequestStatusUpdate,
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    tracking: TrackingService = Depends(get_tracking),
):
    request = lifecycle.transition(request_id, payload.status, payload.driver_id)
    if request is None:
        return _not_found("Request")
    if request.is_terminal:
        tracking.end_session(request_id)
        if request.driver_id:
            tracking.stop_simulation(request.driver_id)
    return request


@requests_router.get("/{request_id}/tracking", response_model=TrackingRead)
async def track_request(request_id: int, tracking: TrackingService = Depends(get_tracking)):
    snapshot = await tracking.snapshot_async(request_id)
    if snapshot is None:
        return _not_found("Request")
    return TrackingRead.model_validate(snapshot)


@requests_router.post("/{request_id}/tracking/simulate", response_model=TrackingRead, status_code=status.HTTP_202_ACCEPTED)
async def simulate_request(request_id: int, tracking: TrackingService = Depends(get_tracking)):
    snapshot = await tracking.start_simulation(request_id)
    if snapshot is None:
        return _not_found("Request")
    return TrackingRead.model_validate(snapshot)


@requests_router.delete("/{request_id}/tracking/simulate")
async def stop_request_simulation(
    request_id: int,
    store: DispatchStore = Depends(get_store),
    tracking: TrackingService = Depends(get_tracking),
):
    request = store.get_request(request_id)
    if request is None:
        return _not_found("Request")
    stopped = bool(request.driver_id) and tracking.stop_simulation(request.driver_id)
    return {"requestId": request_id, "stopped": stopped}


# Hospitals ------------------------------------------------------------------

hospitals = APIRouter(prefix="/api/hospitals", tags=["hospitals"])


@hospitals.get("", response_model=List[HospitalRead])
def list_hospitals(store: DispatchStore = Depends(get_store)):
    return store.list_hospitals()


@hospitals.post("", response_model=HospitalRead)
def create_hospital(payload: HospitalCreate, store: DispatchStore = Depends(get_store)):
    return store.create_hospital(payload.model_dump())


@hospitals.get("/search", response_model=List[HospitalRead])
def search_hospitals(specialty: Optional[str] = Query(None), store: DispatchStore = Depends(get_store)):
    return store.search_hospitals_by_specialty(specialty)


@hospitals.get("/nearby", response_model=List[HospitalNearbyRead])
def nearby_hospitals(
    lat: float = Query(...),
    lng: float = Query(...),
    specialty: Optional[str] = Query(None),
    limit: int = Query(config.NEARBY_HOSPITAL_LIMIT, ge=1),
    store: DispatchStore = Depends(get_store),
):
    return dispatch.rank_hospitals(store, lat, lng, specialty, limit)


# Change feed ----------------------------------------------------------------

feed = APIRouter(tags=["feed"])


@feed.websocket("/api/ws/{collection}")
async def change_feed(websocket: WebSocket, collection: str):
    if collection not in COLLECTIONS:
        await websocket.close(code=1008)
        return
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    # Store mutations may happen on worker threads
    unsubscribe = websocket.app.state.store.feed.subscribe(
        collection, lambda event: loop.call_soon_threadsafe(queue.put_nowait, event)
    )
    await websocket.accept()

    async def pump() -> None:
        while True:
            await websocket.send_json(await queue.get())

    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        unsubscribe()


# Application ----------------------------------------------------------------

def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _schema_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def _internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )


def create_app(
    store: Optional[DispatchStore] = None,
    estimator: Optional[RouteEstimator] = None,
    simulator: Optional[LocationSimulator] = None,
    seed: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application around one explicitly constructed store.

    Args:
        store: Store to serve; a new one is created if omitted
        estimator: Route estimator; defaults to OSRM with straight-line fallback
        simulator: Location simulator shared by all tracking sessions
        seed: Load the sample CSV data. Defaults to ``config.SEED_DATA`` for
            a new store and to False for a store passed in
    """
    if seed is None:
        seed = config.SEED_DATA and store is None
    store = store or DispatchStore()
    if seed:
        store.load_seed_data(str(config.AMBULANCE_SEED_FILE), str(config.HOSPITAL_SEED_FILE))

    tracking = TrackingService(store, estimator, simulator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await tracking.simulator.stop_all()

    app = FastAPI(title="AmbuTrack", lifespan=lifespan)
    app.state.store = store
    app.state.lifecycle = RequestLifecycle(store)
    app.state.tracking = tracking

    register_error_handlers(app)
    app.include_router(ambulances)
    app.include_router(requests_router)
    app.include_router(hospitals)
    app.include_router(feed)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "ambulances": len(store.list_ambulances()),
            "requests": len(store.list_requests()),
            "hospitals": len(store.list_hospitals()),
            "simulations": tracking.simulator.running(),
        }

    return app
