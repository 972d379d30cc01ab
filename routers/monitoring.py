from fastapi import APIRouter, Request
from typing import List
from presence import presence_store
from schemas.monitoring import HealthResponse, RoomCount, RoomListing, StatsResponse
from logging_config import get_logger

logger = get_logger(__name__)

monitoring_router = APIRouter(tags=["monitoring"])


@monitoring_router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="OK", message="Chat server is running")


@monitoring_router.get("/api/stats", response_model=StatsResponse)
async def get_stats(request: Request):
    """
    Presence counters for monitoring.

    Returns:
    - totalUsers: Number of joined connections across all rooms
    - totalRooms: Number of non-empty rooms
    - rooms: Per-room member count
    """
    client_host = request.client.host if request.client else 'unknown'
    logger.debug(f"Stats request from {client_host}")
    rooms = [
        RoomCount(name=room, userCount=presence_store.room_size(room))
        for room in presence_store.room_names()
    ]
    return StatsResponse(
        totalUsers=presence_store.total_users(),
        totalRooms=presence_store.room_count(),
        rooms=rooms,
    )


@monitoring_router.get("/api/rooms", response_model=List[RoomListing])
async def get_rooms():
    """Every non-empty room with its members as {id, username}."""
    return [
        RoomListing(name=room, users=presence_store.list_room(room))
        for room in presence_store.room_names()
    ]
