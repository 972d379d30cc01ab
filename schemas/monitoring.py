from pydantic import BaseModel
from typing import List
from schemas.events import Member


class HealthResponse(BaseModel):
    status: str
    message: str

class RoomCount(BaseModel):
    name: str
    userCount: int

class StatsResponse(BaseModel):
    totalUsers: int
    totalRooms: int
    rooms: List[RoomCount]

class RoomListing(BaseModel):
    name: str
    users: List[Member]
