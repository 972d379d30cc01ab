from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

def display_time(now: Optional[datetime] = None) -> str:
    """Wall-clock time for message headers, e.g. '3:04:05 PM'."""
    now = now or datetime.now()
    return now.strftime("%I:%M:%S %p").lstrip("0")


# Inbound payloads

class JoinRoomPayload(BaseModel):
    username: str = Field(min_length=1)
    room: str = Field(min_length=1)

class ChatMessagePayload(BaseModel):
    message: str = Field(min_length=1)

# Outbound payloads

class Member(BaseModel):
    id: str
    username: str

class MessageEvent(BaseModel):
    username: str
    message: str
    time: str

class PresenceEvent(BaseModel):
    """Body of userJoined / userLeft."""
    username: str
    users: List[Member]

class RoomUsersEvent(BaseModel):
    room: str
    users: List[Member]

class TypingEvent(BaseModel):
    username: str
