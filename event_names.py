# Client -> server
JOIN_ROOM = "joinRoom"
CHAT_MESSAGE = "chatMessage"
TYPING = "typing"
STOP_TYPING = "stopTyping"
LEAVE_ROOM = "leaveRoom"

# Server -> client
MESSAGE = "message"
USER_JOINED = "userJoined"
USER_LEFT = "userLeft"
ROOM_USERS = "roomUsers"
# TYPING and STOP_TYPING are relayed under the same names

SYSTEM_USERNAME = "System"

# **Envelope**
# - every WebSocket text frame is `{"event": <name>, "data": <object>}`
# - `data` may be omitted for typing/stopTyping/leaveRoom
