import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

STATIC_DIR = os.getenv("STATIC_DIR", "static")

CHAT_SERVER_URL = os.getenv("CHAT_SERVER_URL", f"ws://localhost:{PORT}/ws")

# Idle time after the last keystroke before the client sends stopTyping
TYPING_TIMEOUT_SECONDS = float(os.getenv("TYPING_TIMEOUT_SECONDS", 1.0))
