import argparse
import asyncio
from typing import List
from client import ChatSession, ChatView, SessionError, connect_session
from constants import CHAT_SERVER_URL, LOG_FILE
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)

HELP_TEXT = "Type a message and press Enter. Commands: /leave, /quit"


class ConsoleView(ChatView):
    """Prints every view change as it happens."""

    def add_message(self, data: dict, own: bool = False):
        super().add_message(data, own)
        marker = "(you) " if own else ""
        print(f"[{data.get('time', '')}] {marker}{data.get('username', '')}: {data.get('message', '')}")

    def add_system_message(self, text: str):
        super().add_system_message(text)
        print(f"*** {text}")

    def set_users(self, users: List[dict]):
        super().set_users(users)
        print(f"--- In room: {', '.join(user.get('username', '') for user in users)}")

    def set_user_count(self, text: str):
        super().set_user_count(text)
        print(f"--- {text}")

    def show_typing(self, username: str):
        super().show_typing(username)
        print(f"... {self.typing_text}")

    def set_status(self, status: str):
        super().set_status(status)
        print(f"[{status}]")


async def prompt(text: str) -> str:
    """Read a line from stdin without blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, input, text)


async def run(url: str, username: str = "", room: str = "general"):
    view = ConsoleView()
    session, connection = await connect_session(url, view)
    listener = asyncio.create_task(connection.listen(session)) if connection else None

    try:
        await join_loop(session, username, room)
        print(HELP_TEXT)
        while True:
            try:
                line = await prompt("")
            except EOFError:
                break
            if line.strip() == "/quit":
                break
            if line.strip() == "/leave":
                await session.leave()
                await join_loop(session, "", room)
                continue
            await session.send_message(line)
    finally:
        if session.joined:
            await session.leave()
        if connection:
            await connection.close()
        if listener:
            await listener


async def join_loop(session: ChatSession, username: str, room: str):
    while not session.joined:
        name = username or await prompt("Your name: ")
        room_name = await prompt(f"Room [{room}]: ") if not username else room
        try:
            await session.join(name, room_name.strip() or room)
        except SessionError as e:
            print(e)
            username = ""


def main():
    parser = argparse.ArgumentParser(description="Terminal client for the chat relay")
    parser.add_argument("--url", default=CHAT_SERVER_URL, help="WebSocket URL of the chat server")
    parser.add_argument("--name", default="", help="Display name; prompted for when omitted")
    parser.add_argument("--room", default="general", help="Room to join")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    setup_logging(log_level=args.log_level, log_file=LOG_FILE)
    try:
        asyncio.run(run(args.url, args.name, args.room))
    except KeyboardInterrupt:
        logger.info("Client interrupted")


if __name__ == "__main__":
    main()
