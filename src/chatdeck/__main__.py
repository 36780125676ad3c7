"""ChatDeck entry point.

A plain terminal front-end: assistant replies are written to stdout as
they stream in. Sessions persist in the data directory between runs.
"""

import argparse
import asyncio
import logging
import sys

from chatdeck.config import Settings, get_config_dir, get_settings
from chatdeck.llm.client import StreamingCompletionClient
from chatdeck.logging_setup import setup_logging
from chatdeck.profile import ProfileContextProvider
from chatdeck.sessions import (
    SUGGESTIONS,
    JsonFileSnapshot,
    Message,
    Session,
    SessionController,
    SessionStore,
)

logger = logging.getLogger(__name__)

COMMANDS = ("/new", "/list", "/switch", "/rename", "/dup", "/delete", "/quit")


def parse_command(line: str) -> tuple[str, str] | None:
    """Split ``/cmd argument`` input. Returns None for ordinary chat text."""
    stripped = line.strip()
    if not stripped.startswith("/"):
        return None
    name, _, arg = stripped.partition(" ")
    if name not in COMMANDS:
        return None
    return name, arg.strip()


def format_session_list(sessions: list[Session], active_id: str | None) -> str:
    if not sessions:
        return "(no sessions)"
    lines = []
    for s in sessions:
        marker = "*" if s.id == active_id else " "
        lines.append(f"{marker} {s.id}  {s.title}  ({len(s.messages)} messages)")
    return "\n".join(lines)


class StreamingPrinter:
    """Prints only the new suffix of a growing reply."""

    def __init__(self, out=None):
        self.out = out if out is not None else sys.stdout
        self.printed = ""

    def update(self, content: str) -> None:
        self.out.write(content[len(self.printed) :])
        self.out.flush()
        self.printed = content


def build_controller(settings: Settings) -> SessionController:
    store = SessionStore.load(JsonFileSnapshot(get_config_dir(settings), settings.snapshot_key))
    client = StreamingCompletionClient(settings)
    provider = ProfileContextProvider(settings.resolved_profile_path())
    return SessionController(store, client, provider)


async def send_and_print(controller: SessionController, session_id: str, text: str) -> None:
    printer = StreamingPrinter()

    def on_update(sid: str, message: Message) -> None:
        if sid == session_id:
            printer.update(message.content)

    controller.store.add_listener(on_update)
    try:
        reply = await controller.send_message(session_id, text)
    finally:
        controller.store.remove_listener(on_update)

    # Error replies are appended, not streamed
    if reply is not None and reply.content != printer.printed:
        printer.out.write(reply.content)
    print()


async def run_interactive(controller: SessionController) -> None:
    if controller.active_session is None:
        await controller.new_chat()
    print(f"ChatDeck - session {controller.active_session.title!r}. /quit to exit.")

    while True:
        try:
            line = await asyncio.to_thread(input, "\nYou: ")
        except (EOFError, KeyboardInterrupt):
            print()
            return

        command = parse_command(line)
        if command is None:
            session = controller.active_session
            if session is None:
                session = await controller.new_chat()
            print("Assistant: ", end="", flush=True)
            await send_and_print(controller, session.id, line)
            continue

        name, arg = command
        active_id = controller.active_session_id
        if name == "/quit":
            return
        if name == "/new":
            session = await controller.new_chat()
            print(f"Started {session.id}")
        elif name == "/list":
            print(format_session_list(controller.store.sessions, active_id))
        elif name == "/switch":
            if controller.store.get_session(arg) is None:
                print(f"No session {arg!r}")
            else:
                print(f"Switched to {controller.select(arg).title!r}")
        elif active_id is None:
            print("No active session")
        elif name == "/rename":
            await controller.rename(active_id, arg)
        elif name == "/dup":
            copy = await controller.duplicate(active_id)
            print(f"Duplicated as {copy.id}")
        elif name == "/delete":
            await controller.delete_chat(active_id)
            print("Deleted")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    controller = build_controller(settings)

    if args.list:
        print(format_session_list(controller.store.sessions, controller.active_session_id))
        return 0

    if args.session:
        if controller.store.get_session(args.session) is None:
            logger.error(f"Unknown session: {args.session}")
            return 1
        controller.select(args.session)

    if args.suggest:
        session = await controller.start_from_suggestion(args.suggest, send=False)
        print("Assistant: ", end="", flush=True)
        await send_and_print(controller, session.id, args.suggest)
        return 0

    if args.new:
        await controller.new_chat()

    if args.message:
        session = controller.active_session or await controller.new_chat()
        await send_and_print(controller, session.id, args.message)
        return 0

    await run_interactive(controller)
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="ChatDeck - chat with a local language model",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Suggestions:\n" + "\n".join(f"  {s}" for s in SUGGESTIONS),
    )
    parser.add_argument("--new", action="store_true", help="Start a new session")
    parser.add_argument("--list", action="store_true", help="List saved sessions and exit")
    parser.add_argument("--session", help="Session id to continue")
    parser.add_argument("--suggest", metavar="TEXT", help="Start a session from a suggestion")
    parser.add_argument("-m", "--message", help="Send one message and exit")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(level=settings.log_level)

    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
