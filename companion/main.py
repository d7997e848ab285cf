"""Companion entry point: a plain-text chat loop on stdin/stdout."""

import asyncio
import logging
import sys

from companion.config import settings
from companion.events import ContextEvent, DoneEvent, ErrorEvent, TokenEvent
from companion.memory.store import get_memory_client
from companion.orchestrator import Orchestrator

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)

PROMPT = "you> "


async def _turn(orchestrator: Orchestrator, message: str, user_id: str, debug: bool) -> None:
    async for event in orchestrator.chat_stream(message, user_id, debug=debug):
        if isinstance(event, TokenEvent):
            sys.stdout.write(event.content)
            sys.stdout.flush()
        elif isinstance(event, ContextEvent) and debug:
            ctx = event.data
            print(f"[{ctx.emotion} / {ctx.intent} / {ctx.depth}, {ctx.memories_used} memories]")
        elif isinstance(event, DoneEvent):
            print()
            if debug and event.turn.debug:
                print(f"[phases: {event.turn.debug.phase_latency_ms}]")
        elif isinstance(event, ErrorEvent):
            print(f"\n[error in {event.phase}: {event.error}]")


async def run(user_id: str = "default", debug: bool = False) -> None:
    memory = get_memory_client()
    if memory.enabled:
        await memory.check_health()

    orchestrator = Orchestrator.get()
    logger.info("Companion ready (model %s)", settings.conscious_model)

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, PROMPT)
            except EOFError:
                break
            message = line.strip()
            if not message:
                continue
            if message == "/quit":
                break
            if message == "/clear":
                count = orchestrator.clear_session(user_id)
                print(f"[cleared {count} turns]")
                continue
            await _turn(orchestrator, message, user_id, debug)
    finally:
        await orchestrator.gateway.drain()
        await memory.aclose()


def main() -> None:
    """Start the chat loop. ``--debug`` prints phase and context details."""
    debug = "--debug" in sys.argv[1:]
    try:
        asyncio.run(run(debug=debug))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
