"""Command-line entry points.

  python -m voice_booking serve    run the NLU service under uvicorn
  python -m voice_booking chat     typed console session against an in-memory form
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import logging
import sys

from voice_booking.config import settings
from voice_booking.events import EventBus
from voice_booking.flows.courier_booking import STEP_COUNT
from voice_booking.form_store import InMemoryFormStore
from voice_booking.models.dialogue import DetectedLocation
from voice_booking.resolvers import build_resolver
from voice_booking.runtime import VoiceRuntime
from voice_booking.session import VoiceAssistant
from voice_booking.speech.console import ConsoleRecognitionSource, ConsoleSynthesisSink

log = logging.getLogger("voice_booking.cli")


def _configure_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
    )


def _check_config(config) -> bool:
    try:
        for warning in config.validate_startup():
            log.warning("Config: %s", warning)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return False
    return True


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    _configure_logging(logging.DEBUG if settings.debug else logging.INFO)
    if not _check_config(settings):
        return 2
    uvicorn.run(
        "voice_booking.app:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def _static_locator(value: str):
    address, _, city = value.rpartition(",")

    async def locate() -> DetectedLocation:
        return DetectedLocation(address=address.strip(), city=city.strip())

    return locate


async def _chat(config, location: str | None) -> None:
    bus = EventBus()
    form = InMemoryFormStore(
        bus,
        step_count=STEP_COUNT,
        locator=_static_locator(location) if location else None,
    )
    assistant = VoiceAssistant(form=form, bus=bus, resolver=build_resolver(config), config=config)
    runtime = VoiceRuntime(
        assistant, bus, ConsoleRecognitionSource(), ConsoleSynthesisSink(), config=config,
    )
    try:
        await runtime.run()
    finally:
        await runtime.stop()
        filled = {k: v for k, v in form.snapshot().items() if v}
        if filled:
            print(f"\nForm: {filled}")


def _cmd_chat(args: argparse.Namespace) -> int:
    _configure_logging(logging.INFO if args.verbose else logging.WARNING)
    updates = {}
    if args.offline:
        updates.update(intent_resolver="pattern", llm_provider="none")
    if args.style:
        updates["booking_style"] = args.style
    config = settings.model_copy(update=updates) if updates else settings
    if not _check_config(config):
        print("Use --offline to chat without a language model.", file=sys.stderr)
        return 2
    try:
        asyncio.run(_chat(config, args.location))
    except KeyboardInterrupt:
        pass
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voice-booking", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the NLU HTTP service")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=_cmd_serve)

    chat = sub.add_parser("chat", help="typed console conversation")
    chat.add_argument("--offline", action="store_true", help="local rules only, no LLM")
    chat.add_argument("--style", choices=["guided", "conversational"], default=None)
    chat.add_argument(
        "--location", default=None, metavar="ADDRESS,CITY",
        help='answer "detect my location" with this address',
    )
    chat.add_argument("-v", "--verbose", action="store_true")
    chat.set_defaults(func=_cmd_chat)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
