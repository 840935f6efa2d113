"""CLI entry point for DGTL Dental.

A terminal front end for development. For production, use the FastAPI
server (dgtl_dental/server.py).

Usage:
    uv run python -m dgtl_dental.main                      # practice widget (demo clinic)
    uv run python -m dgtl_dental.main --stream             # streaming demo endpoint
    uv run python -m dgtl_dental.main --clinic brightsmil-1234
    uv run python -m dgtl_dental.main --mode guided        # landing-page intake flow
    uv run python -m dgtl_dental.main --debug              # show HTTP calls
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from dgtl_dental.chat.facts import DEMO_CLINIC_ID
from dgtl_dental.chat.guided import GuidedIntake, IntakeDraft
from dgtl_dental.chat.session import RemoteChatBackend, WidgetSession
from dgtl_dental.chat.templates import resolver_for
from dgtl_dental.config import (
    COMPLETION_ENDPOINT,
    DATABASE_URL,
    PRACTICE_PHONE_FALLBACK,
    PUBLIC_BASE_URL,
)
from dgtl_dental.models import ConversationState, Message, Role
from dgtl_dental.services.completion_client import RemoteCompletionClient
from dgtl_dental.services.store import PracticeStore

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("dgtl_dental").setLevel(logging.DEBUG if debug else logging.INFO)


def _banner(title: str, *lines: str) -> None:
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)
    for line in lines:
        print(f"  {line}")
    print("=" * 60 + "\n")


def _logs_remotely(stream: bool) -> bool:
    """True when blocking turns go to this service's own /api/chat, which logs them."""
    return not stream and COMPLETION_ENDPOINT.startswith(f"{PUBLIC_BASE_URL}/api/chat")


def _build_session(store: PracticeStore, clinic_id: str, stream: bool) -> WidgetSession:
    facts = store.load_facts(clinic_id)
    backend = RemoteChatBackend(
        resolver_for(facts),
        RemoteCompletionClient(),
        clinic_id=clinic_id,
        log_chat=None if _logs_remotely(stream) else store.log_chat,
    )
    return WidgetSession(backend, stream=stream, fallback_phone=facts.phone or PRACTICE_PHONE_FALLBACK)


def _read(prompt: str) -> str | None:
    try:
        return input(prompt).strip()
    except (KeyboardInterrupt, EOFError):
        print("\n\nGoodbye!")
        return None


# ── Widget mode ──────────────────────────────────────────────────────


def run_widget(session: WidgetSession, clinic_name: str) -> None:
    _banner(
        f"{clinic_name} - Chat Widget",
        "Type your message and press Enter.",
        "Commands: 'quit' to exit.",
    )
    while True:
        user_input = _read("You: ")
        if user_input is None:
            break
        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Have a great day!")
            break
        if not user_input:
            continue

        shown = ""

        def show(partial: str) -> None:
            nonlocal shown
            if not shown:
                print("\nAssistant: ", end="", flush=True)
            print(partial[len(shown):], end="", flush=True)
            shown = partial

        reply = session.submit(user_input, on_delta=show if session.stream else None)
        if reply is None:
            continue
        if shown and reply.content.startswith(shown):
            print(reply.content[len(shown):] + "\n")
        elif shown:
            # stream broke off; the fallback replaces the partial answer
            print(f"\n\nAssistant: {reply.content}\n")
        else:
            print(f"\nAssistant: {reply.content}\n")


# ── Guided mode ──────────────────────────────────────────────────────


def _show(message: Message) -> None:
    if message.role is Role.ASSISTANT:
        print(f"Bot: {message.content}\n")


def run_guided(intake: GuidedIntake) -> None:
    _banner("DGTL Dental - Guided Setup", "Pick an option by number or type your answer.")
    intake.start()
    while True:
        expected = intake.expected_input()
        if expected is None:
            break
        kind, detail = expected

        free_text_allowed = intake.state is ConversationState.SHOW_ALTERNATE_CONTACT
        if kind == "choice":
            for number, label in enumerate(detail, start=1):
                print(f"  [{number}] {label}")
            if free_text_allowed:
                print("  (or type a reply)")
        elif intake.state is ConversationState.SHOW_DEMO:
            print("  (type 'skip' to move on)")
        answer = _read("You: ")
        if answer is None:
            return
        if not answer:
            continue

        notices_before = len(intake.notifications)
        if intake.state is ConversationState.SHOW_DEMO and answer.lower() == "skip":
            intake.choose("Skip")
        elif kind == "choice" and answer.isdigit() and 1 <= int(answer) <= len(detail):
            intake.choose(detail[int(answer) - 1])
        elif kind == "choice" and answer in detail:
            intake.choose(answer)
        elif kind == "choice" and not free_text_allowed:
            print("Please pick one of the options.\n")
        else:
            intake.submit_text(answer)
        for notice in intake.notifications[notices_before:]:
            print(f"!! {notice}\n")
    print("(conversation ended)\n")


def main():
    """Parse arguments and run the selected front end."""
    parser = argparse.ArgumentParser(description="DGTL Dental CLI")
    parser.add_argument("--mode", choices=("widget", "guided"), default="widget")
    parser.add_argument("--clinic", default=DEMO_CLINIC_ID, help="Practice id for widget mode")
    parser.add_argument("--stream", action="store_true", help="Use the streaming completion endpoint")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    store = PracticeStore(DATABASE_URL)
    store.init_db()
    store.ensure_demo_practice()

    if args.mode == "guided":

        def save(draft: IntakeDraft) -> None:
            store.create_intake_record(**draft.as_record())

        demo = _build_session(store, DEMO_CLINIC_ID, stream=args.stream)
        run_guided(GuidedIntake(save, demo=demo, on_message=_show))
        return

    session = _build_session(store, args.clinic, stream=args.stream)
    run_widget(session, store.load_facts(args.clinic).name)


if __name__ == "__main__":
    main()
