"""
main.py

Entry point for Persona Hub.
Wires the engines, retrieval engine, tools and personas together and
starts an interactive CLI chat loop.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

import argparse
import logging
import sys

import config
from core.learning import LearningManager
from core.orchestrator import Orchestrator
from core.personas import load_default_registry
from core.session import ChatSession
from engines.router import LLMRouter, build_default_router
from rag.embeddings import get_embedder
from rag.engine import RAGEngine
from tools.registry import build_default_registry

_log = logging.getLogger("persona.main")
_handler = logging.FileHandler(config.LOGS_DIR / "main.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(logging.Formatter("%(message)s"))
logging.getLogger().addHandler(console_handler)
logging.getLogger().setLevel(logging.WARNING)

HELP_TEXT = """Commands:
  /persona <id>            switch persona
  /clear                   clear this persona's history
  /stats                   show knowledge index stats
  /upload <path> [cat]     teach the persona a document
  /correct <text>          correct the last answer
  /learn                   learn Q/A pairs from this conversation
  /models                  list available models
  /help                    show this help
  exit                     quit"""


def print_banner() -> None:
    """Print the Persona Hub welcome banner."""
    print()
    print("=" * 60)
    print("   PERSONA HUB - Retrieval-Augmented Persona Agent")
    print("=" * 60)
    print()


def print_engines(router: LLMRouter) -> None:
    """
    Print configured engines.

    Args:
        router: The LLM router.
    """
    print("Engines:")
    configured = set(router.available_providers())
    for key, label in (("gemini", "Gemini"), ("openai", "OpenAI")):
        status = "[OK] configured" if key in configured else "[--] not configured"
        print(f"  {label:10} {status}")
    print()


def build_session(bootstrap: bool = True) -> ChatSession:
    """
    Build every component and return a ready chat session.

    Args:
        bootstrap: Load bundled knowledge into the static indices.

    Returns:
        The ChatSession.
    """
    router = build_default_router()
    print_engines(router)

    embedder = get_embedder()
    rag_engine = RAGEngine(embedder, config.DATA_DIR, quick_call=router.quick_call if router.has_quick_call else None)
    if rag_engine.ensure_embedding_consistency():
        print(f"Knowledge index: prepared for {embedder.marker}")

    personas = load_default_registry()
    registry = build_default_registry()
    orchestrator = Orchestrator(router, rag_engine, registry, personas)
    session = ChatSession(orchestrator, rag_engine, LearningManager(rag_engine), personas)

    if bootstrap:
        loaded = session.bootstrap_knowledge()
        for persona_id, count in loaded.items():
            if count:
                print(f"Knowledge: {persona_id} +{count} chunks")
    return session


def handle_command(session: ChatSession, line: str, last_message_id: str | None) -> None:
    """
    Run one slash command.

    Args:
        session: The chat session.
        line: The command line, starting with "/".
        last_message_id: Id of the last assistant message, for /correct.
    """
    name, _, rest = line[1:].partition(" ")
    rest = rest.strip()
    persona_id = session.current_persona

    if name == "persona" and rest:
        session.current_persona = rest
        print(f"Persona: {session.personas.get(rest).name}")
    elif name == "clear":
        session.clear_history(persona_id)
        print("History cleared.")
    elif name == "stats":
        for kind, stats in session.rag_stats(persona_id).items():
            print(f"  {kind:8} {stats['count']:6} chunks  {len(stats['sources'])} sources")
    elif name == "upload" and rest:
        path, _, category = rest.partition(" ")
        result = session.upload_knowledge(persona_id, path, category.strip() or None)
        print(f"[Error] {result.error}" if result.error else f"Learned {result.chunks_added} chunks.")
    elif name == "correct" and rest:
        if last_message_id is None:
            print("Nothing to correct yet.")
            return
        added = session.submit_feedback(last_message_id, persona_id, "correction", rest)
        print(f"Thanks, learned {added} correction.")
    elif name == "learn":
        print(f"Learned {session.learn_from_history(persona_id)} Q/A pairs.")
    elif name == "models":
        for provider, model in session.orchestrator.router.available_models():
            print(f"  {provider:8} {model}")
    else:
        print(HELP_TEXT)


def chat_loop(session: ChatSession) -> None:
    """
    Run the interactive chat loop.

    Args:
        session: The chat session.
    """
    print("Type your message and press Enter to chat. /help for commands, 'exit' to quit.")
    print()
    last_message_id: str | None = None

    while True:
        persona = session.personas.get(session.current_persona)
        try:
            user_input = input("You: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input.lower() in ("exit", "quit", "bye"):
            print("Goodbye!")
            break
        if user_input.startswith("/"):
            handle_command(session, user_input, last_message_id)
            continue

        print(f"{persona.name}: ", end="", flush=True)
        try:
            for fragment in session.send_message(user_input):
                if fragment.tool_call is not None:
                    print(f"\n  [{fragment.tool_call.name}] {fragment.progress_message or ''}", flush=True)
                if fragment.text:
                    print(fragment.text, end="", flush=True)
                if fragment.done:
                    print()
                    if fragment.message_id:
                        last_message_id = fragment.message_id
                    if fragment.usage is not None:
                        _log.info(
                            "Turn usage %s/%s in=%d out=%d",
                            fragment.usage.provider, fragment.usage.model,
                            fragment.usage.input_tokens, fragment.usage.output_tokens,
                        )
        except KeyboardInterrupt:
            # Ctrl+C stops the answer, not the program
            session.cancel_active()
            print("\n[Cancelled]")


def parse_args() -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(description="Persona Hub - Retrieval-Augmented Persona Agent")
    parser.add_argument(
        "--persona",
        default=config.DEFAULT_PERSONA,
        help=f"Persona to start with (default: {config.DEFAULT_PERSONA})",
    )
    parser.add_argument(
        "--no-bootstrap",
        action="store_true",
        help="Skip loading bundled knowledge at startup",
    )
    return parser.parse_args()


def main() -> None:
    """
    Main entry point. Builds the session and starts the CLI chat loop.

    Returns:
        None
    """
    args = parse_args()
    print_banner()
    print("Initializing Persona Hub...")

    try:
        session = build_session(bootstrap=not args.no_bootstrap)
    except Exception as exc:
        print(f"[Fatal] {exc}")
        _log.exception("Startup failed")
        sys.exit(1)

    session.current_persona = args.persona
    print(f"Persona: {session.personas.get(args.persona).name}")
    print("-" * 60)
    print()

    try:
        chat_loop(session)
    except KeyboardInterrupt:
        print("\n\nInterrupted. Goodbye!")
    finally:
        session.rag_engine.dispose()
        session.orchestrator.tool_registry.shutdown()

    _log.info("Persona Hub shutdown complete")


if __name__ == "__main__":
    main()
