import argparse
import logging
import sys

from clipai import __version__
from clipai.config import LOG_PATH, MENU_DISPLAY_COUNT
from clipai.models import EntryFilter
from clipai.utils import ensure_dirs

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(verbose: bool = False, log_file: bool = True) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        ensure_dirs()
        handlers.insert(0, logging.FileHandler(LOG_PATH))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )


def run_app(verbose: bool = False) -> int:
    """Run the ClipAI menu-bar application."""
    setup_logging(verbose)

    from clipai.app import ClipAIApp

    app = ClipAIApp()
    app.run()
    return 0


def _backend():
    from clipai.backend import Backend

    return Backend()


def _report(result) -> int:
    if not result.success:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    if result.message:
        print(result.message)
    return 0


def cmd_history(args) -> int:
    entry_filter = EntryFilter(
        search_text=args.search,
        favorites_only=args.favorites,
        pinned_only=args.pinned,
        category=args.category,
    )
    entries = _backend().get_entries(limit=args.limit, filter=entry_filter)
    if not entries:
        print("No clipboard history.")
        return 0

    from clipai.menu import entry_preview

    for entry in entries:
        tag = f"[{entry.category}] " if entry.category else ""
        print(f"{entry.id}  {tag}{entry_preview(entry)}")
    return 0


def cmd_clear(_args) -> int:
    return _report(_backend().clear_all())


def cmd_max_items(args) -> int:
    backend = _backend()
    if args.value is None:
        print(backend.get_max_items())
        return 0
    result = backend.set_max_items(args.value)
    if result.success:
        print(f"History size set to {result.data}")
        return 0
    return _report(result)


def cmd_roles(_args) -> int:
    for role in _backend().get_roles():
        kind = "preset" if role.is_preset else "custom"
        print(f"{role.id}  {role.icon} {role.name} ({kind}) - {role.description}")
    return 0


def cmd_reset_role(args) -> int:
    return _report(_backend().reset_role(args.role_id))


def cmd_test_connection(args) -> int:
    result = _backend().test_connection(args.url, args.api_key)
    latency = f" ({result.latency_ms} ms)" if result.latency_ms is not None else ""
    print(f"{result.message}{latency}")
    return 0 if result.success else 1


def cmd_models(args) -> int:
    result = _backend().list_models(args.url, args.api_key)
    if not result.success:
        return _report(result)
    for model in result.data:
        print(model.id if not model.description else f"{model.id}  {model.description}")
    return 0


def cmd_translate(args) -> int:
    result = _backend().translate_text(args.text)
    if not result.success:
        return _report(result)
    print(result.data.text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipai",
        description="ClipAI - Clipboard history manager for macOS with AI helpers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  clipai                       # Run the menu-bar app
  clipai history -n 5          # Show the five most relevant entries
  clipai max-items 200         # Keep at most 200 entries
  clipai models http://localhost:11434/v1/models
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the menu-bar app (default)")

    history = sub.add_parser("history", help="List clipboard history")
    history.add_argument("-n", "--limit", type=int, default=MENU_DISPLAY_COUNT, help="Number of entries to show")
    history.add_argument("--search", help="Case-insensitive substring filter")
    history.add_argument("--favorites", action="store_true", help="Only favorites")
    history.add_argument("--pinned", action="store_true", help="Only pinned entries")
    history.add_argument("--category", help="Only entries with this category")
    history.set_defaults(func=cmd_history)

    clear = sub.add_parser("clear", help="Delete all clipboard history")
    clear.set_defaults(func=cmd_clear)

    max_items = sub.add_parser("max-items", help="Show or set the history size")
    max_items.add_argument("value", nargs="?", type=int)
    max_items.set_defaults(func=cmd_max_items)

    roles = sub.add_parser("roles", help="List AI roles")
    roles.set_defaults(func=cmd_roles)

    reset_role = sub.add_parser("reset-role", help="Restore a preset role to its factory text")
    reset_role.add_argument("role_id")
    reset_role.set_defaults(func=cmd_reset_role)

    test_connection = sub.add_parser("test-connection", help="Check an OpenAI-compatible endpoint")
    test_connection.add_argument("url", help="API base URL")
    test_connection.add_argument("--api-key")
    test_connection.set_defaults(func=cmd_test_connection)

    models = sub.add_parser("models", help="List models offered by an endpoint")
    models.add_argument("url", help="Model listing URL")
    models.add_argument("--api-key")
    models.set_defaults(func=cmd_models)

    translate = sub.add_parser("translate", help="Translate text with the configured translation API")
    translate.add_argument("text")
    translate.set_defaults(func=cmd_translate)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "run"):
        sys.exit(run_app(args.verbose))

    setup_logging(args.verbose, log_file=False)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
