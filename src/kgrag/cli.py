"""kgrag CLI: main entry point.

Commands:
  init             Initialize a new kgrag project
  index            Index new files in the knowledge folder (or one --path)
  watch            Keep the index in step with the knowledge folder
  search           Rank indexed passages against a query
  ask              Answer a question from the indexed documents
  reindex          Drop the index and rebuild it
  status           Show store info and indexed files
  test-connection  Check that the configured backend is reachable
  config           View and update project settings
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from kgrag.core.events import IndexEvent


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="kgrag",
        description="kgrag: index a knowledge folder and ask questions about it",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    # init
    init_parser = subparsers.add_parser("init", help="Initialize a new kgrag project")
    init_parser.add_argument("path", nargs="?", default=".", help="Project directory")

    # index
    index_parser = subparsers.add_parser("index", help="Index the knowledge folder")
    index_parser.add_argument("--path", help="Index a single file instead of scanning")

    # watch
    watch_parser = subparsers.add_parser("watch", help="Poll the knowledge folder for changes")
    watch_parser.add_argument(
        "--interval", type=float, default=2.0, help="Seconds between polls (default: 2)"
    )

    # search
    search_parser = subparsers.add_parser("search", help="Search indexed documents")
    search_parser.add_argument("query", help="Search query")

    # ask
    ask_parser = subparsers.add_parser("ask", help="Ask a question about indexed documents")
    ask_parser.add_argument("question", help="Question to answer")

    # reindex
    subparsers.add_parser("reindex", help="Drop the index and rebuild it")

    # status
    subparsers.add_parser("status", help="Show store info and indexed files")

    # test-connection
    subparsers.add_parser("test-connection", help="Check the configured backend")

    # config
    config_parser = subparsers.add_parser("config", help="View and update project settings")
    config_parser.add_argument(
        "action", choices=["show", "get", "set"], help="Action to perform"
    )
    config_parser.add_argument("key", nargs="?", help="Setting key, dotted (for get/set)")
    config_parser.add_argument("value", nargs="?", help="Setting value (for set)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    commands = {
        "init": cmd_init,
        "index": cmd_index,
        "watch": cmd_watch,
        "search": cmd_search,
        "ask": cmd_ask,
        "reindex": cmd_reindex,
        "status": cmd_status,
        "test-connection": cmd_test_connection,
        "config": cmd_config,
    }

    try:
        return commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(args: argparse.Namespace, level_name: str) -> None:
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _print_event(event: IndexEvent) -> None:
    if event.is_error:
        print(f"{event.message}: {event.data.get('error', '')}", file=sys.stderr)
    else:
        print(event.message)


def _find_root() -> Path | None:
    from kgrag.utils.paths import find_project_root

    project_root = find_project_root()
    if project_root is None:
        print("No kgrag project found. Run 'kgrag init' first.", file=sys.stderr)
    return project_root


def _open_service(args: argparse.Namespace, project_root: Path) -> Any:
    from kgrag.config import load_settings, validate_settings
    from kgrag.rag.service import RAGService

    settings = load_settings(project_root)
    errors = validate_settings(settings)
    if errors:
        raise ValueError("; ".join(errors))
    _configure_logging(args, settings.log_level)
    return RAGService(project_root, settings=settings, listener=_print_event)


def _run_with_service(args: argparse.Namespace, body: Any, scan: bool = False) -> int:
    """Initialize a service, run body(service), and always dispose it."""
    project_root = _find_root()
    if project_root is None:
        return 1
    service = _open_service(args, project_root)

    async def run() -> int:
        try:
            await service.initialize(scan=scan)
            return await body(service)
        finally:
            await service.dispose()

    return asyncio.run(run())


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new kgrag project."""
    from kgrag.config import KgragSettings, save_settings

    project_dir = Path(args.path).resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    kgrag_dir = project_dir / ".kgrag"
    kgrag_dir.mkdir(exist_ok=True)

    settings = KgragSettings()
    settings_path = kgrag_dir / "settings.json"
    if not settings_path.exists():
        save_settings(settings, settings_path)

    (project_dir / settings.knowledge_dir).mkdir(exist_ok=True)

    gitignore = project_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text(".kgrag/knowledge.sqlite\n", encoding="utf-8")

    print(f"Initialized kgrag project at {project_dir}")
    return 0


def cmd_index(args: argparse.Namespace) -> int:
    """Index new files, or a single file with --path."""
    single = getattr(args, "path", None)

    async def body(service: Any) -> int:
        if single:
            outcome = await service.index_file(Path(single).resolve())
            if outcome is None or not outcome.indexed:
                state = outcome.state.value if outcome is not None else "error"
                print(f"Not indexed ({state}): {single}", file=sys.stderr)
                return 1
            return 0
        if await service.scan(only_new=True) == 0:
            print("No new files to index")
        return 0

    return _run_with_service(args, body)


def cmd_watch(args: argparse.Namespace) -> int:
    """Index new files, then poll the knowledge folder until interrupted."""
    interval = max(0.1, float(getattr(args, "interval", 2.0)))

    async def body(service: Any) -> int:
        print(f"Watching {service.knowledge_dir} (Ctrl-C to stop)")
        while True:
            await asyncio.sleep(interval)
            await service.sync()

    return _run_with_service(args, body, scan=True)


def cmd_search(args: argparse.Namespace) -> int:
    """Print ranked passages for a query."""

    async def body(service: Any) -> int:
        results = await service.search(args.query)
        if not results:
            print("No results.")
            return 0
        for r in results:
            print(f"[{r.relevance:5.1f}%] {r.file_path}")
            snippet = " ".join(r.snippet.split())
            print(f"    {snippet[:200]}")
        return 0

    return _run_with_service(args, body)


def cmd_ask(args: argparse.Namespace) -> int:
    """Answer a question from the indexed documents."""

    async def body(service: Any) -> int:
        result = await service.ask(args.question)
        print(result.answer)
        if result.citations:
            print()
            for citation in result.citations:
                print(citation)
        return 0

    return _run_with_service(args, body)


def cmd_reindex(args: argparse.Namespace) -> int:
    """Drop the index and rebuild it from the knowledge folder."""

    async def body(service: Any) -> int:
        count = await service.reindex_all()
        print(f"Re-indexed {count} files")
        return 0

    return _run_with_service(args, body)


def cmd_status(args: argparse.Namespace) -> int:
    """Show store info, indexed files, and cloud status when applicable."""

    async def body(service: Any) -> int:
        info = service.get_store_info()
        files = service.get_indexed_files()
        status: dict[str, Any] = {
            "mode": service.provider.mode,
            "store": info.to_dict() if info is not None else None,
            "files": [f.file_path for f in files],
        }
        cloud = await service.get_cloud_store_status()
        if cloud is not None:
            status["cloud"] = cloud.to_dict()
        print(json.dumps(status, indent=2))
        return 0

    return _run_with_service(args, body)


def cmd_test_connection(args: argparse.Namespace) -> int:
    """Check that the backend answers."""

    async def body(service: Any) -> int:
        ok = await service.test_connection()
        print("Connection OK" if ok else "Connection failed")
        return 0 if ok else 1

    return _run_with_service(args, body)


ALLOWED_CONFIG_KEYS = {
    "mode",
    "knowledge_dir",
    "chunk_size",
    "chunk_overlap",
    "log_level",
    "local.api_base",
    "local.api_key",
    "local.embedding_model",
    "local.inference_model",
    "local.timeout",
    "local.embedding_dimensions",
}

INT_CONFIG_KEYS = {"chunk_size", "chunk_overlap", "local.embedding_dimensions"}
FLOAT_CONFIG_KEYS = {"local.timeout"}


def _parse_config_value(key: str, raw: str) -> Any:
    """Convert a command-line string into the type the key expects."""
    if key == "local.embedding_dimensions" and raw.lower() in ("null", "none", ""):
        return None
    if key in INT_CONFIG_KEYS:
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{key} must be an integer") from None
    if key in FLOAT_CONFIG_KEYS:
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"{key} must be a number") from None
    return raw


def _get_dotted(data: dict[str, Any], key: str) -> Any:
    value: Any = data
    for part in key.split("."):
        value = value[part]
    return value


def _set_dotted(data: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def cmd_config(args: argparse.Namespace) -> int:
    """View and update project settings."""
    from kgrag.config import (
        KgragSettings,
        deep_merge,
        load_json_file,
        load_settings,
        validate_settings,
    )
    from kgrag.utils.paths import get_project_settings_path

    project_root = _find_root()
    if project_root is None:
        return 1

    action = args.action

    if action == "show":
        settings = load_settings(project_root)
        print(json.dumps(settings.to_dict(), indent=2))
        return 0

    if not args.key:
        print(f"Usage: kgrag config {action} <key>{' <value>' if action == 'set' else ''}", file=sys.stderr)
        return 1
    if args.key not in ALLOWED_CONFIG_KEYS:
        print(
            f"Unknown key: {args.key}. "
            f"Allowed keys: {', '.join(sorted(ALLOWED_CONFIG_KEYS))}",
            file=sys.stderr,
        )
        return 1

    if action == "get":
        value = _get_dotted(load_settings(project_root).to_dict(), args.key)
        print(value if value is not None else "")
        return 0

    if action == "set":
        if args.value is None:
            print("Usage: kgrag config set <key> <value>", file=sys.stderr)
            return 1
        try:
            value = _parse_config_value(args.key, args.value)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 1

        settings_path = get_project_settings_path(project_root)
        data = load_json_file(settings_path)
        _set_dotted(data, args.key, value)

        # Validate the merged result before writing
        merged = deep_merge(load_settings(project_root).to_dict(), data)
        errors = validate_settings(KgragSettings.from_dict(merged))
        if errors:
            for err in errors:
                print(f"Validation error: {err}", file=sys.stderr)
            return 1

        settings_path.parent.mkdir(parents=True, exist_ok=True)
        settings_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        print(f"{args.key} = {value}")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
