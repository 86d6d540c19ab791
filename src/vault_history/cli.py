"""Command-line interface: ``vault-history``.

Administers the revision history of a vault database: creates the
history tables, lists and resolves conflicts, shows item history and
uploads a local vault into a remote one.

Exit codes: 0 on success, 1 when the operation failed, 2 on usage or
configuration errors.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Callable

from dotenv import load_dotenv
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from . import __version__
from .backend import Backend, open_backend
from .config import Config, load_config
from .config_loader import discover_config_files, ensure_config, load_hierarchical_config
from .config_schema import build_config
from .errors import BackendUnavailable
from .history import ITEM_FIELDS, ItemTable, VaultHistory
from .history.reporter import (
    conflict_to_json,
    format_conflict_detail,
    format_conflict_list,
    format_item_history,
    format_sync_report,
    report_to_json,
)
from .logger import setup_logging
from .sync import SyncOrchestrator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


class UsageError(ValueError):
    """Bad command-line input detected after argument parsing."""


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def display_url(url: str) -> str:
    """Render a database URL with any password masked."""
    if "://" not in url:
        return url
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return url


def parse_values(pairs: list[str]) -> dict[str, str]:
    """Parse ``FIELD=TEXT`` arguments into a field map."""
    values: dict[str, str] = {}
    for pair in pairs:
        field, sep, text = pair.partition("=")
        if not sep:
            raise UsageError(f"Expected FIELD=TEXT, got '{pair}'")
        if field not in ITEM_FIELDS:
            raise UsageError(
                f"Unknown field '{field}'. Valid fields: {', '.join(ITEM_FIELDS)}"
            )
        values[field] = text
    return values


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace, history: VaultHistory, config: Config) -> int:
    if args.write_config:
        path = ensure_config()
        print(f"Config file: {path}")
    if not history.ensure_schema():
        print("ERROR: Failed to create history tables", file=sys.stderr)
        return EXIT_FAILED
    print(f"History schema ready in {display_url(config.db_url)}")
    return EXIT_OK


def cmd_conflicts_list(
    args: argparse.Namespace, history: VaultHistory, config: Config
) -> int:
    conflicts = history.list_open_conflicts(args.originator)
    if args.json:
        _print_json([conflict_to_json(c) for c in conflicts])
    else:
        print(format_conflict_list(conflicts))
    return EXIT_OK


def cmd_conflicts_show(
    args: argparse.Namespace, history: VaultHistory, config: Config
) -> int:
    values = history.conflict_values(args.conflict_id)
    if values is None:
        print(f"ERROR: Conflict {args.conflict_id} not found", file=sys.stderr)
        return EXIT_FAILED
    if args.json:
        _print_json(conflict_to_json(values.conflict, values))
    else:
        print(format_conflict_detail(values))
    return EXIT_OK


def cmd_conflicts_resolve(
    args: argparse.Namespace, history: VaultHistory, config: Config
) -> int:
    if args.keep_remote:
        ok = history.keep_remote(args.conflict_id, args.admin)
    elif args.accept_local:
        ok = history.accept_local(args.conflict_id, args.admin)
    else:
        ok = history.admin_resolve_conflict(
            args.conflict_id,
            args.admin,
            parse_values(args.value),
            args.summary,
            create_merge_revision=not args.no_revision,
        )
    if not ok:
        print(
            f"ERROR: Could not resolve conflict {args.conflict_id} "
            "(missing, already resolved, or database error)",
            file=sys.stderr,
        )
        return EXIT_FAILED
    print(f"Resolved conflict {args.conflict_id}")
    return EXIT_OK


def cmd_history(args: argparse.Namespace, history: VaultHistory, config: Config) -> int:
    item = history.get_item(args.item_id)
    if item is None:
        print(f"ERROR: Item {args.item_id} not found", file=sys.stderr)
        return EXIT_FAILED
    versions = history.item_history(args.item_id)
    revisions = {}
    for v in versions:
        if v.revision_id:
            rev = history.store.get_revision(v.revision_id)
            if rev is not None:
                revisions[v.revision_id] = rev
    if args.json:
        _print_json(
            {
                "item": item.model_dump(mode="json"),
                "versions": [
                    {
                        **v.model_dump(mode="json"),
                        "revision": (
                            revisions[v.revision_id].model_dump(mode="json")
                            if v.revision_id in revisions
                            else None
                        ),
                    }
                    for v in versions
                ],
            }
        )
    else:
        print(
            format_item_history(
                args.item_id, versions, revisions, item.head_revision_id
            )
        )
    return EXIT_OK


def cmd_upload(args: argparse.Namespace, history: VaultHistory, config: Config) -> int:
    if not config.remote_url:
        raise UsageError(
            "Remote vault not configured. Pass --remote, set VAULT_REMOTE_URL, "
            "or add 'sync.remote_url' to config.yml."
        )
    if config.uploader_user_id is None:
        raise UsageError(
            "Uploader not configured. Pass --uploader, set VAULT_UPLOADER_ID, "
            "or add 'sync.uploader_user_id' to config.yml."
        )

    remote_backend = open_backend(config.remote_url)
    try:
        remote = VaultHistory(
            remote_backend, idempotent_resolve=config.idempotent_resolve
        )
        orchestrator = SyncOrchestrator(
            ItemTable(history.backend),
            remote,
            remote_name=display_url(config.remote_url),
            base_strategy=config.base_strategy,
        )

        def progress(percent: int, message: str) -> None:
            if percent < 0:
                print(f"  ERROR: {message}", file=sys.stderr)
            else:
                print(f"  [{percent:3d}%] {message}", file=sys.stderr)

        report = orchestrator.upload(
            config.uploader_user_id,
            dry_run=args.dry_run,
            progress=None if args.json else progress,
        )
    finally:
        remote_backend.close()

    if args.json:
        _print_json(report_to_json(report))
    else:
        print(format_sync_report(report))
    return EXIT_OK if report.ok else EXIT_FAILED


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-history",
        description="Revision history and merge-conflict administration for vault databases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create history tables (and a starter config file)
  vault-history --db vault.db init --write-config

  # Review open conflicts
  vault-history conflicts list
  vault-history conflicts show 3f1c...

  # Resolve with an explicit value, or pick a side
  vault-history conflicts resolve 3f1c... --admin 1 --value "Content=merged text"
  vault-history conflicts resolve 3f1c... --admin 1 --keep-remote

  # Upload local items into a remote vault
  vault-history upload --remote mysql+pymysql://u:p@host/vault --uploader 7 --dry-run
        """,
    )
    parser.add_argument(
        "--db",
        help="Vault database (takes precedence over VAULT_DB_URL and config files)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"vault-history version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    p_init = sub.add_parser("init", help="Create history tables")
    p_init.add_argument(
        "--write-config",
        action="store_true",
        help="Write a starter .vault_history/config.yml if none exists",
    )
    p_init.set_defaults(handler=cmd_init)

    p_conflicts = sub.add_parser("conflicts", help="List, show and resolve conflicts")
    conflicts_sub = p_conflicts.add_subparsers(dest="conflicts_command", metavar="ACTION")
    conflicts_sub.required = True

    p_list = conflicts_sub.add_parser("list", help="List open conflicts")
    p_list.add_argument("--originator", type=int, help="Only conflicts of this user")
    p_list.add_argument("--json", action="store_true", help="JSON output")
    p_list.set_defaults(handler=cmd_conflicts_list)

    p_show = conflicts_sub.add_parser("show", help="Show a conflict with its values")
    p_show.add_argument("conflict_id")
    p_show.add_argument("--json", action="store_true", help="JSON output")
    p_show.set_defaults(handler=cmd_conflicts_show)

    p_resolve = conflicts_sub.add_parser("resolve", help="Resolve a conflict")
    p_resolve.add_argument("conflict_id")
    p_resolve.add_argument("--admin", type=int, required=True, help="Resolving admin user id")
    how = p_resolve.add_mutually_exclusive_group(required=True)
    how.add_argument(
        "--value",
        action="append",
        metavar="FIELD=TEXT",
        help="Merged value for a field (repeatable)",
    )
    how.add_argument("--keep-remote", action="store_true", help="Keep the remote value")
    how.add_argument("--accept-local", action="store_true", help="Take the local value")
    p_resolve.add_argument("--summary", default="Admin resolved", help="Resolution summary")
    p_resolve.add_argument(
        "--no-revision",
        action="store_true",
        help="Write values to the item without recording a merge revision",
    )
    p_resolve.set_defaults(handler=cmd_conflicts_resolve)

    p_history = sub.add_parser("history", help="Show the version log of an item")
    p_history.add_argument("item_id", type=int)
    p_history.add_argument("--json", action="store_true", help="JSON output")
    p_history.set_defaults(handler=cmd_history)

    p_upload = sub.add_parser("upload", help="Upload local items into a remote vault")
    p_upload.add_argument("--remote", help="Remote vault URL (overrides VAULT_REMOTE_URL)")
    p_upload.add_argument("--uploader", type=int, help="Uploader user id (overrides VAULT_UPLOADER_ID)")
    p_upload.add_argument("--dry-run", action="store_true", help="Only report what would change")
    p_upload.add_argument(
        "--base",
        choices=["remote-head", "local-head"],
        help="Revision uploads are based on (default: remote-head)",
    )
    p_upload.add_argument("--json", action="store_true", help="JSON output")
    p_upload.set_defaults(handler=cmd_upload)

    return parser


def resolve_config(args: argparse.Namespace) -> Config:
    """CLI args > env (.env loaded first) > YAML config > defaults."""
    load_dotenv()
    unified = build_config(load_hierarchical_config())
    return load_config(
        db_url=args.db,
        remote_url=getattr(args, "remote", None),
        uploader_user_id=getattr(args, "uploader", None),
        base_strategy=getattr(args, "base", None),
        debug=args.debug,
        unified=unified,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = resolve_config(args)
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(
        mode="cli", debug=config.debug, log_file=args.log_file or config.log_file
    )
    if not config.debug and "LOG_LEVEL" not in os.environ:
        logging.getLogger().setLevel(
            getattr(logging, config.log_level.upper(), logging.INFO)
        )
    config_files = discover_config_files()
    if config_files:
        logger.debug("Config file: %s", config_files[0])

    handler: Callable[[argparse.Namespace, VaultHistory, Config], int] = args.handler
    backend: Backend | None = None
    try:
        backend = open_backend(config.db_url)
        history = VaultHistory(backend, idempotent_resolve=config.idempotent_resolve)
        return handler(args, history, config)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE
    except BackendUnavailable as e:
        logger.error("Database error: %s", e)
        print(f"ERROR: Database error: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        if backend is not None:
            backend.close()


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
