"""Command line export/import for a TaskFlow account.

Runs outside the Streamlit runtime. Supabase credentials come from
``SUPABASE_URL``/``SUPABASE_ANON_KEY`` (or Streamlit secrets when present);
the account from ``--email``/``--password`` or ``TASKFLOW_EMAIL``/
``TASKFLOW_PASSWORD``.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

from supabase import AuthError

from taskflow import __version__
from taskflow.data_management import (
    backup_filename,
    create_backup,
    csv_filename,
    export_user_data,
    get_data_stats,
    import_user_data,
    parse_import_data,
    tasks_to_csv,
)
from taskflow.errors import AuthenticationError
from taskflow.logging_setup import configure_logging
from taskflow.utils.supa import SupabaseConfigError, SupabaseConnectionError, create_supabase_client

logger = logging.getLogger(__name__)


def authenticate(email: Optional[str], password: Optional[str],
                 client_factory: Callable = create_supabase_client) -> Tuple[object, str]:
    """Sign in and return ``(client, user_id)``."""
    email = email or os.getenv("TASKFLOW_EMAIL")
    password = password or os.getenv("TASKFLOW_PASSWORD")
    if not email or not password:
        raise AuthenticationError("Provide --email/--password or set TASKFLOW_EMAIL and TASKFLOW_PASSWORD.")
    client = client_factory()
    try:
        response = client.auth.sign_in_with_password({"email": email, "password": password})
    except AuthError as exc:
        logger.error("CLI sign in failed: %s", exc)
        raise AuthenticationError(str(exc) or "Invalid email or password.",
                                  code=getattr(exc, "code", None)) from exc
    user = getattr(response, "user", None)
    user_id = getattr(user, "id", None)
    if not user_id:
        raise AuthenticationError("Sign in did not return a user.")
    return client, str(user_id)


def _cmd_export(args: argparse.Namespace, client, user_id: str) -> int:
    if args.format == "csv":
        data = export_user_data(user_id, client=client)
        if data is None:
            print("Export failed")
            return 1
        text = tasks_to_csv(data.tasks, data.categories)
        default_name = csv_filename()
    else:
        ok, text = create_backup(user_id, client=client)
        if not ok:
            print(text)
            return 1
        default_name = backup_filename()

    if args.output == "-":
        print(text)
        return 0
    path = Path(args.output or default_name)
    path.write_text(text, encoding="utf-8")
    print(f"Exported to {path}")
    return 0


def _cmd_import(args: argparse.Namespace, client, user_id: str) -> int:
    path = Path(args.file)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Cannot read {path}: {exc}")
        return 1
    data, errors = parse_import_data(text)
    if data is None:
        for err in errors:
            print(err)
        return 1
    stats = import_user_data(
        data,
        user_id,
        skip_duplicates=args.skip_duplicates,
        update_existing=args.update_existing,
        client=client,
    )
    print(
        f"Imported {stats.tasks_imported} tasks, {stats.categories_imported} categories; "
        f"skipped {stats.tasks_skipped} tasks, {stats.categories_skipped} categories"
    )
    for err in stats.errors:
        print(f"  {err}")
    return 1 if stats.errors else 0


def _cmd_stats(args: argparse.Namespace, client, user_id: str) -> int:
    stats = get_data_stats(user_id, client=client)
    if stats is None:
        print("Failed to load stats")
        return 1
    print(json.dumps(stats, indent=2))
    return 0


COMMANDS = {"export": _cmd_export, "import": _cmd_import, "stats": _cmd_stats}


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="taskflow", description="TaskFlow data utilities")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--email", help="Account email (or TASKFLOW_EMAIL)")
    parser.add_argument("--password", help="Account password (or TASKFLOW_PASSWORD)")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Write a JSON backup or CSV of your tasks")
    export.add_argument("--format", choices=["json", "csv"], default="json")
    export.add_argument("--output", "-o", help="Output path, '-' for stdout")

    imp = sub.add_parser("import", help="Import a JSON backup")
    imp.add_argument("file", help="Backup file path")
    imp.add_argument("--skip-duplicates", action="store_true")
    imp.add_argument("--update-existing", action="store_true")

    sub.add_parser("stats", help="Show data statistics")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None, client_factory: Callable = create_supabase_client) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)
    try:
        client, user_id = authenticate(args.email, args.password, client_factory)
    except (AuthenticationError, SupabaseConfigError, SupabaseConnectionError) as exc:
        print(exc)
        return 2
    return COMMANDS[args.command](args, client, user_id)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
