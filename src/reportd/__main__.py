"""
reportd · Scheduled Report Engine -- Entry Point.

Usage: reportd serve
       reportd schedule list --active-only
       reportd schedule create --name Daily --cron "0 9 * * *" --title "Daily"
       reportd history list --schedule <id> --tag manual-run
       reportd --config /path/to/config.yaml history stats
       python -m reportd
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from reportd import __version__
from reportd.core.errors import NotFoundError, ReportdError, StorageError, ValidationError

if TYPE_CHECKING:
    from reportd.models import ReportRecord, Schedule
    from reportd.scheduler import ReportScheduler

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_VALIDATION = 2
EXIT_STORAGE = 3
EXIT_NOT_FOUND = 4


# ============================================================================
# Argumente
# ============================================================================


def _add_schedule_commands(sub: argparse._SubParsersAction) -> None:
    schedule = sub.add_parser("schedule", help="Schedules verwalten")
    cmds = schedule.add_subparsers(dest="action", required=True)

    p = cmds.add_parser("list", help="Alle Schedules anzeigen")
    p.add_argument("--active-only", action="store_true", help="Nur aktive Schedules")

    p = cmds.add_parser("show", help="Einen Schedule als JSON anzeigen")
    p.add_argument("id")

    p = cmds.add_parser("create", help="Neuen Schedule anlegen")
    p.add_argument("--from-file", type=Path, default=None,
                   help="Schedule als JSON- oder YAML-Datei")
    p.add_argument("--id", dest="schedule_id", default=None)
    p.add_argument("--name", default=None)
    p.add_argument("--cron", default=None, help='Cron-Ausdruck, z.B. "0 9 * * *"')
    p.add_argument("--timezone", default=None)
    p.add_argument("--title", default=None, help="Report-Titel")
    p.add_argument("--data-source", default=None, help="Dateiname ohne Endung")
    p.add_argument("--data-type", choices=["json", "csv"], default="json")
    p.add_argument("--recipient", action="append", default=[], help="Mehrfach möglich")
    p.add_argument("--base-url", default=None)
    p.add_argument("--inactive", action="store_true", help="Ohne Timer anlegen")

    p = cmds.add_parser("update", help="Schedule ändern")
    p.add_argument("id")
    p.add_argument("--name", default=None)
    p.add_argument("--cron", default=None)
    p.add_argument("--timezone", default=None)
    p.add_argument("--recipient", action="append", default=None)
    p.add_argument("--base-url", default=None)
    state = p.add_mutually_exclusive_group()
    state.add_argument("--activate", dest="active", action="store_const", const=True)
    state.add_argument("--deactivate", dest="active", action="store_const", const=False)

    p = cmds.add_parser("delete", help="Schedule löschen")
    p.add_argument("id")

    p = cmds.add_parser("run", help="Schedule sofort ausführen")
    p.add_argument("id")


def _add_history_commands(sub: argparse._SubParsersAction) -> None:
    history = sub.add_parser("history", help="Report-Historie")
    cmds = history.add_subparsers(dest="action", required=True)

    p = cmds.add_parser("list", help="Reports suchen")
    p.add_argument("--schedule", default=None, help="Nur Reports dieses Schedules")
    p.add_argument("--search", default=None, help="Freitext über Titel/Schedule-Name")
    p.add_argument("--tag", action="append", default=[], help="Mindestens einer dieser Tags")
    p.add_argument("--start", type=datetime.fromisoformat, default=None, help="ISO-Datum")
    p.add_argument("--end", type=datetime.fromisoformat, default=None, help="ISO-Datum")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--offset", type=int, default=0)

    p = cmds.add_parser("show", help="Einen Report anzeigen")
    p.add_argument("id")

    p = cmds.add_parser("tag", help="Tags hinzufügen")
    p.add_argument("id")
    p.add_argument("tags", nargs="+")

    p = cmds.add_parser("untag", help="Tags entfernen")
    p.add_argument("id")
    p.add_argument("tags", nargs="+")

    p = cmds.add_parser("delete", help="Report aus der Historie löschen")
    p.add_argument("id")
    p.add_argument("--delete-artifact", action="store_true",
                   help="Auch das Report-Verzeichnis löschen")

    p = cmds.add_parser("cleanup", help="Alte Reports entfernen")
    p.add_argument("days", type=int, nargs="?", default=None,
                   help="Maximales Alter in Tagen (Default: history.max_age_days)")
    p.add_argument("--keep-artifacts", action="store_true")

    cmds.add_parser("stats", help="Statistiken anzeigen")
    cmds.add_parser("tags", help="Alle verwendeten Tags")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Kommandozeilen-Argumente parsen."""
    parser = argparse.ArgumentParser(
        prog="reportd",
        description="reportd -- Scheduled Report Engine",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"reportd v{__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Pfad zur config.yaml (Default: ~/.reportd/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log-Level überschreiben",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Scheduler starten und laufen lassen")
    _add_schedule_commands(sub)
    _add_history_commands(sub)
    return parser.parse_args(argv)


# ============================================================================
# Ausgabe (bewusst print(): das ist die CLI-Ausgabe, kein Logging)
# ============================================================================


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _print_schedule_row(schedule: Schedule) -> None:
    state = "active" if schedule.active else "inactive"
    print(f"{schedule.id:<24} {state:<9} {schedule.cron_expression:<16} {schedule.name}")


def _print_report_row(report: ReportRecord) -> None:
    ts = report.timestamp.strftime("%Y-%m-%d %H:%M")
    tags = ",".join(report.tags)
    print(f"{report.id:<32} {ts}  {report.title}  [{tags}]")


# ============================================================================
# Kommandos
# ============================================================================


def _schedule_from_args(args: argparse.Namespace) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if args.from_file is not None:
        with open(args.from_file, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValidationError(f"Schedule-Datei enthält kein Objekt: {args.from_file}")
        data.update(loaded)

    overrides = {
        "id": args.schedule_id,
        "name": args.name,
        "cron_expression": args.cron,
        "timezone": args.timezone,
        "base_url": args.base_url,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    if args.recipient:
        data["recipients"] = args.recipient
    if args.inactive:
        data["active"] = False

    if args.title or args.data_source:
        report_config = dict(data.get("report_config") or {})
        if args.title:
            report_config["title"] = args.title
        if args.data_source:
            report_config["data_source"] = {
                "type": "file",
                "file_type": args.data_type,
                "file_name": args.data_source,
            }
        data["report_config"] = report_config
    return data


async def _schedule_command(scheduler: ReportScheduler, args: argparse.Namespace) -> int:
    if args.action == "list":
        schedules = scheduler.list_schedules(active_only=args.active_only)
        if not schedules:
            print("Keine Schedules gefunden.")
        for schedule in schedules:
            _print_schedule_row(schedule)
        return EXIT_OK

    if args.action == "show":
        schedule = scheduler.get_schedule(args.id)
        if schedule is None:
            raise NotFoundError(f"Schedule nicht gefunden: {args.id}")
        _print_json(schedule.model_dump(mode="json"))
        return EXIT_OK

    if args.action == "create":
        schedule_id = scheduler.create_schedule(_schedule_from_args(args))
        print(f"Schedule angelegt: {schedule_id}")
        return EXIT_OK

    if args.action == "update":
        patch: dict[str, Any] = {
            "name": args.name,
            "cron_expression": args.cron,
            "timezone": args.timezone,
            "recipients": args.recipient,
            "base_url": args.base_url,
            "active": args.active,
        }
        patch = {k: v for k, v in patch.items() if v is not None}
        if not patch:
            raise ValidationError("Keine Änderungen angegeben")
        updated = scheduler.update_schedule(args.id, patch)
        print(f"Schedule aktualisiert: {updated.id}")
        return EXIT_OK

    if args.action == "delete":
        if not scheduler.delete_schedule(args.id):
            raise NotFoundError(f"Schedule nicht gefunden: {args.id}")
        print(f"Schedule gelöscht: {args.id}")
        return EXIT_OK

    # run
    record = await scheduler.run_now(args.id)
    print(f"Report erzeugt: {record.id}")
    print(f"Pfad: {scheduler.config.reports_dir / record.path}")
    return EXIT_OK


def _history_command(scheduler: ReportScheduler, args: argparse.Namespace) -> int:
    if args.action == "list":
        page = scheduler.list_reports(
            schedule_id=args.schedule,
            search=args.search,
            tags=args.tag,
            start_date=args.start,
            end_date=args.end,
            limit=args.limit,
            offset=args.offset,
        )
        if not page.reports:
            print("Keine Reports gefunden.")
        for report in page.reports:
            _print_report_row(report)
        shown_to = page.offset + len(page.reports)
        if page.reports:
            print(f"\n{page.offset + 1}-{shown_to} von {page.total}")
        return EXIT_OK

    if args.action == "show":
        report = scheduler.get_report(args.id)
        if report is None:
            raise NotFoundError(f"Report nicht gefunden: {args.id}")
        _print_json(report.model_dump(mode="json"))
        return EXIT_OK

    if args.action in ("tag", "untag"):
        change = scheduler.tag_report if args.action == "tag" else scheduler.untag_report
        if not change(args.id, args.tags):
            raise NotFoundError(f"Report nicht gefunden: {args.id}")
        report = scheduler.get_report(args.id)
        print(f"Tags: {', '.join(report.tags) if report else ''}")
        return EXIT_OK

    if args.action == "delete":
        if not scheduler.delete_report(args.id, delete_artifact=args.delete_artifact):
            raise NotFoundError(f"Report nicht gefunden: {args.id}")
        print(f"Report gelöscht: {args.id}")
        return EXIT_OK

    if args.action == "cleanup":
        days = args.days if args.days is not None else scheduler.config.history.max_age_days
        removed = scheduler.cleanup(days, delete_artifacts=not args.keep_artifacts)
        print(f"{removed} Report(s) entfernt.")
        return EXIT_OK

    if args.action == "tags":
        for tag in scheduler.history.all_tags():
            print(tag)
        return EXIT_OK

    # stats
    _print_json(scheduler.statistics().model_dump(mode="json"))
    return EXIT_OK


async def _serve(scheduler: ReportScheduler) -> None:
    from reportd.utils.logging import get_logger

    log = get_logger("reportd")
    await scheduler.start()
    log.info("reportd_ready", timers=scheduler.engine.timer_count)
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
        log.info("reportd_stopped")


def _exit_code(exc: ReportdError) -> int:
    if isinstance(exc, NotFoundError):
        return EXIT_NOT_FOUND
    if isinstance(exc, ValidationError):
        return EXIT_VALIDATION
    if isinstance(exc, StorageError):
        return EXIT_STORAGE
    return EXIT_ERROR


def main(argv: list[str] | None = None) -> int:
    """Haupteintrittspunkt für reportd."""
    args = parse_args(argv)

    # 1. Konfiguration laden
    from reportd.config import ensure_directory_structure, load_config

    config = load_config(args.config)

    # 2. Verzeichnisstruktur sicherstellen
    created = ensure_directory_structure(config)

    # 3. Logging initialisieren
    from reportd.utils.logging import get_logger, setup_logging

    log_level = args.log_level or config.logging.level
    setup_logging(
        level=log_level,
        log_dir=config.logs_dir,
        json_logs=config.logging.json_logs,
        console=config.logging.console,
    )
    log = get_logger("reportd")
    log.debug("reportd_starting", version=__version__, home=str(config.home), command=args.command)
    for path in created:
        log.info("created_path", path=path)

    # 4. Kommando ausführen
    from reportd.scheduler import ReportScheduler

    scheduler = ReportScheduler(config)
    try:
        if args.command == "serve":
            try:
                asyncio.run(_serve(scheduler))
            except KeyboardInterrupt:
                log.info("reportd_shutdown_by_user")
            return EXIT_OK
        if args.command == "schedule":
            return asyncio.run(_schedule_command(scheduler, args))
        return _history_command(scheduler, args)
    except ReportdError as exc:
        print(f"Fehler: {exc}", file=sys.stderr)
        log.debug("command_failed", error_code=exc.error_code, details=exc.details)
        return _exit_code(exc)
    except OSError as exc:
        print(f"Fehler: {exc}", file=sys.stderr)
        return EXIT_STORAGE


if __name__ == "__main__":
    sys.exit(main())
