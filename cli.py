import argparse
import asyncio
import datetime
import logging
import os
from typing import List, Optional

from config import APP_VERSION, load_config
from daily_service import DailyService
from db import LocalStore
from export_service import ExportService, backup_filename
from migrate import migrate
from notifications import ConsoleNotifier
from protocol_service import ProtocolService
from reminder_service import DailyReminderService
from routine_service import RoutineService
from settings_service import SettingsService


def list_protocols(db_path: str) -> None:
    service = ProtocolService(LocalStore(db_path))
    asyncio.run(service.load_protocols())
    for p in service.protocols:
        print(f"{p.id}\t{p.status}\t{p.duration}\t{p.name}")


def add_protocol(
    db_path: str,
    name: str,
    description: Optional[str] = None,
    duration: str = "daily",
    category: str = "general",
    schedule_days: Optional[List[str]] = None,
) -> str:
    service = ProtocolService(LocalStore(db_path))
    protocol = asyncio.run(
        service.create_protocol(name, description, duration, category, schedule_days)
    )
    print(protocol.id)
    return protocol.id


def list_routines(db_path: str, protocol_id: Optional[str] = None) -> None:
    service = RoutineService(LocalStore(db_path))
    asyncio.run(service.load_routines(protocol_id))
    for r in service.routines:
        freq = r.frequency if isinstance(r.frequency, str) else ",".join(r.frequency)
        print(f"{r.order}\t{r.id}\t{freq}\t{r.name}")


def add_routine(
    db_path: str, protocol_id: str, name: str, frequency: str = "daily", order: int = 0
) -> str:
    service = RoutineService(LocalStore(db_path))
    freq = frequency if frequency in ("daily", "weekly") else frequency.split(",")
    routine = asyncio.run(service.create_routine(protocol_id, name, freq, order))
    print(routine.id)
    return routine.id


def reorder_routines(db_path: str, protocol_id: str, ordered_ids: List[str]) -> None:
    service = RoutineService(LocalStore(db_path))
    asyncio.run(service.reorder_routines(protocol_id, ordered_ids))


def complete_protocol(db_path: str, protocol_id: str, notes: Optional[str] = None) -> None:
    async def run() -> None:
        service = DailyService(LocalStore(db_path))
        await service.load_today()
        if await service.complete_protocol(protocol_id, notes) is None:
            print("Already completed today")
        else:
            print("Completed")

    asyncio.run(run())


def show_today(db_path: str) -> None:
    service = DailyService(LocalStore(db_path))
    asyncio.run(service.load_today())
    for p in service.todays_protocols:
        mark = "x" if service.is_completed_today(p.id) else " "
        print(f"[{mark}] {p.id}\t{p.name}")
    progress = service.progress
    print(f"{progress['completed']}/{progress['total']} ({progress['percentage']}%)")


def show_settings(db_path: str) -> None:
    service = SettingsService(LocalStore(db_path))
    asyncio.run(service.load_settings())
    if service.settings is not None:
        for key, value in service.settings.model_dump().items():
            print(f"{key}: {value}")


def set_setting(db_path: str, key: str, value: str) -> None:
    if key in ("notifications_enabled",):
        parsed: object = value.lower() in {"1", "true", "yes", "on"}
    elif key in ("reminder_days", "rest_day_schedule"):
        parsed = [d for d in value.split(",") if d]
    else:
        parsed = value

    async def run() -> None:
        service = SettingsService(LocalStore(db_path))
        await service.load_settings()
        await service.update_settings({key: parsed})

    asyncio.run(run())


def run_reminder(db_path: str, delay: float = 0.0, icon: Optional[str] = None) -> str:
    kwargs = {"icon": icon} if icon else {}
    service = DailyReminderService(
        LocalStore(db_path), ConsoleNotifier(), delay=delay, **kwargs
    )
    decision = asyncio.run(service.run())
    return decision.reason


def export_backup(db_path: str, output_dir: str = ".") -> Optional[str]:
    service = ExportService(LocalStore(db_path))
    data = asyncio.run(service.export_data())
    if data is None:
        print("Export failed")
        return None
    out_path = os.path.join(output_dir, backup_filename(datetime.date.today()))
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(ExportService.to_json(data))
    return out_path


def import_backup(path: str, db_path: str, mode: str = "merge") -> bool:
    with open(path, "r", encoding="utf-8") as f:
        ok, result = ExportService.validate_import(f.read())
    if not ok:
        print(f"Invalid backup: {result}")
        return False
    service = ExportService(LocalStore(db_path))
    ok, error = asyncio.run(service.import_data(result, mode))
    if not ok:
        print(f"Import failed: {error}")
    return ok


def demo_data(db_path: str) -> None:
    """Populate the database with a demo protocol if empty."""

    async def run() -> None:
        store = LocalStore(db_path)
        protocols = ProtocolService(store)
        await protocols.load_protocols()
        if protocols.protocols:
            print("Database already contains protocols")
            return
        protocol = await protocols.create_protocol(
            "Neck Training", "Daily neck strengthening", "daily", "exercise"
        )
        routines = RoutineService(store)
        await routines.create_routine(protocol.id, "Warm-up", "daily", 0)
        await routines.create_routine(protocol.id, "Isometric holds", ["mon", "wed", "fri"], 1)
        print("Demo data inserted")

    asyncio.run(run())


def main(argv: Optional[List[str]] = None) -> None:
    config = load_config(os.environ.get("PROTOCOL_CONFIG", "settings.yaml"))
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

    parser = argparse.ArgumentParser(description="Protocol tracker commands")
    parser.add_argument("--db", default=config.db_path)
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("migrate")
    sub.add_parser("protocols")

    addp = sub.add_parser("add-protocol")
    addp.add_argument("name")
    addp.add_argument("--description")
    addp.add_argument(
        "--duration", choices=["daily", "weekly", "monthly", "yearly"], default="daily"
    )
    addp.add_argument("--category", default="general")
    addp.add_argument("--days", help="comma separated weekday codes")

    rts = sub.add_parser("routines")
    rts.add_argument("--protocol")

    addr = sub.add_parser("add-routine")
    addr.add_argument("protocol")
    addr.add_argument("name")
    addr.add_argument("--frequency", default="daily")
    addr.add_argument("--order", type=int, default=0)

    reo = sub.add_parser("reorder")
    reo.add_argument("protocol")
    reo.add_argument("ids", nargs="+")

    cmp_ = sub.add_parser("complete")
    cmp_.add_argument("protocol")
    cmp_.add_argument("--notes")

    sub.add_parser("today")
    sub.add_parser("settings")

    st = sub.add_parser("set")
    st.add_argument("key")
    st.add_argument("value")

    rem = sub.add_parser("remind")
    rem.add_argument("--delay", type=float, default=config.reminder_delay)

    exp = sub.add_parser("export")
    exp.add_argument("--out", default=".")

    imp = sub.add_parser("import")
    imp.add_argument("path")
    imp.add_argument("--mode", choices=["merge", "replace"], default="merge")

    sub.add_parser("demo")

    args = parser.parse_args(argv)

    if args.cmd == "migrate":
        print(f"{args.db}: schema version {migrate(args.db)}")
    elif args.cmd == "protocols":
        list_protocols(args.db)
    elif args.cmd == "add-protocol":
        days = args.days.split(",") if args.days else None
        add_protocol(args.db, args.name, args.description, args.duration, args.category, days)
    elif args.cmd == "routines":
        list_routines(args.db, args.protocol)
    elif args.cmd == "add-routine":
        add_routine(args.db, args.protocol, args.name, args.frequency, args.order)
    elif args.cmd == "reorder":
        reorder_routines(args.db, args.protocol, args.ids)
    elif args.cmd == "complete":
        complete_protocol(args.db, args.protocol, args.notes)
    elif args.cmd == "today":
        show_today(args.db)
    elif args.cmd == "settings":
        show_settings(args.db)
    elif args.cmd == "set":
        set_setting(args.db, args.key, args.value)
    elif args.cmd == "remind":
        print(run_reminder(args.db, args.delay, config.notification_icon))
    elif args.cmd == "export":
        path = export_backup(args.db, args.out)
        if path:
            print(path)
    elif args.cmd == "import":
        import_backup(args.path, args.db, args.mode)
    elif args.cmd == "demo":
        demo_data(args.db)


if __name__ == "__main__":
    main()
