import argparse
import datetime
import json
import shutil

from algorithms import WeekKey
from config import configure_logging, load_settings
from rest_api import TrainingLogAPI
from routine_builder import RoutineBuilder
from routine_store import RoutineStore


def export_routines(db_path: str, out_path: str, yaml_path: str = "settings.yaml") -> int:
    """Write the routine collection as a storage envelope to ``out_path``."""
    api = TrainingLogAPI(db_path=db_path, yaml_path=yaml_path)
    routines = api.routines.routines
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(api.store.export_payload(routines), f, indent=2)
    return len(routines)


def import_routines(src_path: str, db_path: str, yaml_path: str = "settings.yaml") -> int:
    """Replace the stored collection with an exported envelope or legacy list.

    Returns the number of routines that were actually persisted.
    """
    with open(src_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    routines = RoutineStore.parse_payload(data)
    api = TrainingLogAPI(db_path=db_path, yaml_path=yaml_path)
    api.store.save(routines)
    return len(api.store.load())


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, yaml_path: str) -> None:
    """Populate the store with a demo routine if empty."""
    api = TrainingLogAPI(db_path=db_path, yaml_path=yaml_path)
    if api.routines.routines:
        print("Store already contains routines")
        return
    builder = RoutineBuilder("Push Day", datetime.date.today())
    builder.add_exercise("Bench Press", "8-10", sets=4, rpe=8, rir=2)
    builder.add_exercise("Overhead Press", "6-8", sets=3)
    builder.add_exercise("Push Ups", "AMRAP", sets=2, comments="to failure")
    api.routines.create(builder.build())
    print("Demo data inserted")


def print_stats(db_path: str, yaml_path: str) -> None:
    api = TrainingLogAPI(db_path=db_path, yaml_path=yaml_path)
    stats = api.statistics.weekly_stats()
    print(f"Week {stats['week']}")
    print(f"Routines this week: {stats['routines_this_week']}")
    print(f"Completed this week: {stats['completed_this_week']}")
    print(f"Exercises this week: {stats['total_exercises']}")
    print(f"Total routines: {stats['total_routines']}")
    for routine in api.routines.recent(api.settings.recent_limit):
        row = api.statistics.summarize(routine)
        status = "done" if row["completed"] else "pending"
        print(f"  {row['date']} {row['name']} ({row['exercise_count']} exercises, {row['week']}, {status})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Training log utility commands")
    parser.add_argument("--yaml", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default=None)
    exp.add_argument("--out", default="routines.json")

    imp = sub.add_parser("import")
    imp.add_argument("--in", dest="src", required=True)
    imp.add_argument("--db", default=None)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default=None)
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default=None)

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default=None)

    stats = sub.add_parser("stats")
    stats.add_argument("--db", default=None)

    week = sub.add_parser("week")
    week.add_argument("--date", default=None)

    args = parser.parse_args()
    settings = load_settings(args.yaml)
    configure_logging(settings)
    db_path = getattr(args, "db", None) or settings.db_path

    if args.cmd == "export":
        count = export_routines(db_path, args.out, args.yaml)
        print(f"Exported {count} routines to {args.out}")
    elif args.cmd == "import":
        count = import_routines(args.src, db_path, args.yaml)
        print(f"Imported {count} routines")
    elif args.cmd == "backup":
        backup_db(db_path, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, db_path)
    elif args.cmd == "demo":
        demo_data(db_path, args.yaml)
    elif args.cmd == "stats":
        print_stats(db_path, args.yaml)
    elif args.cmd == "week":
        print(WeekKey.week_label(args.date or datetime.date.today()))


if __name__ == "__main__":
    main()
