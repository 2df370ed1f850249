import argparse
import logging

from cache_store import LocalCacheStore
from client import RestLedgerClient
from config import YamlConfig
from db import DraftRepository
from settings_schema import SettingsSchema
from stats_service import StatisticsService
from sync_service import SyncCoordinator
from tools import WeightConverter


def build_coordinator(settings: SettingsSchema) -> SyncCoordinator:
    """Create a coordinator for the configured user, offline if none is set."""
    remote = None
    if settings.user_id:
        remote = RestLedgerClient(
            settings.api_url,
            settings.user_id,
            api_token=settings.api_token,
            poll_interval=settings.poll_interval,
        )
    return SyncCoordinator(LocalCacheStore(settings.cache_path), remote)


def list_workouts(settings: SettingsSchema) -> None:
    coordinator = build_coordinator(settings)
    try:
        for w in coordinator.load():
            star = "*" if w.is_favorite else " "
            print(
                f"{star} {w.date.date().isoformat()}  {w.name}  "
                f"{w.total_sets} sets  {w.total_volume:.0f} volume"
            )
        print(f"[{coordinator.status.value}]")
    finally:
        coordinator.close()


def show_stats(settings: SettingsSchema) -> None:
    coordinator = build_coordinator(settings)
    try:
        stats = StatisticsService(week_start=settings.week_start)
        stats.observe(coordinator)
        coordinator.load()
        for key, value in stats.latest.to_dict().items():
            print(f"{key}: {value}")
        stats.stop()
    finally:
        coordinator.close()


def sync_workouts(settings: SettingsSchema) -> None:
    if not settings.user_id:
        print("No user_id configured; nothing to sync")
        return
    coordinator = build_coordinator(settings)
    try:
        coordinator.load()
        ok = coordinator.sync_all_workouts().result()
        print(f"Synced {len(coordinator.workouts)} workouts" if ok else "Sync failed")
    finally:
        coordinator.close()


def serve(settings: SettingsSchema, db_path: str, host: str, port: int) -> None:
    import uvicorn
    from rest_api import LedgerAPI

    api = LedgerAPI(db_path, api_token=settings.api_token, week_start=settings.week_start)
    uvicorn.run(api.app, host=host, port=port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Workout ledger commands")
    parser.add_argument("--config", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list")
    sub.add_parser("stats")
    sub.add_parser("sync")
    sub.add_parser("reset-cache")
    sub.add_parser("draft-clear")

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lb"], required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default="ledger.db")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    settings = YamlConfig(args.config).settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "list":
        list_workouts(settings)
    elif args.cmd == "stats":
        show_stats(settings)
    elif args.cmd == "sync":
        sync_workouts(settings)
    elif args.cmd == "reset-cache":
        LocalCacheStore(settings.cache_path).clear()
        print("Workout cache removed")
    elif args.cmd == "draft-clear":
        DraftRepository(settings.draft_db_path).clear()
        print("Draft discarded")
    elif args.cmd == "convert":
        if args.unit == "kg":
            print(f"{args.weight} kg = {WeightConverter.kg_to_lb(args.weight)} lb")
        else:
            print(f"{args.weight} lb = {WeightConverter.lb_to_kg(args.weight)} kg")
    elif args.cmd == "serve":
        serve(settings, args.db, args.host, args.port)


if __name__ == "__main__":
    main()
