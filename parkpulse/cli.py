import argparse
import logging
import sys
from datetime import timedelta

from parkpulse.adapters.sqlite.migrator import SQLiteMigrator
from parkpulse.api.auth_utils import create_access_token
from parkpulse.api.deps import AnalyticsRuntime, Settings, build_runtime, get_settings
from parkpulse.api.routes.admin_analytics import DashboardOut
from parkpulse.components.analytics import DASHBOARD_PERIODS, AnalyticsQueryError, PeriodError
from parkpulse.rules.loader import load_rules

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cli")


def get_runtime(settings: Settings) -> AnalyticsRuntime:
    try:
        rules = load_rules(settings.rules_path)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Cannot load rules: %s", e)
        sys.exit(1)
    return build_runtime(settings, rules)


def handle_migrate(settings: Settings, args: argparse.Namespace) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    migrator = SQLiteMigrator(settings.db_path, str(settings.migrations_dir))
    if args.dry_run:
        pending = migrator.pending()
        print(f"{len(pending)} pending migration(s).")
        for name in pending:
            print(f" - {name}")
        return
    applied = migrator.run_migrations()
    print(f"Applied {len(applied)} migration(s).")


def handle_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("parkpulse.api.main:app", host=args.host, port=args.port, reload=args.reload)


def handle_report(settings: Settings, args: argparse.Namespace) -> None:
    runtime = get_runtime(settings)
    try:
        report = runtime.dashboard.build(args.period)
    except PeriodError as e:
        logger.error("%s", e)
        sys.exit(2)
    except AnalyticsQueryError as e:
        logger.error("Report failed (run `migrate` first?): %s", e)
        sys.exit(1)
    print(DashboardOut.model_validate(report).model_dump_json(by_alias=True, indent=2))


def handle_token(settings: Settings, args: argparse.Namespace) -> None:
    token = create_access_token(
        {"sub": args.user_id, "roles": args.role},
        expires_delta=timedelta(minutes=args.minutes),
        secret_key=settings.secret_key,
    )
    print(token)


def main() -> None:
    parser = argparse.ArgumentParser(description="ParkPulse analytics CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate_parser.add_argument("--dry-run", action="store_true", help="List pending only")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")

    # report
    report_parser = subparsers.add_parser("report", help="Print the dashboard as JSON")
    report_parser.add_argument("--period", default="7d", choices=sorted(DASHBOARD_PERIODS))

    # token
    token_parser = subparsers.add_parser("token", help="Mint an access token for local testing")
    token_parser.add_argument("user_id")
    token_parser.add_argument("--role", action="append", default=[], help="Repeatable")
    token_parser.add_argument("--minutes", type=int, default=60)

    args = parser.parse_args()
    settings = get_settings()

    if args.command == "migrate":
        handle_migrate(settings, args)
    elif args.command == "serve":
        handle_serve(args)
    elif args.command == "report":
        handle_report(settings, args)
    elif args.command == "token":
        handle_token(settings, args)


if __name__ == "__main__":
    main()
