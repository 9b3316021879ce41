"""
CLI: ejecuta una pasada de sync (o todas) contra el store configurado.

Pensado para correr como job (cron/systemd timer); cada invocacion es una
pasada independiente.

Ejecucion:
  python scripts/run_sync.py all
  python scripts/run_sync.py projects --client-id <id> --limit 20
  python scripts/run_sync.py time_entries --start 2024-01-01 --end 2024-01-15
  python scripts/run_sync.py metrics
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

# Permite ejecutar este script desde cualquier cwd sin instalar el paquete.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

# Cargar .env antes de importar la configuracion
load_dotenv(_ROOT / ".env", override=False)

from opsync.application.dto.sync_dto import SyncRunDTO
from opsync.application.use_cases.sync_use_cases import SyncUseCases
from opsync.core.logging import configure_logging
from opsync.infrastructure.database.session import close_db, get_session_factory, init_db
from opsync.shared.constants.sync_constants import SyncStatus
from opsync.shared.exceptions.sync import ConfigurationError

TARGETS = (
    "all",
    "clients",
    "team_members",
    "projects",
    "qi_time_tracker",
    "time_tracker_users",
    "time_tracker_projects",
    "time_entries",
    "metrics",
)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


async def _run(args: argparse.Namespace) -> int:
    await init_db()
    try:
        async with get_session_factory()() as session:
            use_cases = SyncUseCases(session)

            if args.target == "all":
                report = await use_cases.sync_all(calculate_metrics=not args.skip_metrics)
                print(report.model_dump_json(indent=2))
                return 0 if report.status == SyncStatus.SUCCESS.value else 1

            if args.target == "metrics":
                await use_cases.calculate_metrics()
                return 0

            if args.target == "projects":
                run = await use_cases.sync_projects(client_id=args.client_id, limit=args.limit)
            elif args.target == "time_entries":
                run = await use_cases.sync_time_entries(_parse_date(args.start), _parse_date(args.end))
            else:
                entry_points = {
                    "clients": use_cases.sync_clients,
                    "team_members": use_cases.sync_team_members,
                    "qi_time_tracker": use_cases.sync_qi_time_tracker_entries,
                    "time_tracker_users": use_cases.sync_time_tracker_users,
                    "time_tracker_projects": use_cases.sync_time_tracker_projects,
                }
                run = await entry_points[args.target]()

            print(SyncRunDTO.from_run(run).model_dump_json(indent=2))
            return 0 if run.status == SyncStatus.SUCCESS.value else 1
    finally:
        await close_db()


def main() -> int:
    parser = argparse.ArgumentParser(description="Sincronizacion work tracker / time tracker -> store")
    parser.add_argument("target", choices=TARGETS, help="Tipo de entidad a sincronizar")
    parser.add_argument("--client-id", help="Solo cards de este cliente (projects)")
    parser.add_argument("--limit", type=int, help="Maximo de cards a traer (projects)")
    parser.add_argument("--start", help="Inicio YYYY-MM-DD (time_entries)")
    parser.add_argument("--end", help="Fin YYYY-MM-DD, exclusivo (time_entries)")
    parser.add_argument("--skip-metrics", action="store_true", help="No recalcular metricas tras `all`")
    args = parser.parse_args()

    configure_logging()
    try:
        return asyncio.run(_run(args))
    except ConfigurationError as e:
        logger.error(e.message)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
