# scripts/close_orphaned_trackings.py
import argparse
import asyncio
from datetime import timedelta

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal
from app.services.orphan_reclaimer import OrphanClosePolicy, OrphanReclaimer
from app.services.tracking_engine import TrackingEngine


async def reclaim(*, max_open_hours: int, buffer_hours: int, dry_run: bool) -> None:
    policy = OrphanClosePolicy(
        max_open=timedelta(hours=max_open_hours),
        buffer=timedelta(hours=buffer_hours),
    )
    reclaimer = OrphanReclaimer(TrackingEngine(AsyncSessionLocal), policy)

    candidates = await reclaimer.preview()
    print(f"[orphans] max_open_hours={max_open_hours} buffer_hours={buffer_hours} found={len(candidates)}")
    for c in candidates:
        action = "skip (has continuation)" if c.proposed_end_time is None else f"close at {c.proposed_end_time.isoformat()}"
        print(
            f"[orphans] id={c.interval.id} workstation={c.interval.workstation_id} "
            f"lote={c.interval.lote} instancia={c.interval.instancia} version={c.interval.version} "
            f"hours_open={c.hours_open} open_elsewhere={c.open_in_other_workstation} -> {action}"
        )

    if dry_run:
        print("[orphans] dry run, nothing closed")
        return

    closed = await reclaimer.close_orphans()
    print(f"[orphans] closed={closed}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fecha trackings órfãos (abertos há tempo demais).")
    parser.add_argument(
        "--max-open-hours",
        type=int,
        default=settings.ORPHAN_MAX_OPEN_HOURS,
        help="Horas em aberto a partir das quais o tracking é considerado órfão.",
    )
    parser.add_argument(
        "--buffer-hours",
        type=int,
        default=settings.ORPHAN_CLOSE_BUFFER_HOURS,
        help="Folga antes de 'agora' usada no end_time dos trackings fechados.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Só lista os candidatos, sem fechar nada.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    asyncio.run(
        reclaim(
            max_open_hours=args.max_open_hours,
            buffer_hours=args.buffer_hours,
            dry_run=args.dry_run,
        )
    )


if __name__ == "__main__":
    main()
