"""Cron entry point for failing generation jobs that stopped making progress."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from datetime import timedelta

from src.songforge.config import load_config
from src.songforge.generation.generation_models import ProviderName, utcnow
from src.songforge.generation.generation_service import GenerationOrchestrator
from src.songforge.media.blob_store import LocalBlobStore
from src.songforge.providers.providers_factory import create_adapters
from src.songforge.repositories.artifact_repository import ArtifactRepository
from src.songforge.repositories.job_repository import JobRepository
from src.songforge.repositories.lyrics_repository import LyricsRepository


@dataclass(slots=True)
class SweepSummary:
    job_ids: list[str]
    dry_run: bool


def perform_sweep(*, dry_run: bool, pending_minutes: int | None, processing_minutes: int | None) -> SweepSummary:
    """Fail stuck jobs (or only list them) and return their ids."""
    config = load_config()
    pending = pending_minutes if pending_minutes is not None else config.stuck_pending_minutes
    processing = (
        processing_minutes if processing_minutes is not None else config.stuck_processing_minutes
    )
    job_repo = JobRepository(config.session_factory)

    if dry_run:
        now = utcnow()
        stuck = job_repo.list_stuck(
            pending_created_before=now - timedelta(minutes=pending),
            processing_updated_before=now - timedelta(minutes=processing),
        )
        return SweepSummary(job_ids=[job.id for job in stuck], dry_run=True)

    orchestrator = GenerationOrchestrator(
        job_repo=job_repo,
        artifact_repo=ArtifactRepository(config.session_factory),
        lyrics_repo=LyricsRepository(config.session_factory),
        blob_store=LocalBlobStore(root=config.media_paths.root, public_base_url=config.media_base_url),
        adapters=create_adapters(config.providers),
        polling=config.polling,
        baseline_provider=ProviderName(config.default_provider),
        fallback_enabled=False,
    )
    failed = asyncio.run(
        orchestrator.sweep_stuck(pending_minutes=pending, processing_minutes=processing)
    )
    return SweepSummary(job_ids=failed, dry_run=False)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fail generation jobs stuck in pending or processing.")
    parser.add_argument("--dry-run", action="store_true", help="Only list stuck jobs without failing them.")
    parser.add_argument("--pending-minutes", type=int, default=None)
    parser.add_argument("--processing-minutes", type=int, default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = perform_sweep(
            dry_run=args.dry_run,
            pending_minutes=args.pending_minutes,
            processing_minutes=args.processing_minutes,
        )
    except Exception as exc:
        print(f"sweep failed: {exc}", file=sys.stderr)
        return 2

    label = "stuck" if summary.dry_run else "failed"
    print(f"sweep {'dry-run' if summary.dry_run else 'done'}, {label}={len(summary.job_ids)}", file=sys.stdout)
    for job_id in summary.job_ids:
        print(job_id, file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
