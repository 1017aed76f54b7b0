"""Run the ingest pipeline for one blob, e.g. to replay a dead-lettered event."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass

from src.vidingest.config import AppConfig, load_config
from src.vidingest.exceptions import VidIngestError
from src.vidingest.logging import configure_logging
from src.vidingest.pipeline.pipeline_context import ServiceContext
from src.vidingest.pipeline.pipeline_driver import PipelineDriver
from src.vidingest.pipeline.pipeline_models import PipelineEvent


@dataclass(slots=True)
class ReplaySummary:
    asset_id: str
    asset_reused: bool
    job_id: str
    job_reused: bool = False


async def replay(blob_url: str, *, name: str | None, config: AppConfig) -> ReplaySummary:
    """Resolve ``blob_url`` and run staging plus job submission for it."""
    async with ServiceContext.from_config(config) as context:
        blob = await context.storage.get_blob(blob_url)
        event = PipelineEvent(blob=blob, name=name or blob.name, event_id="manual-replay")
        outcome = await PipelineDriver.from_config(config).run(context, event)
    if outcome.staged is None or outcome.submitted is None:
        raise VidIngestError(f"Replay of {blob_url} finished without a staged asset and job")
    return ReplaySummary(
        asset_id=outcome.staged.asset.id,
        asset_reused=outcome.staged.reused,
        job_id=outcome.submitted.job.id,
        job_reused=outcome.submitted.reused,
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stage a blob and submit its encoding job.")
    parser.add_argument("blob_url", help="URL of the uploaded blob.")
    parser.add_argument("--name", help="Asset name to use instead of the blob name.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    config = load_config()
    configure_logging(config.log_level)
    try:
        summary = asyncio.run(replay(args.blob_url, name=args.name, config=config))
    except (VidIngestError, ValueError) as exc:
        print(f"replay failed: {exc}", file=sys.stderr)
        return 2

    print(
        f"replay done, asset_id={summary.asset_id}, reused={summary.asset_reused}, "
        f"job_id={summary.job_id}, job_reused={summary.job_reused}",
        file=sys.stdout,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
