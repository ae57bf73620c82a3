#!/usr/bin/env python3
"""
Recover contracts stuck in "analyzing".

A contract stays in "analyzing" forever if the process running its analysis
stops before reaching a terminal state. This script moves every such record
older than the given age to "error" so its owner can re-run the analysis.
The API runs the same sweep at startup.

Usage:
    python -m contract_analyzer.scripts.recover_stale_analyses
    python -m contract_analyzer.scripts.recover_stale_analyses --max-age 600
    python -m contract_analyzer.scripts.recover_stale_analyses --dry-run
"""

import asyncio
import argparse
import sys
from datetime import timedelta

from contract_analyzer.config import Settings
from contract_analyzer.services.analysis_service import ContractAnalysisService
from contract_analyzer.services.contract_store import build_contract_store
from contract_analyzer.utils.functional import utc_now
from contract_analyzer.utils.logging import setup_logging


async def recover(max_age_seconds: int, dry_run: bool, settings: Settings) -> int:
    """Run one sweep and return the number of affected contracts."""
    store = build_contract_store(settings.contract_store_backend, settings.redis_url)

    if dry_run:
        cutoff = utc_now() - timedelta(seconds=max_age_seconds)
        stale_ids = await store.list_stale_analyzing(cutoff)
        print(f"{len(stale_ids)} contract(s) stuck in analyzing for over {max_age_seconds}s:")
        for contract_id in stale_ids:
            print(f"  - {contract_id}")
        return len(stale_ids)

    service = ContractAnalysisService(store=store)
    recovered = await service.recover_stale_analyses(max_age_seconds)

    print(f"Recovered {len(recovered)} contract(s):")
    for contract_id in recovered:
        print(f"  - {contract_id}")
    return len(recovered)


async def main():
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Recover contracts stuck in analyzing")
    parser.add_argument(
        "--max-age",
        type=int,
        default=settings.stale_analysis_seconds,
        help=f"Seconds in analyzing before a contract counts as stuck "
             f"(default: {settings.stale_analysis_seconds})"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List stuck contracts without changing them"
    )
    args = parser.parse_args()

    if args.max_age < 0:
        parser.error("--max-age must be non-negative")

    setup_logging(settings.log_level, json_format=settings.log_json)

    await recover(args.max_age, args.dry_run, settings)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
