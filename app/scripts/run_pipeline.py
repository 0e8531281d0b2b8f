"""
Run the report pipeline from the command line (cron-friendly).

Usage:
    python -m app.scripts.run_pipeline sync                          # both catalogs
    python -m app.scripts.run_pipeline sync --category industry_analysis --force
    python -m app.scripts.run_pipeline evaluate --sample-size 10     # refresh industry evaluation
    python -m app.scripts.run_pipeline keywords --limit 5            # refresh market keywords
    python -m app.scripts.run_pipeline daily                         # strategy sync, industry sync, evaluate

Exit code is 1 when any step fails, so schedulers can alert on it.
"""

import sys
import signal
import logging
import argparse
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

from app.core.exceptions import ConfigurationException, RunInProgressException
from app.core.logging_config import configure_logging
from app.models.enumerations import DataStatus, ReportCategory
from app.shutdown import set_shutdown

logger = logging.getLogger(__name__)


def _install_signal_handlers() -> None:
    def _handler(signum, frame):
        logger.warning(f"⚠️  Received signal {signum}, stopping after the current report...")
        set_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)


def run_sync(categories: List[ReportCategory], force: bool) -> bool:
    from app.core.dependencies import get_report_service

    service = get_report_service()
    ok = True
    for category in categories:
        try:
            result = service.sync(category, force=force)
        except RunInProgressException as e:
            logger.error(f"❌ [{category.value}] {e}")
            ok = False
            continue
        logger.info(
            f"[{category.value}] discovered={result.discovered} added={result.added} "
            f"converted={result.converted} failed={result.failed}"
            + (" (cancelled)" if result.cancelled else "")
        )
        ok = ok and result.failed == 0 and not result.cancelled
        if result.cancelled:
            break
    return ok


def run_evaluate(sample_size: Optional[int]) -> bool:
    from app.core.dependencies import get_report_service

    try:
        run = get_report_service().refresh_evaluation(sample_size)
    except RunInProgressException as e:
        logger.error(f"❌ {e}")
        return False
    if not run.succeeded:
        logger.error(f"❌ Evaluation failed at {run.failed_stage.value}: {run.error}")
        return False
    logger.info(f"✅ Evaluated {len(run.scored)} industr(ies) from {len(run.reports)} report(s)")
    for name, evaluation in run.scored.items():
        logger.info(f"   {name:<28} {evaluation.sentiment.value:<8} confidence={evaluation.confidence:.2f}")
    return True


def run_keywords(limit: Optional[int]) -> bool:
    from app.core.dependencies import get_report_service

    summary = get_report_service().get_keyword_summary(limit)
    logger.info(f"🔑 Keywords ({summary.status.value}, cached={summary.cached}): {summary.message}")
    for keyword in summary.keywords:
        logger.info(f"   {keyword.icon} {keyword.label} [{keyword.impact.value}]")
    return summary.status == DataStatus.OK


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Report ingestion and analysis pipeline")
    sub = ap.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Discover and convert reports")
    sync.add_argument(
        "--category",
        choices=[c.value for c in ReportCategory],
        help="Catalog to sync (default: all)",
    )
    sync.add_argument("--force", action="store_true", help="Discover even if the catalog is fresh")

    evaluate = sub.add_parser("evaluate", help="Recompute the industry evaluation")
    evaluate.add_argument("--sample-size", type=int, default=None, help="Most recent converted reports to use")

    keywords = sub.add_parser("keywords", help="Generate market keywords")
    keywords.add_argument("--limit", type=int, default=None, help="Number of recent reports")

    sub.add_parser("daily", help="Strategy sync, industry sync, then evaluation")

    args = ap.parse_args(argv)

    configure_logging()
    _install_signal_handlers()

    try:
        if args.command == "sync":
            categories = [ReportCategory(args.category)] if args.category else list(ReportCategory)
            ok = run_sync(categories, args.force)
        elif args.command == "evaluate":
            ok = run_evaluate(args.sample_size)
        elif args.command == "keywords":
            ok = run_keywords(args.limit)
        else:
            ok = run_sync(list(ReportCategory), force=False)
            ok = run_evaluate(None) and ok
    except ConfigurationException as e:
        logger.error(f"❌ Configuration error: {e}")
        return 2

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
