"""
CLI for running one insights analysis against the telemetry database.

Usage:
    python -m src.insights.analyze <analysis> [options]
"""

import argparse
import json
import logging
import os
import sys

import structlog

from src.core.logger import setup_logging

from .config import InsightsConfig
from .database import PostgresSampleStore
from .service import InsightsService

logger = structlog.get_logger(__name__)

ANALYSES = ["anomalies", "capacity", "disk", "disks", "trends", "costs", "insights"]


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Batch analytics over collected homelab telemetry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Anomalies over the last 6 hours
        python -m src.insights.analyze anomalies --lookback-hours 6

        # Storage forecast only
        python -m src.insights.analyze capacity --resource storage

        # Failure risk of a single disk
        python -m src.insights.analyze disk --disk sda

        # Every actionable insight, as JSON log lines
        LOG_FORMAT=json python -m src.insights.analyze insights
        """,
    )

    parser.add_argument("analysis", choices=ANALYSES, help="Analysis to run")

    # Analysis parameters
    parser.add_argument(
        "--lookback-hours",
        type=float,
        default=24,
        help="Anomaly baseline window in hours (default: 24)",
    )
    parser.add_argument(
        "--period-days",
        type=int,
        default=30,
        help="Trend analysis period in days (default: 30)",
    )
    parser.add_argument(
        "--resource",
        choices=["storage", "memory", "swap"],
        help="Capacity resource (default: all)",
    )
    parser.add_argument("--disk", help="Disk name for the 'disk' analysis")

    # PostgreSQL settings
    parser.add_argument(
        "--postgres-host",
        default=os.getenv("POSTGRES_HOST", "localhost"),
        help="PostgreSQL host (default: localhost or POSTGRES_HOST env var)",
    )
    parser.add_argument(
        "--postgres-port",
        type=int,
        default=int(os.getenv("POSTGRES_PORT", "5432")),
        help="PostgreSQL port (default: 5432 or POSTGRES_PORT env var)",
    )
    parser.add_argument(
        "--postgres-db",
        default=os.getenv("POSTGRES_DB", "homelab_db"),
        help="PostgreSQL database (default: homelab_db or POSTGRES_DB env var)",
    )
    parser.add_argument(
        "--postgres-user",
        default=os.getenv("POSTGRES_USER", "homelab"),
        help="PostgreSQL user (default: homelab or POSTGRES_USER env var)",
    )
    parser.add_argument(
        "--postgres-password",
        default=os.getenv("POSTGRES_PASSWORD", "homelab_password"),
        help="PostgreSQL password (default: homelab_password or POSTGRES_PASSWORD env var)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )

    args = parser.parse_args(argv)
    if args.analysis == "disk" and not args.disk:
        parser.error("--disk is required for the 'disk' analysis")
    return args


def build_config(args) -> InsightsConfig:
    """Build configuration from arguments"""
    return InsightsConfig(
        postgres_host=args.postgres_host,
        postgres_port=args.postgres_port,
        postgres_database=args.postgres_db,
        postgres_user=args.postgres_user,
        postgres_password=args.postgres_password,
    )


def run_analysis(service: InsightsService, args):
    """Dispatch the requested analysis and return a JSON-ready result"""
    if args.analysis == "anomalies":
        return [a.to_dict() for a in service.detect_anomalies(args.lookback_hours)]
    if args.analysis == "capacity":
        return [p.to_dict() for p in service.predict_capacity(args.resource)]
    if args.analysis == "disk":
        return service.predict_disk_failure(args.disk).to_dict()
    if args.analysis == "disks":
        return [p.to_dict() for p in service.predict_all_disk_failures()]
    if args.analysis == "trends":
        return [t.to_dict() for t in service.analyze_trends(args.period_days)]
    if args.analysis == "costs":
        return service.optimize_costs().to_dict()
    return [i.to_dict() for i in service.generate_insights()]


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level, json_output=os.getenv("LOG_FORMAT", "").lower() == "json")

    logger.info("Starting insights analysis", analysis=args.analysis)

    store = None
    try:
        store = PostgresSampleStore(build_config(args))
        if not store.check_health():
            raise RuntimeError("Database health check failed")
        if args.analysis in ("disk", "disks"):
            store.ensure_prediction_table_exists()

        service = InsightsService(store, store.config)
        result = run_analysis(service, args)
        print(json.dumps(result, indent=2))

        logger.info("Analysis completed successfully", analysis=args.analysis)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Analysis failed", analysis=args.analysis, error=str(e), exc_info=True)
        return 1

    finally:
        if store is not None:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
