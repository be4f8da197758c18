"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..matching.engine import DuplicateDetector
from ..review.queue import ReviewQueue
from ..services.ingestion import IncomingEmail, IngestionDecision, IngestionService
from ..state_store import StateStore

logger = logging.getLogger(__name__)

RECOMMENDATION_ICONS = {
    "accept": "✅",
    "review": "🔍",
    "reject": "🚫",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="brokerage-import",
        description="Detect duplicate brokerage emails and route ambiguous ones to manual review",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    init_parser = subparsers.add_parser("init-config", help="Write a default config file")
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file",
    )

    # detect command
    detect_parser = subparsers.add_parser(
        "detect", help="Run duplicate detection without storing anything"
    )
    detect_parser.add_argument("input", type=Path, help="JSON file with parsed email(s)")
    detect_parser.add_argument(
        "--scope",
        type=str,
        default="default",
        help="Corpus scope to compare against (default: default)",
    )
    detect_parser.add_argument(
        "--json",
        action="store_true",
        help="Print full detection results as JSON",
    )

    # ingest command
    ingest_parser = subparsers.add_parser(
        "ingest", help="Detect, store accepted emails and queue ambiguous ones"
    )
    ingest_parser.add_argument("input", type=Path, help="JSON file with parsed email(s)")
    ingest_parser.add_argument(
        "--scope",
        type=str,
        default="default",
        help="Corpus scope (default: default)",
    )
    ingest_parser.add_argument(
        "--output",
        type=Path,
        help="Write batch result and queued items to this JSON file",
    )

    # status command
    subparsers.add_parser("status", help="Show corpus statistics and detector settings")

    return parser


def _load_emails(path: Path) -> list[dict[str, Any]]:
    """Load one email or a list of emails from a JSON file."""
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON object or array")
    return data


def cmd_init_config(config_path: Path, force: bool) -> int:
    """Write the default configuration file."""
    if config_path.exists() and not force:
        print(f"❌ {config_path} already exists (use --force to overwrite)")
        return 1

    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_detect(config: Config, input_path: Path, scope: str, as_json: bool) -> int:
    """Run detection for each email in a file."""
    try:
        emails = [IncomingEmail.from_dict(data) for data in _load_emails(input_path)]
    except (OSError, ValueError) as e:
        print(f"❌ Failed to read {input_path}: {e}")
        return 1

    store = StateStore(config.state_db_path)
    detector = DuplicateDetector(store, config)

    results = []
    for index, email in enumerate(emails):
        errors = email.parsed.validate()
        if errors:
            print(f"  ⚠️  [{index}] invalid: {'; '.join(errors)}")
            continue

        result = detector.detect(
            email.parsed,
            scope,
            raw_headers=email.raw_headers,
            text_content=email.text_content,
        )
        results.append(result.to_dict())
        if not as_json:
            icon = RECOMMENDATION_ICONS[result.recommendation.value]
            print(
                f"  {icon} [{index}] {email.parsed.symbol} "
                f"{email.parsed.transaction_type.value} {email.parsed.quantity} "
                f"@ {email.parsed.price}: {result.recommendation.value.upper()} "
                f"({result.overall_confidence:.0%}, risk {result.risk_level.value})"
            )
            print(f"       {result.summary}")

    if as_json:
        print(json.dumps(results, indent=2))
    return 0


def cmd_ingest(config: Config, input_path: Path, scope: str, output: Path | None) -> int:
    """Ingest a batch of emails."""
    try:
        emails = _load_emails(input_path)
    except (OSError, ValueError) as e:
        print(f"❌ Failed to read {input_path}: {e}")
        return 1

    store = StateStore(config.state_db_path)
    detector = DuplicateDetector(store, config)
    queue = ReviewQueue(config.review_queue)
    service = IngestionService(
        detector,
        queue,
        config,
        transaction_sink=store.record_transaction,
    )

    print(f"📥 Ingesting {len(emails)} email(s) into scope '{scope}'...")
    result = service.process_batch(emails, scope)

    print("\n📊 Batch Result")
    print("=" * 40)
    print(f"  Accepted:               {result.count(IngestionDecision.ACCEPTED)}")
    print(f"  Queued for review:      {result.count(IngestionDecision.REVIEW)}")
    print(f"  Rejected duplicates:    {result.count(IngestionDecision.REJECTED)}")
    print(f"  Invalid:                {result.count(IngestionDecision.INVALID)}")
    print(f"  Duration:               {result.duration_ms}ms")

    if result.errors:
        print(f"\n⚠️  Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"   - {error}")

    queue_stats = queue.export_stats()
    if queue_stats["total"]:
        print("\n🔍 Review Queue")
        print("=" * 40)
        for item in queue.list_items():
            print(
                f"  [{item.priority.value:>6}] {item.id} {item.parsed.symbol} "
                f"risk={item.risk_score:.2f} tags={','.join(item.tags)}"
            )
        print(f"  Queue health:           {queue_stats['health_score']}/100")

    if output is not None:
        payload = {
            "batch": result.to_dict(),
            "queue": {
                "stats": queue_stats,
                "items": [item.to_dict() for item in queue.list_items()],
            },
        }
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            json.dump(payload, f, indent=2)
        print(f"\n✓ Wrote results to {output}")

    return 0 if result.success else 1


def cmd_status(config: Config) -> int:
    """Show corpus status."""
    store = StateStore(config.state_db_path)
    stats = store.get_stats()
    settings = DuplicateDetector(store, config).to_dict()

    print("\n📊 Corpus Status")
    print("=" * 40)
    print(f"  Identifications stored: {stats['identifications_total']}")
    print(f"  Linked to transactions: {stats['identifications_linked']}")
    print(f"  Transactions recorded:  {stats['transactions_total']}")
    print(f"  Scopes:                 {stats['scopes']}")
    print("\n⚙️  Detection")
    print("=" * 40)
    print(f"  Reject at:              {settings['reject_threshold']:.0%}")
    print(f"  Review at:              {settings['review_threshold']:.0%}")
    print(f"  Lookback:               {settings['corpus_lookback_days']} days")
    print(f"  Max records compared:   {settings['corpus_max_records']}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config, parsed.force)

    # Load config
    try:
        config = load_config(parsed.config)
        errors = config.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "detect":
        return cmd_detect(config, parsed.input, parsed.scope, parsed.json)
    elif parsed.command == "ingest":
        return cmd_ingest(config, parsed.input, parsed.scope, parsed.output)
    elif parsed.command == "status":
        return cmd_status(config)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
