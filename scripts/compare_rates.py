"""Entry point for manual rate comparisons."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from rate_compare.adapters import ScraperServiceAdapter
from rate_compare.aggregation import RateAggregator
from rate_compare.config.property_file import PropertyFile, parse_check_in
from rate_compare.config.settings import Settings
from rate_compare.core.logging import configure_logging
from rate_compare.errors import AggregationFailure
from rate_compare.rates import AggregationResult, ChannelFailure, PropertyConfig, RateRecord
from rate_compare.rates.channels import display_names, get_channel
from rate_compare.utils.dates import calculate_nights, is_past_date


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compare nightly rates across booking channels")
    parser.add_argument(
        "--property",
        type=Path,
        default=None,
        help=(
            "Path to a TOML property file "
            "(defaults to RATE_COMPARE_PROPERTY_FILE, then config/property.toml when present)"
        ),
    )
    parser.add_argument(
        "--check-in",
        default=None,
        help="Check-in date (YYYY-MM-DD, 'today' or a relative offset such as '+14d')",
    )
    parser.add_argument(
        "--check-out",
        default=None,
        help="Check-out date (YYYY-MM-DD or a relative offset from today)",
    )
    parser.add_argument("--log-level", default=None, help="Override RATE_COMPARE_LOG_LEVEL")
    parser.add_argument("--json", action="store_true", help="Print the aggregation result as JSON")
    return parser


def _resolve_property_path(args: argparse.Namespace, settings: Settings) -> Path:
    if args.property:
        path = args.property
    elif settings.property_file:
        path = settings.property_file
    else:
        path = Path("config/property.toml")
    if not path.exists():
        raise FileNotFoundError(f"Property file not found: {path}")
    return path


def _resolve_dates(args: argparse.Namespace, property_file: PropertyFile) -> tuple[date, date]:
    default_in, default_out = property_file.stay.resolve()
    check_in = parse_check_in(args.check_in) if args.check_in else default_in
    if args.check_out:
        check_out = parse_check_in(args.check_out)
    elif args.check_in:
        check_out = check_in + (default_out - default_in)
    else:
        check_out = default_out
    return check_in, check_out


def _format_row(record: RateRecord, best: Optional[RateRecord]) -> str:
    marker = "*" if best is not None and record is best else " "
    availability = "available" if record.availability else "unavailable"
    return (
        f"{marker} {get_channel(record.channel).name:<12} "
        f"{record.total_price:>10.2f} {record.currency}  "
        f"(base {record.base_price:.2f} + fees {record.fees.total:.2f}, {availability})"
    )


def _format_failure(failure: ChannelFailure) -> str:
    detail = f": {failure.message}" if failure.message else ""
    return f"  {get_channel(failure.channel).name:<12} {failure.kind.value}{detail}"


def render(result: AggregationResult, config: PropertyConfig) -> str:
    lines = [
        f"{config.name} ({config.id}) {result.check_in.isoformat()} to {result.check_out.isoformat()} "
        f"({calculate_nights(result.check_in, result.check_out)} nights)",
        "",
    ]
    best = result.best_rate
    lines.extend(_format_row(record, best) for record in result.records)
    savings = result.savings()
    if savings is not None and best is not None:
        lines.append("")
        lines.append(
            f"Booking on {get_channel(best.channel).name} saves {savings.amount:.2f} {best.currency} "
            f"({savings.percentage:.2f}%) against the most expensive channel"
        )
    if result.failures:
        lines.append("")
        lines.append("Unavailable channels:")
        lines.extend(_format_failure(failure) for failure in result.failures.values())
    return "\n".join(lines)


async def run(settings: Settings, config: PropertyConfig, check_in: date, check_out: date) -> AggregationResult:
    adapters = {channel: ScraperServiceAdapter.from_settings(channel, settings) for channel in config.enabled_channels}
    try:
        async with RateAggregator(config, adapters, settings=settings) as aggregator:
            return await aggregator.fetch_rates(check_in, check_out)
    finally:
        for adapter in adapters.values():
            await adapter.aclose()


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    settings = Settings()

    property_path = _resolve_property_path(args, settings)
    property_file = PropertyFile.load(property_path)
    property_file.apply_to(settings)
    if args.log_level:
        settings.log_level = args.log_level

    configure_logging(settings.log_level, settings.log_dir)
    settings.ensure_directories()
    logger = logging.getLogger(__name__)

    config = property_file.to_config()
    try:
        check_in, check_out = _resolve_dates(args, property_file)
    except ValueError as exc:
        parser.error(str(exc))
    if is_past_date(check_in):
        parser.error(f"Check-in {check_in.isoformat()} is in the past")
    logger.info(
        "Loaded property '%s' from %s (channels: %s)",
        config.id,
        property_path,
        ", ".join(display_names(config.enabled_channels)) or "none",
    )

    try:
        result = asyncio.run(run(settings, config, check_in, check_out))
    except AggregationFailure as exc:
        logger.error("%s", exc)
        if args.json:
            failures = {channel: failure.to_dict() for channel, failure in exc.failures.items()}
            print(json.dumps({"property_id": exc.property_id, "failures": failures}, indent=2))
        return 1
    except ValueError as exc:
        parser.error(str(exc))

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(render(result, config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
