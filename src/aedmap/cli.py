"""Command-line interface for aedmap."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

from . import __version__
from .chart import RegionChart
from .errors import AedmapError
from .geolocation import GeolocationProvider
from .listing import SiteList, format_distance
from .models import ReferenceLocation
from .refresh import RefreshOutcome
from .regions import region_options
from .report import export_view
from .session import ViewerSession
from .settings import ALL_REGIONS, Settings, load_settings
from .source_client import fetch_json
from .view_state import SearchKeyword, SelectRegion


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aedmap",
        description="AED installation viewer (GeoJSON ingest + region/keyword filters + proximity ranking).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=str, default=None, help="YAML settings file (default: config/aedmap.yaml).")
    parser.add_argument("--data", type=str, default=None, help="Dataset URL or local GeoJSON path.")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level (DEBUG/INFO/WARNING).")

    subparsers = parser.add_subparsers(dest="command", required=False)

    view_parser = subparsers.add_parser(
        "view",
        help="Load the dataset and print the filtered, ranked list.",
        description="Loads the dataset, applies region/keyword filters and optional proximity ranking.",
    )
    view_parser.add_argument("--region", type=str, default=ALL_REGIONS, help="Region filter (default: all).")
    view_parser.add_argument("--search", type=str, default="", help="Keyword over name/address/location.")
    view_parser.add_argument("--near", type=str, default="", help="Place name to geocode as reference location.")
    view_parser.add_argument("--lat", type=float, default=None, help="Reference latitude.")
    view_parser.add_argument("--lon", type=float, default=None, help="Reference longitude.")
    view_parser.add_argument("--limit", type=int, default=None, help="Entries to print (default: list cap).")
    view_parser.add_argument("--out", type=str, default=None, help="Write sites.geojson and sites_map.html here.")
    view_parser.set_defaults(func=view_command)

    regions_parser = subparsers.add_parser("regions", help="Print site counts per region.")
    regions_parser.add_argument("--top", type=int, default=0, help="Only the N busiest regions.")
    regions_parser.set_defaults(func=regions_command)

    watch_parser = subparsers.add_parser(
        "watch",
        help="Refresh the dataset periodically and report changes.",
    )
    watch_parser.add_argument("--metadata-url", type=str, default=None, help="Source metadata URL.")
    watch_parser.add_argument("--interval", type=float, default=None, help="Seconds between refreshes.")
    watch_parser.add_argument("--iterations", type=int, default=0, help="Stop after N refreshes (0 = forever).")
    watch_parser.set_defaults(func=watch_command)

    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config)
    if args.data:
        settings.data_url = args.data
    if getattr(args, "metadata_url", None):
        settings.metadata_url = args.metadata_url
    return settings


def _locator(args: argparse.Namespace, settings: Settings) -> GeolocationProvider | None:
    if args.lat is not None and args.lon is not None:
        return GeolocationProvider(fixed=ReferenceLocation(args.lat, args.lon), timeout=settings.geolocation_timeout)
    if args.near:
        return GeolocationProvider(
            args.near,
            timeout=settings.geolocation_timeout,
            max_age=settings.geolocation_max_age,
            user_agent=settings.geolocation_user_agent,
        )
    return None


def _print_outcome(outcome: RefreshOutcome) -> None:
    if outcome.message:
        print(outcome.message)
    if outcome.metadata_message:
        print(outcome.metadata_message)


def view_command(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    session = ViewerSession(settings, locator=_locator(args, settings))
    listing = SiteList(session.coordinator, cap=args.limit or settings.list_cap)

    outcome = asyncio.run(session.start())
    if not outcome.ok:
        _print_outcome(outcome)
        return 1

    coordinator = session.coordinator
    coordinator.drain([SelectRegion(args.region), SearchKeyword(args.search)])
    state = coordinator.state
    print(f"Sites: {len(state.all_sites)}; regions: {len(state.region_index)}; matching: {len(state.filtered_view)}")
    if outcome.dropped:
        print(f"Skipped records without coordinates: {outcome.dropped}")
    if outcome.metadata_message and settings.metadata_url:
        print(outcome.metadata_message)
    print(listing.summary)
    for idx, entry in enumerate(listing.entries, start=1):
        dist = format_distance(entry.site.distance_km)
        suffix = f" ({dist})" if dist else ""
        print(f"{idx:>3}. {entry.title}{suffix}")
        for line in entry.lines[:2]:
            print(f"     {line}")

    if args.out:
        paths = export_view(coordinator.current_update(), args.out)
        print(f"Wrote {paths['geojson']} and {paths['html']}")
    return 0


def regions_command(args: argparse.Namespace) -> int:
    from .normalize import normalize_features, parse_feature_collection
    from .regions import build_region_index, top_regions

    settings = _settings_from_args(args)
    try:
        payload = fetch_json(settings.data_url, timeout=settings.http_timeout, max_retries=settings.http_max_retries)
        result = normalize_features(parse_feature_collection(payload), settings)
    except AedmapError as exc:
        print(f"Dataset unavailable: {exc}")
        return 1
    index = build_region_index(result.sites, settings.unknown_region)
    rows = top_regions(index, args.top) if args.top else region_options(index)
    for name, count in rows:
        print(f"{name}\t{count}")
    return 0


def watch_command(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    session = ViewerSession(settings)
    chart = RegionChart(session.coordinator, top_n=settings.chart_top_n)

    def report(outcome: RefreshOutcome) -> None:
        state = session.coordinator.state
        if outcome.ok:
            edited = state.source_last_edited.isoformat() if state.source_last_edited else "unknown"
            top = ", ".join(f"{label} {count}" for label, count in zip(chart.data.labels[:3], chart.data.counts[:3]))
            print(
                f"[{state.last_ingested_at:%Y-%m-%d %H:%M:%S}] sites={len(state.all_sites)} "
                f"source_edited={edited} top: {top}"
            )
        _print_outcome(outcome)

    interval = args.interval if args.interval is not None else settings.refresh_interval
    try:
        asyncio.run(session.refresher.run_periodic(interval, iterations=args.iterations, on_outcome=report))
    except KeyboardInterrupt:
        pass
    return 0 if session.coordinator.state.loaded else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "view" and (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    return args.func(args)
