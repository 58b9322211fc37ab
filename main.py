"""layer-sync command line entry.

Fetches bus listings (locally through the scrape pipeline or through the
scrape backend), exports them to JSON and Excel, and projects records onto
a design document saved as JSON. Successful fetches are kept in the
history store configured by ``LAYERSYNC_DB_URL``.

Examples:
    python main.py fetch "https://www.redbus.in/bus-tickets/bangalore-to-tirupathi?fromCityId=122&toCityId=71756&onward=23-Jan-2026"
    python main.py batch URL1 URL2 --max 15
    python main.py history
    python main.py apply --document design.json --records output/buses_20260123_101500.json
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from layersync.adapters.internal_api import get_mock_bus_listings
from layersync.config import Config, configure_logging, load_config, project_path
from layersync.core.errors import LayerSyncError
from layersync.core.models import ExtractionMode
from layersync.core.scraper import scrape
from layersync.plugin.controller import SandboxController
from layersync.plugin.document import SCOPES, InMemoryDocument
from layersync.plugin.projector import apply_records
from layersync.plugin.workflow import PluginWorkflow
from layersync.services.api_client import ScrapeApiClient
from layersync.services.browser_pool import BrowserPool
from layersync.services.exporter import export_records
from layersync.storage.store import HistoryItem, PluginStorage, history_entry, open_storage


async def fetch_listings(
    cfg: Config,
    url: str,
    mode: str = "auto",
    max_items: int = 20,
    preset: Optional[str] = None,
    use_api: bool = False,
) -> List[Dict[str, Any]]:
    """Fetch records for one URL.

    Args:
        cfg: Configuration
        url: Search page URL
        mode: Extraction mode (auto, direct, xhr, dataLayer)
        max_items: Record cap
        preset: dataLayer preset name
        use_api: Go through the scrape backend instead of the local pipeline

    Returns:
        Records in wire shape.

    Raises:
        LayerSyncError: Input error, or nothing could be extracted
    """
    payload = {
        "url": url,
        "options": {"extractionMode": mode, "maxResults": max_items, "dataLayerPreset": preset},
    }
    if use_api:
        response = await ScrapeApiClient(cfg).fetch_with_retry(payload)
    else:
        try:
            response = await scrape(payload, cfg)
        finally:
            await BrowserPool.shutdown()

    if not response.success:
        raise LayerSyncError(", ".join(response.errors) or "Extraction failed")
    items = response.data_layer_items or []
    logger.success(
        f"🎯 {len(items)} records via {response.extraction_mode} "
        f"({response.total_items_found} on page, {response.timing.total}ms)"
    )
    return items


def open_config_storage(cfg: Config) -> PluginStorage:
    """Preset/history storage at ``cfg.storage.db_url``."""
    return open_storage(cfg.storage.db_url, history_limit=cfg.storage.history_limit)


def output_dir_for(args: argparse.Namespace) -> Path:
    return Path(args.output_dir) if getattr(args, "output_dir", None) else project_path("output")


async def run_fetch(cfg: Config, args: argparse.Namespace, storage: Optional[PluginStorage] = None) -> Path:
    if args.mock:
        items = [bus.to_dict() for bus in get_mock_bus_listings(args.max)]
    else:
        items = await fetch_listings(cfg, args.url, args.mode, args.max, args.preset, use_api=args.api)
        if items:
            storage = storage or open_config_storage(cfg)
            storage.add_history_item(history_entry(args.url.strip(), str(items[0].get("route") or ""), len(items)))
    json_path, excel_path = export_records(items, output_dir_for(args))
    logger.success(f"🎯 Written {json_path} and {excel_path}")
    return json_path


async def run_batch(
    cfg: Config,
    args: argparse.Namespace,
    client: Optional[ScrapeApiClient] = None,
    storage: Optional[PluginStorage] = None,
) -> Path:
    controller = SandboxController(InMemoryDocument(), storage=storage or open_config_storage(cfg))
    workflow = PluginWorkflow(client or ScrapeApiClient(cfg), controller)
    batch = await workflow.fetch_batch(args.urls, max_items=args.max)
    items = [item for response in batch.responses for item in response.data_layer_items or []]
    json_path, _ = export_records(items, output_dir_for(args), prefix="batch")
    if not batch.completed:
        logger.error(f"❌ Batch stopped at {batch.failed_url}: {batch.error}")
    logger.success(f"🎯 {len(batch.responses)}/{len(args.urls)} URLs, {len(items)} records -> {json_path}")
    return json_path


def run_history(cfg: Config, storage: Optional[PluginStorage] = None) -> List[HistoryItem]:
    history = (storage or open_config_storage(cfg)).load_history()
    if not history:
        logger.info("No fetch history yet")
    for item in reversed(history):
        logger.info(f"🕘 {item.route_name or '-'} ({item.bus_count} buses) {item.url}")
    return history


async def run_apply(args: argparse.Namespace) -> Path:
    document = InMemoryDocument.load(Path(args.document))
    with Path(args.records).open("r", encoding="utf-8") as f:
        records = json.load(f)
    if not isinstance(records, list):
        raise LayerSyncError("Records file must contain a JSON array")

    report = await apply_records(document, records, scope=args.scope)
    out_path = Path(args.out) if args.out else Path(args.document)
    document.save(out_path)
    logger.success(f"✓ Updated {report.updated} layer(s), {report.failed} failed -> {out_path}")
    return out_path


def parse_args() -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Namespace with ``command`` plus that command's options.
    """
    parser = argparse.ArgumentParser(description="layer-sync: bus listings into design layers")
    parser.add_argument("--headless", action="store_true", help="force headless browser")
    parser.add_argument("--no-headless", action="store_true", help="force a visible browser window")
    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", help="fetch one search page and export records")
    fetch.add_argument("url", nargs="?", default="", help="search page URL")
    fetch.add_argument(
        "--mode",
        choices=[m.value for m in ExtractionMode if m != ExtractionMode.SELECTORS],
        default=ExtractionMode.AUTO.value,
    )
    fetch.add_argument("--max", type=int, default=20, help="maximum records")
    fetch.add_argument("--preset", default=None, help="dataLayer preset name")
    fetch.add_argument("--api", action="store_true", help="use the scrape backend instead of a local browser")
    fetch.add_argument("--mock", action="store_true", help="export sample listings without any network call")
    fetch.add_argument("--output-dir", default=None, help="export directory, defaults to output/")

    batch = sub.add_parser("batch", help="fetch several URLs one after another through the backend")
    batch.add_argument("urls", nargs="+")
    batch.add_argument("--max", type=int, default=20)
    batch.add_argument("--output-dir", default=None, help="export directory, defaults to output/")

    sub.add_parser("history", help="list recent fetches")

    apply = sub.add_parser("apply", help="write records into a document JSON")
    apply.add_argument("--document", required=True, help="document JSON file")
    apply.add_argument("--records", required=True, help="records JSON array")
    apply.add_argument("--scope", choices=SCOPES, default="page")
    apply.add_argument("--out", default=None, help="output path, defaults to overwriting --document")
    return parser.parse_args()


async def main(args: argparse.Namespace) -> None:
    cfg = load_config()
    if args.headless and args.no_headless:
        raise SystemExit("--headless and --no-headless cannot be used together")
    if args.headless:
        cfg.browser.headless = True
    if args.no_headless:
        cfg.browser.headless = False

    try:
        if args.command == "fetch":
            if not args.url and not args.mock:
                raise SystemExit("Please provide a URL, e.g. main.py fetch https://www.redbus.in/...")
            await run_fetch(cfg, args)
        elif args.command == "batch":
            await run_batch(cfg, args)
        elif args.command == "apply":
            await run_apply(args)
        elif args.command == "history":
            run_history(cfg)
    except (LayerSyncError, httpx.HTTPError) as exc:
        logger.error(f"❌ {exc}")
        raise SystemExit(1) from exc


def cli() -> None:
    # file logging for troubleshooting
    configure_logging()
    asyncio.run(main(parse_args()))


if __name__ == "__main__":
    cli()
