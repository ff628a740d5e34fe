import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from dotenv import load_dotenv

from .adapters import build_adapter
from .aggregator import AggregationReport, AggregationRunner
from .catalog import TokenMetadataCatalog
from .chain_reader import ChainReaderClient
from .config import DEFAULT_CONFIG_PATH, LOG_LEVELS, Settings, load_settings
from .errors import CatalogLoadError, ConfigurationError
from .fetcher import MODES, ProtocolFetcher
from .normalizer import ReserveNormalizer
from .snapshot import SnapshotLayout, SnapshotWriter

logger = logging.getLogger("reserves")

EXIT_OK = 0
EXIT_PROTOCOL_FAILURE = 1
EXIT_FATAL = 2


def build_fetchers(
    settings: Settings,
    catalog: TokenMetadataCatalog,
    protocols: Optional[Iterable[str]] = None,
    mode: str = "reserves",
    layout: Optional[SnapshotLayout] = None,
) -> List[ProtocolFetcher]:
    layout = layout or SnapshotLayout(settings.out_root, settings.annotated_root)
    normalizer = ReserveNormalizer(catalog)
    writer = SnapshotWriter(settings.consumer)

    fetchers = []
    for name, cfg in settings.select(list(protocols or [])).items():
        # one client per protocol so worker threads do not share a session
        reader = ChainReaderClient(settings.rpc_url, timeout=settings.rpc_timeout)
        fetchers.append(ProtocolFetcher(
            adapter=build_adapter(reader, cfg),
            normalizer=normalizer,
            writer=writer,
            layout=layout,
            mode=mode,
            retries=settings.retries,
            max_backoff=settings.max_backoff,
        ))
    return fetchers


def print_results(report: AggregationReport, symbols: Iterable[str] = ()) -> None:
    """Console view; the symbol filter never touches the written snapshots."""
    wanted = {s.upper() for s in symbols}
    for protocol in report.succeeded:
        snapshot = report[protocol].snapshot
        if snapshot.kind == "list":
            print(f"\n✅ Found {len(snapshot.addresses)} {snapshot.label} reserves:")
            for i, addr in enumerate(snapshot.addresses, 1):
                print(f"{i}. {addr}")
            continue

        print(f"\n=== {snapshot.label} ({protocol}) ===")
        for r in snapshot.reserves:
            if wanted and r.symbol.upper() not in wanted:
                continue
            flash_icon = "⚡" if r.flash_loan_enabled else " "
            print(f"\n{flash_icon} {r.symbol} Info")
            print(f"  Liquidity     : {r.available_liquidity:.6f} {r.symbol}")
            print(f"  Borrow Cap    : {r.borrow_cap or 'N/A'}")
            print(f"  Debt Ceiling  : {r.debt_ceiling or 'N/A'}")
            if r.total_variable_debt is not None:
                print(f"  Variable Debt : {r.total_variable_debt:.6f}")
            if r.total_stable_debt is not None:
                print(f"  Stable Debt   : {r.total_stable_debt:.6f}")

    print("\n--- Run summary ---")
    for line in report.summary_lines():
        print(line)
    for protocol in report.succeeded:
        for path in report[protocol].paths:
            print(f"💾 Saved → {path}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Fetch lending-protocol reserve liquidity and save snapshots")
    p.add_argument("symbols", nargs="*", help="Only print these symbols (snapshots are always complete)")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML settings file")
    p.add_argument("--protocols", nargs="+", help="Protocol keys from the config (default: all)")
    p.add_argument("--mode", choices=MODES, default="reserves", help="Full reserve data or address list only")
    p.add_argument("--out-root", type=Path, help="Directory for machine-readable snapshots")
    p.add_argument("--annotated-root", type=Path, help="Directory for annotated .jsonc snapshots")
    p.add_argument("--workers", type=int, help="Parallel protocol pipelines")
    p.add_argument("--deadline", type=float, help="Cancel pipelines still running after this many seconds")
    p.add_argument("--strict", action="store_true", help="Exit non-zero if any protocol fails")
    p.add_argument("--no-write", action="store_true", help="Do not write snapshot files; just print")
    p.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Logging level (default from config, INFO)")
    return p.parse_args(argv)


def main(argv=None) -> int:
    load_dotenv()
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_FATAL

    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        catalog = TokenMetadataCatalog.load(settings.metadata_path)
        layout = SnapshotLayout(
            args.out_root or settings.out_root,
            args.annotated_root or settings.annotated_root,
        )
        fetchers = build_fetchers(settings, catalog, args.protocols, args.mode, layout)
    except (ConfigurationError, CatalogLoadError) as e:
        logger.error("%s", e)
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_FATAL

    logger.info(
        "Fetching %s for %s (%d catalog tokens)",
        args.mode, ", ".join(f.protocol for f in fetchers), len(catalog),
    )
    runner = AggregationRunner(workers=args.workers or settings.workers, write=not args.no_write)
    try:
        report = runner.run(fetchers, deadline=args.deadline)
    except ConfigurationError as e:
        logger.error("%s", e)
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_FATAL

    print_results(report, args.symbols)
    return report.exit_code(strict=args.strict)


if __name__ == "__main__":
    sys.exit(main())
