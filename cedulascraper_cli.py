import argparse
import json
import logging
import sys
from pathlib import Path

from cedulascraper import (
    CedulaScraperError,
    Config,
    FormSession,
    PageProvider,
    Query,
    QueryError,
    apply_env,
    load_config,
)

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Look up professional licenses by name or CURP",
    )
    ap.add_argument("--nombre", default="", help="Given name(s)")
    ap.add_argument("--paterno", default="", help="First surname")
    ap.add_argument("--materno", default="", help="Second surname")
    ap.add_argument("--curp", default="", help="CURP")
    ap.add_argument("--cfg", type=str, default="", help="Path to selectors JSON")
    ap.add_argument("--csv", type=str, default="", help="Optional path to export CSV")
    ap.add_argument("--json", action="store_true", help="Print the summary as JSON")
    ap.add_argument("--headed", action="store_true", help="Show the browser window")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    query = Query(args.nombre, args.paterno, args.materno, args.curp)
    try:
        query.validate()
    except QueryError as exc:
        logger.error("%s", exc)
        return 2

    cfg = apply_env(load_config(args.cfg) if args.cfg else Config())
    if args.headed:
        cfg.browser.headless = False

    provider = PageProvider(cfg.browser)
    try:
        result = provider.run(lambda page: FormSession(page, cfg).run(query))
    except CedulaScraperError as exc:
        logger.error("Lookup failed (%s): %s", exc.kind, exc)
        return 1
    finally:
        provider.shutdown()

    dframe = result.to_dataframe()
    logger.info(
        "Matches: %s | Universities: %s | Latest year: %s",
        result.total_count,
        ", ".join(result.universities) or "-",
        result.latest_year,
    )
    if not dframe.empty:
        logger.info("\n%s", dframe.head(10).to_string(index=False))

    if args.json:
        print(json.dumps(result.summary(), ensure_ascii=False, indent=2))

    if args.csv:
        out = Path(args.csv)
        out.parent.mkdir(parents=True, exist_ok=True)
        dframe.to_csv(out, index=False, encoding="utf-8")
        logger.info("Saved CSV to: %s", out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
