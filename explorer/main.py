# main.py
import asyncio
import argparse
import logging
from typing import List, Optional

from .config import load_config
from .constants import logger, DEFAULT_OUTPUT, LOG_DATEFMT, LOG_FORMAT
from .explorer import DomExplorer
from .live import open_page
from .loader import load_document
from .report import export_report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Explore a page, trigger its controls and export an element inventory')
    parser.add_argument('source', help='http(s) URL to render, or a local HTML file')
    parser.add_argument('--config', help='YAML file with max_iterations / wait_ms / debug')
    parser.add_argument('--max-iterations', type=int, default=None, help='Max trigger dequeues')
    parser.add_argument('--wait-ms', type=int, default=None, help='Settle interval after each interaction')
    parser.add_argument('--debug', action='store_true', default=None, help='Verbose per-element logging')
    parser.add_argument('--output', default=DEFAULT_OUTPUT, help='Report file')
    parser.add_argument('--format', choices=('json', 'yaml'), default='json', help='Report format')
    parser.add_argument('--headful', action='store_true', help='Show browser when rendering a URL')
    return parser


async def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    config = load_config(
        args.config,
        max_iterations=args.max_iterations,
        wait_ms=args.wait_ms,
        debug=args.debug,
    )

    logging.basicConfig(level=logging.DEBUG if config.debug else logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if args.source.startswith(('http://', 'https://')):
        async with open_page(args.source, headful=args.headful) as live:
            logger.info(f"Exploring {live.document.url}")
            report = await DomExplorer(live.document, config, driver=live).run()
    else:
        document = load_document(args.source)
        logger.info(f"Exploring {document.url}")
        report = await DomExplorer(document, config).run()
    export_report(report, args.output, args.format)
    return report


def run():
    asyncio.run(main())


if __name__ == '__main__':
    run()
