"""Build an attrition report from three exports on disk and print it as JSON.

Usage:
    python scripts/run_report.py activo_x.xlsx bajas_x.xlsx matrizrotacion_x_marzo.xlsx [--month marzo]
"""

import argparse
import asyncio
import json
from pathlib import Path

from config.settings import settings

from attrition_brain.discovery.engine import build_report_from_files, report_to_dict
from attrition_brain.memory.corrections_store import CorrectionsStore


async def run(args: argparse.Namespace) -> None:
    exports = [(Path(p).read_bytes(), Path(p).name) for p in (args.activos, args.bajas, args.matriz)]
    report = await build_report_from_files(
        exports[0], exports[1], exports[2],
        CorrectionsStore(settings.corrections_path),
        month=args.month,
        with_summary=not args.no_summary,
    )
    print(json.dumps(report_to_dict(report), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("activos")
    parser.add_argument("bajas")
    parser.add_argument("matriz")
    parser.add_argument("--month", default=None, help="Spanish month name, overrides file names")
    parser.add_argument("--no-summary", action="store_true", help="Skip the LLM narrative")
    asyncio.run(run(parser.parse_args()))
