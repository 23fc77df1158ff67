#!/usr/bin/env python3
"""
Command-line valuation of a snapshot file.

    python -m src.integration.cli positions --snapshot snap.json --account 0x.. --pnl-after-fees
    python -m src.integration.cli tokens --snapshot snap.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..core.valuation import ValuationError, default_config, load_config
from .pipeline import positions_payload, run_pipeline, tokens_payload
from .snapshot import load_snapshot

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Derive perp position and token metrics from a snapshot file.")
    p.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    sub = p.add_subparsers(dest="command", required=True)

    for name, help_text in (("positions", "Derived positions as JSON"), ("tokens", "Normalized token map as JSON")):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--snapshot", required=True, type=Path, help="Path to snapshot JSON")
        sp.add_argument("--config", type=Path, default=None, help="Path to engine config YAML")
        sp.add_argument("--account", default=None, help="Account to value (defaults to the snapshot's account)")
        sp.add_argument("--pnl-after-fees", action="store_true", help="Display PnL net of fees")
        sp.add_argument("--include-delta", action="store_true", help="Fold unrealized PnL into leverage")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), stream=sys.stderr)

    try:
        config = load_config(args.config) if args.config else default_config()
        result = run_pipeline(
            load_snapshot(args.snapshot),
            account=args.account,
            show_pnl_after_fees=args.pnl_after_fees,
            include_delta=args.include_delta,
            config=config,
        )
    except (ValuationError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.command == "tokens":
        payload: object = tokens_payload(result)
    else:
        payload = positions_payload(result)
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
