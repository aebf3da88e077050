#!/usr/bin/env python3
"""
Decision Core - Command-line entry point.

Subcommands:
  decide   run one decision cycle over the trailing window of a candle file
  replay   slide the window across a candle file, one decision per step

Candle files are CSV (open_time/timestamp, open, high, low, close[, volume])
or a JSON list of candle objects. An optional JSON file supplies the AI
prediction payload for the AI timeframe.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import pandas as pd

from src.ai.prediction import StaticPredictor
from src.core.config import load_config
from src.core.engine import DecisionEngine
from src.core.logger import get_logger, setup_logging
from src.core.models import Candle, CandleWindow

logger = get_logger("main")

_TIME_COLUMNS = ("open_time", "timestamp", "time")


def load_candles(path: str) -> List[Candle]:
    """Read candles from CSV or JSON, sorted ascending by open time."""
    file = Path(path)
    if file.suffix.lower() == ".json":
        records = json.loads(file.read_text(encoding="utf-8"))
        candles = [Candle.from_dict(r) for r in records]
    else:
        frame = pd.read_csv(file)
        frame.columns = [str(c).strip().lower() for c in frame.columns]
        time_col = next((c for c in _TIME_COLUMNS if c in frame.columns), None)
        if time_col is None:
            raise ValueError(f"{path}: no open_time/timestamp/time column")
        if "volume" not in frame.columns:
            frame["volume"] = 0.0
        candles = [
            Candle(
                open_time=float(row[time_col]),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=float(row["volume"]),
            )
            for _, row in frame.iterrows()
        ]
    return sorted(candles, key=lambda c: c.open_time)


def _load_payload(path: Optional[str]) -> Any:
    if not path:
        return None
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _build_engine(args: argparse.Namespace) -> DecisionEngine:
    config = load_config(args.config)
    setup_logging(
        log_level=args.log_level or config.app.log_level,
        log_dir=config.app.log_dir,
        json_output=config.app.json_logs,
    )
    return DecisionEngine(config, predictor=StaticPredictor(_load_payload(args.ai)))


async def _decide(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    candles = load_candles(args.candles)
    window = CandleWindow(candles[-args.window:])
    result = await engine.run_cycle(args.symbol, args.timeframe, window)
    if result is None:
        logger.error("Decision cycle was abandoned")
        return 1
    print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    return 0


async def _replay(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    candles = load_candles(args.candles)
    if len(candles) < args.window:
        logger.error("Not enough candles for one window", candles=len(candles), window=args.window)
        return 1
    for end in range(args.window, len(candles) + 1, max(1, args.step)):
        window = CandleWindow(candles[end - args.window:end])
        result = await engine.run_cycle(args.symbol, args.timeframe, window)
        if result is None:
            continue
        print(json.dumps({
            "window_end": result.window_end,
            "regime": result.ensemble.regime.value,
            "action": result.decision.action.value,
            "confidence": result.decision.confidence,
            "rationale": result.decision.rationale,
        }, sort_keys=True))
    logger.info("Replay finished", **engine.get_stats())
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Signal fusion decision core.")
    parser.add_argument("--config", default="config/config.yaml")
    parser.add_argument("--log-level", default=None)

    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("decide", "Run one decision cycle over the latest window"),
        ("replay", "Replay a candle file window by window"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("candles", help="CSV or JSON candle file")
        cmd.add_argument("--ai", default=None, help="JSON file with an AI prediction payload")
        cmd.add_argument("--symbol", default="BTC/USD")
        cmd.add_argument("--timeframe", default="4h")
        cmd.add_argument("--window", type=int, default=100)
        if name == "replay":
            cmd.add_argument("--step", type=int, default=1)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    runner = _decide if args.command == "decide" else _replay
    try:
        return asyncio.run(runner(args))
    except (OSError, ValueError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
