from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from stocksim.config import Config, load_config
from stocksim.engine import build_engine
from stocksim.schemas import StockDebugInfo, Tier


def _print_table(infos: list[StockDebugInfo]) -> None:
    print(f"{'ID':>3} {'TICKER':<6} {'TIER':<10} {'PRICE':>11} {'TREND LINE':>11} {'DIR':<8} {'RATE/s':>9} {'NOISE':>9} EVENT")
    for i in infos:
        print(
            f"{i.stock_id:>3} {i.ticker:<6} {i.tier.value:<10} "
            f"{i.current_price:>11.4f} {i.trend_line_price:>11.4f} "
            f"{i.trend_direction.value:<8} {i.trend_per_second:>9.4f} {i.noise_accumulator:>9.5f} {i.active_event_type or '-'}"
        )


def run(cfg: Config, ticks: int, dt: float, tiers: Optional[list[Tier]] = None) -> list[StockDebugInfo]:
    engine = build_engine(cfg)
    engine.new_round(tiers)
    for _ in range(ticks):
        engine.tick(dt)
    return engine.generator.debug_info()


def main() -> None:
    ap = argparse.ArgumentParser(description="Run one headless round and print the final prices")
    ap.add_argument("--config", type=Path, default=None, help="YAML config, defaults to built-in tables")
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--ticks", type=int, default=600, help="number of ticks, default 600")
    ap.add_argument("--dt", type=float, default=1.0 / 60.0, help="seconds per tick, default 1/60")
    ap.add_argument("--tier", action="append", choices=[t.value for t in Tier], help="repeatable")
    ap.add_argument("--no-events", action="store_true", help="disable scheduled market events")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    cfg = load_config(args.config) if args.config is not None else Config()
    if args.seed is not None:
        cfg.simulation.seed = args.seed
    if args.no_events:
        cfg.events.scheduler.enabled = False

    tiers = [Tier(t) for t in args.tier] if args.tier else None
    _print_table(run(cfg, ticks=args.ticks, dt=args.dt, tiers=tiers))


if __name__ == "__main__":
    main()
