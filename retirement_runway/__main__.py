"""CLI entry point for retirement-runway."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from .calculators import monte_carlo, projection
from .calculators.return_models import default_service
from .components.export import bands_csv
from .components.insights import generate_insights, summarize
from .config import MonteCarloConfig
from .errors import RunwayError
from .scenario import load_scenario


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Project retirement balances and estimate depletion risk")
    parser.add_argument("scenario", help="Path to scenario JSON file")
    parser.add_argument("-o", "--output", help="Write CSV output to this path instead of stdout")
    parser.add_argument("--monte-carlo", action="store_true", help="Run a Monte Carlo analysis instead of one projection")
    parser.add_argument("--config", help="Path to Monte Carlo options JSON file")
    parser.add_argument("--iterations", type=int, help="Override Monte Carlo trial count")
    parser.add_argument("--seed", type=int, help="Random seed for reproducibility")
    parser.add_argument(
        "--return-model",
        choices=sorted(m["name"] for m in default_service.available_models()),
        help="Override the return model",
    )
    parser.add_argument("--workers", type=int, help="Worker processes for Monte Carlo trials")
    parser.add_argument("--summary", action="store_true", help="Print text summary to stderr")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity")
    return parser


def _emit(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        print(f"Wrote {output}", file=sys.stderr)
    else:
        sys.stdout.write(text)


def _monte_carlo_options(args: argparse.Namespace) -> MonteCarloConfig:
    options = {}
    if args.config:
        with open(args.config, "r", encoding="utf-8") as f:
            options = json.load(f)
    overrides = {
        "iterations": args.iterations,
        "random_seed": args.seed,
        "return_model": args.return_model,
        "workers": args.workers,
    }
    options.update({k: v for k, v in overrides.items() if v is not None})
    return MonteCarloConfig.from_dict(options)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        scenario = load_scenario(args.scenario)
        if args.monte_carlo:
            result = monte_carlo.analyze(scenario, _monte_carlo_options(args))
            _emit(bands_csv(result.percentile_bands), args.output)
            if args.summary:
                print(summarize(result), file=sys.stderr)
                for insight in generate_insights(result):
                    print(f"[{insight['severity']}] {insight['title']}: {insight['description']}", file=sys.stderr)
        else:
            result = projection.run(scenario, seed=args.seed)
            _emit(result.csv_text, args.output)
            if args.summary:
                print(f"Months simulated: {result.actual_duration} of {result.duration_months}", file=sys.stderr)
                print(f"Final balance: ${result.final_balance:,.0f}", file=sys.stderr)
                if result.first_shortfall_month is not None:
                    print(f"First shortfall in month {result.first_shortfall_month + 1}", file=sys.stderr)
    except (RunwayError, OSError, json.JSONDecodeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
