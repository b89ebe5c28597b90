#!/usr/bin/env python3
"""
Run, reset or print leaderboard buckets from a shell.

    python tools/trigger_leaderboard.py                       # every bucket
    python tools/trigger_leaderboard.py --type seller --period monthly
    python tools/trigger_leaderboard.py --type seller --period monthly --reset
    python tools/trigger_leaderboard.py --type seller --period weekly --show 10
"""
import argparse
import logging
import os
import sys

from dotenv import find_dotenv, load_dotenv

# Add parent directory to path to allow importing the function packages
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Leaderboard_Scorer import build_engine, run  # noqa: E402
from Leaderboard_Scorer.constants import LeaderboardPeriod, LeaderboardType  # noqa: E402
from utils.db_utils import get_db_name  # noqa: E402


def _load_env() -> None:
    explicit = os.getenv("LEADERBOARD_ENV_PATH")
    if explicit:
        load_dotenv(dotenv_path=explicit, override=False)
        return
    found = find_dotenv(usecwd=True)
    if found:
        load_dotenv(dotenv_path=found, override=False)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Trigger leaderboard recomputation")
    parser.add_argument("--type", choices=[t.value for t in LeaderboardType])
    parser.add_argument("--period", choices=[p.value for p in LeaderboardPeriod])
    parser.add_argument("--reset", action="store_true", help="Soft-delete the bucket instead of recomputing")
    parser.add_argument("--show", type=int, metavar="N", help="Print the top N rows of the bucket")
    args = parser.parse_args(argv)
    if (args.type is None) != (args.period is None):
        parser.error("--type and --period must be given together")
    if (args.reset or args.show) and args.type is None:
        parser.error("--reset and --show need --type and --period")
    return args


def main(argv=None) -> int:
    _load_env()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)

    print(f"Using database {get_db_name()}")

    if args.reset:
        modified = build_engine().reset_leaderboard(args.type, args.period)
        print(f"Deactivated {modified} row(s) for {args.type}/{args.period}")
        return 0

    if args.show:
        rows = build_engine().get_leaderboard(args.type, args.period, limit=args.show)
        for row in rows:
            print(f"{row.get('rank'):>4}  {str(row['userId']):<26} {row.get('totalScore', 0):>10.2f}")
        return 0

    outcome = run(args.type, args.period)
    failed = [k for k, ok in outcome.items() if ok is False]
    for key, ok in outcome.items():
        print(f"{key}: {ok}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
