#!/usr/bin/env python
from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from search_orders.core.catalog import CATALOG  # noqa: E402
from search_orders.core.pricing import compute_total  # noqa: E402
from search_orders.core.selection import SelectionModel  # noqa: E402
from search_orders.domain import Director, MatchCandidate, ResolvedState  # noqa: E402


def _matches(values: list[str]) -> dict[str, tuple[MatchCandidate, ...]]:
    matches: dict[str, tuple[MatchCandidate, ...]] = {}
    for value in values:
        kind, _, count = value.partition("=")
        if not count.isdigit():
            raise SystemExit(f"--matches expects KIND=COUNT, got '{value}'")
        matches[kind.strip().lower()] = tuple(
            MatchCandidate(provider=kind, label=f"match {n + 1}", identity_key=f"{kind}-{n}")
            for n in range(int(count))
        )
    return matches


def main() -> None:
    parser = argparse.ArgumentParser(description="Print the price breakdown of a search selection")
    parser.add_argument("--category", default="ORGANISATION", help="ORGANISATION, INDIVIDUAL or 'LAND TITLE'")
    parser.add_argument("--search", action="append", default=[], help="catalog code to select (repeatable)")
    parser.add_argument("--state", action="append", default=[], help="land title jurisdiction (repeatable)")
    parser.add_argument("--detail", default=None, help="land title detail: SUMMARY, CURRENT, PAST or ALL")
    parser.add_argument("--add-on", action="store_true", help="add the land title add-on")
    parser.add_argument("--directors", type=int, default=0, help="number of current directors")
    parser.add_argument("--matches", action="append", default=[], help="KIND=COUNT confirmed matches, e.g. bankruptcy=2")
    args = parser.parse_args()

    model = SelectionModel(args.category.upper(), CATALOG)
    for code in args.search:
        model.toggle(code.upper())
    for code in sorted(model.snapshot.pending):
        model.activate(code)
    if args.state:
        model.set_sub_option("land_title_states", args.state)
    if args.detail:
        model.set_sub_option("land_title_detail", args.detail)
    if args.add_on:
        model.set_sub_option("add_on", True)

    directors = tuple(Director(index=n, first_name="DIRECTOR", last_name=str(n + 1)) for n in range(args.directors))
    resolved = ResolvedState(directors=directors, subject_matches=_matches(args.matches))
    breakdown = compute_total(model.snapshot, resolved, CATALOG)

    for line in breakdown.lines:
        print(f"{line.description:<48} {line.quantity:>3} x {line.unit_price:>8} = {line.subtotal:>9}")
    print(f"{'TOTAL':<48} {'':>16}   {breakdown.total:>9}")


if __name__ == "__main__":
    main()
