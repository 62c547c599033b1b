"""
Fail the build when a top-level route is missing from the route table.

Usage: python scripts/check_route_table.py
"""

from __future__ import annotations

import argparse
import os
import sys

os.environ.setdefault("SKIP_MIGRATIONS", "1")

from ekkle.main import app  # noqa: E402
from ekkle.tenancy.routes import DEFAULT_ROUTE_TABLE, check_route_tree, top_level_segments  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--verbose", action="store_true", help="print every segment and its rule")
    args = parser.parse_args(argv)

    if args.verbose:
        for segment in sorted(top_level_segments(app)):
            rule = DEFAULT_ROUTE_TABLE.classify(segment)
            label = "unclassified" if rule is None else ("tenant-agnostic" if rule.tenant_agnostic else "tenant-scoped")
            print(f"{segment:<20} {label}")

    missing = check_route_tree(DEFAULT_ROUTE_TABLE, app)
    if missing:
        print("Unclassified top-level routes: " + ", ".join(missing), file=sys.stderr)
        return 1
    print("Route table covers every top-level route.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
