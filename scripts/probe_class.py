#!/usr/bin/env python3
"""Manually probe one or more CRNs against the live class-search site.

Usage:
    python scripts/probe_class.py 12345 [67890 ...] [--show-browser]
"""

import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import load_config  # noqa: E402
from probers.base import ProbeError  # noqa: E402
from probers.class_search import ClassSearchProber  # noqa: E402

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
for noisy in ("selenium", "urllib3"):
    logging.getLogger(noisy).setLevel(logging.WARNING)


def main(argv: list[str]) -> int:
    codes = [a for a in argv if not a.startswith("--")]
    if not codes:
        print(__doc__)
        return 2

    config = load_config(os.environ.get("CONFIG_PATH", "config.json"), required=False)
    if "--show-browser" in argv:
        config.prober.headless = False
    prober = ClassSearchProber(config.prober)

    failures = 0
    for code in codes:
        print(f"\n{'=' * 60}\nProbing CRN {code} ({config.prober.term})\n{'=' * 60}")
        try:
            result = prober.probe(code, config.probe_timeout_seconds)
        except ProbeError as e:
            print(f"  FAILED: {e.reason}")
            failures += 1
            continue
        print(f"  Title: {result.display_title}")
        print(f"  Seats: {result.seats}")

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
