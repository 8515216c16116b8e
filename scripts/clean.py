#!/usr/bin/env python3
"""Delete the calendar database, rendered views and Python caches."""

from __future__ import annotations

import argparse
import shutil
from pathlib import Path

GENERATED = ("calendar.db", "output", "output-pdf")
CACHE_PATTERNS = ("__pycache__", ".pytest_cache")


def generated_paths(root: Path, keep_prefs: bool = False) -> list[Path]:
    names = list(GENERATED) if keep_prefs else [*GENERATED, "preferences.json"]
    paths = [root / name for name in names]
    for pattern in CACHE_PATTERNS:
        paths.extend(path for path in root.rglob(pattern) if ".venv" not in path.parts)
    return [path for path in paths if path.exists()]


def clean(root: Path, keep_prefs: bool = False) -> list[Path]:
    removed = generated_paths(root, keep_prefs)
    for path in removed:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
    return removed


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--keep-prefs", action="store_true", help="Keep preferences.json.")
    parser.add_argument("--dry-run", action="store_true", help="List paths without deleting them.")
    args = parser.parse_args()

    root = Path(__file__).resolve().parents[1]
    if args.dry_run:
        paths = generated_paths(root, args.keep_prefs)
    else:
        paths = clean(root, keep_prefs=args.keep_prefs)
    for path in paths:
        print(path.relative_to(root))
    if not paths:
        print("Nothing to clean.")


if __name__ == "__main__":
    main()
