#!/usr/bin/env python3
"""
Release version helper for Ambient.

Keeps the version in pyproject.toml and ambient/__init__.py in step.

Usage:
    python scripts/bump_version.py <new_version> [--dry-run]

Example:
    python scripts/bump_version.py 0.2.0
"""

import argparse
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent

VERSION_FILES = [
    (ROOT / "pyproject.toml", r'^version\s*=\s*"(.*?)"$', 'version = "{}"'),
    (ROOT / "ambient" / "__init__.py", r'^__version__\s*=\s*"(.*?)"$', '__version__ = "{}"'),
]


def replace_version(path: Path, pattern: str, template: str, new_version: str, dry_run: bool) -> str:
    """Rewrite the first version line in path, returning the old version."""
    if not path.exists():
        raise FileNotFoundError(f"{path} not found")

    content = path.read_text()
    match = re.search(pattern, content, re.MULTILINE)
    if match is None:
        raise ValueError(f"No version line found in {path}")

    if not dry_run:
        updated = re.sub(pattern, template.format(new_version), content, count=1, flags=re.MULTILINE)
        path.write_text(updated)
    return match.group(1)


def main():
    parser = argparse.ArgumentParser(description="Set the Ambient release version")
    parser.add_argument("version", help="New version number (format: x.y.z)")
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args()

    if not re.match(r"^\d+\.\d+\.\d+$", args.version):
        print(f"Error: Invalid version format '{args.version}'. Expected format: x.y.z")
        sys.exit(1)

    try:
        for path, pattern, template in VERSION_FILES:
            old = replace_version(path, pattern, template, args.version, args.dry_run)
            print(f"{path.relative_to(ROOT)}: {old} -> {args.version}")
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
