"""Writes UI schema files for the definitions of terraform addons."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

SCHEMA_TEMPLATE = """- jsonKey: writeConnectionSecretToRef
  disable: true
- jsonKey: providerRef
  disable: true
- jsonKey: region
  disable: true

"""

PREFIX = "terraform-"


def _entries(directory: Path) -> list[Path]:
    return sorted(directory.iterdir(), key=lambda p: p.name)


def list_terraform_schema_files(root: str | Path) -> list[Path]:
    """Return the schema file paths for every terraform addon definition under ``root``."""
    addons = Path(root) / "addons"
    files: list[Path] = []
    for provider in _entries(addons):
        if provider.is_symlink() or not provider.is_dir() or not provider.name.startswith(PREFIX):
            continue
        for definition in _entries(provider / "definitions"):
            if definition.name.startswith(PREFIX):
                name = definition.name.split(PREFIX)[1]
                files.append(provider / "schemas" / f"component-uischema-{name}")
    return files


def generate_schemas(root: str | Path) -> list[Path]:
    """Write the schema template to every schema file and return their paths."""
    files = list_terraform_schema_files(root)
    for schema in files:
        schema.parent.mkdir(parents=True, exist_ok=True)
        schema.write_text(SCHEMA_TEMPLATE, encoding="utf-8")
    return files


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gen-addon-ui-schema",
        description="Generate UI schema files for terraform addons.",
    )
    parser.add_argument("root", nargs="?", default=".", help="repository root holding addons/")
    args = parser.parse_args(argv)
    try:
        generate_schemas(Path(args.root).resolve())
    except OSError as err:
        print(err, file=sys.stderr)
        return 1
    print("Successfully generated terraform schema files")
    return 0


if __name__ == "__main__":
    sys.exit(main())