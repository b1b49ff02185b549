"""Add documents to the library catalog from a JSON manifest."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from smartassist import Settings
from smartassist.documents import DocumentCatalog, format_file_size


def main(manifest: Path, *, dry_run: bool) -> None:
    settings = Settings.from_env()
    catalog = DocumentCatalog(settings.catalog_path())

    with manifest.open("r", encoding="utf-8") as handle:
        entries = json.load(handle)

    existing = {document.original_file_name for document in catalog.list_documents()}
    for entry in entries:
        file_name = str(entry.get("original_file_name") or entry.get("file") or "").strip()
        name = str(entry.get("name") or file_name).strip()
        if not file_name or file_name in existing:
            print(f"Skipping: {file_name or '<missing file name>'}")
            continue
        size = int(entry.get("size") or 0)
        if dry_run:
            print(f"Would add: {name} ({file_name}, {format_file_size(size)})")
            continue
        document = catalog.add(
            name=name,
            original_file_name=file_name,
            size=size,
            description=entry.get("description"),
            download_url=entry.get("download_url"),
            keywords=entry.get("keywords") or [],
        )
        print(f"Added: {document.name} [{document.id}]")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("manifest", type=Path, help="JSON list of document entries")
    parser.add_argument("--dry-run", action="store_true", help="List documents without writing the catalog")
    args = parser.parse_args()
    main(args.manifest, dry_run=args.dry_run)
