#!/usr/bin/env python3
"""purge_blobs.py — Remove inline base64 image blobs from the media database.

Same job as the blob_cleanup Lambda, run from a workstation with the store
credentials in the environment (see mediadb_shared.config).

Usage:
    # Dry-run (default; counts blobs, no writes):
    python3 backend/lambda/blob_cleanup/purge_blobs.py

    # Live write:
    python3 backend/lambda/blob_cleanup/purge_blobs.py --write

    # Against a specific backend:
    DATA_STORE_BACKEND=github REPO_OWNER=me REPO_NAME=db GITHUB_TOKEN=... \\
        python3 backend/lambda/blob_cleanup/purge_blobs.py --write

Requires:
    - credentials for the configured store backend
    - boto3 (pip install boto3) for the dynamodb backend
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from mediadb_shared.cleanup import run_cleanup
from mediadb_shared.config import DATA_STORE_BACKEND, build_schema, build_store
from mediadb_shared.errors import SyncError
from mediadb_shared.sync import DocumentSync


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.split("\n", 1)[0])
    parser.add_argument("--write", action="store_true", help="Persist the cleaned collections (default: dry run)")
    parser.add_argument(
        "--backend",
        default=DATA_STORE_BACKEND,
        choices=["dynamodb", "rest", "github"],
        help=f"Store backend (default: {DATA_STORE_BACKEND})",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        sync = DocumentSync(build_store(args.backend, cache_ttl=0), build_schema())
        report = run_cleanup(sync, write=args.write, log=print)
    except SyncError as exc:
        print(f"\nCleanup failed: {exc.message}", file=sys.stderr)
        if getattr(exc, "written_keys", None):
            print(f"Already written: {', '.join(exc.written_keys)}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"\nConfiguration error: {exc}", file=sys.stderr)
        return 2

    if report.total and not report.written:
        print("\nRe-run with --write to apply.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
