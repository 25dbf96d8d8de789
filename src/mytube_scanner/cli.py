#!/usr/bin/env python3
"""
Command line entry point for scans, cleanups and the HTTP service.
"""
import sys
import json
import argparse
from pathlib import Path

from .config import Settings, setup_logging
from .database import CatalogDatabase
from .indexer import MediaIndexer, ScanInProgress
from .reconciler import Reconciler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mytube-scanner",
                                     description="Index a media tree into the video catalog")
    parser.add_argument("--media-path", help="Media root (overrides MEDIA_PATH)")
    parser.add_argument("--thumbnail-path", help="Thumbnail directory (overrides THUMBNAIL_PATH)")
    parser.add_argument("--db", help="SQLite catalog path (overrides DB_PATH)")
    parser.add_argument("--workers", type=int, help="Files indexed in parallel per channel")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("scan", help="Scan the media root and index new videos")
    cleanup = sub.add_parser("cleanup", help="Remove missing videos and empty channels")
    only = cleanup.add_mutually_exclusive_group()
    only.add_argument("--videos-only", action="store_true", help="Only remove missing videos")
    only.add_argument("--channels-only", action="store_true", help="Only remove empty channels")
    sub.add_parser("status", help="Print catalog statistics")
    sub.add_parser("serve", help="Run the HTTP service")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.media_path:
        settings.media_path = Path(args.media_path)
    if args.thumbnail_path:
        settings.thumbnail_path = Path(args.thumbnail_path)
    if args.db:
        settings.db_path = Path(args.db)
    if args.workers:
        settings.scan_workers = max(1, args.workers)
    return settings


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args)
    setup_logging(settings)

    if args.command == "serve":
        from .server import serve
        serve(settings)
        return 0

    db = CatalogDatabase(settings.db_path)

    if args.command == "scan":
        stats = MediaIndexer.from_settings(settings, db=db).scan_and_index()
        print(json.dumps(stats.to_dict(), indent=2))
        return 1 if stats.errors and not stats.channels else 0

    if args.command == "cleanup":
        try:
            result = Reconciler(db).reconcile(videos=not args.channels_only,
                                              channels=not args.videos_only)
        except ScanInProgress as e:
            print(json.dumps({'error': str(e)}, indent=2))
            return 1
        print(json.dumps(result, indent=2))
        return 0

    print(json.dumps(db.get_statistics(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
