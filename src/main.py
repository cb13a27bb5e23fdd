# src/main.py - v3
"""CLI entry point: scan, decode, encode, detect-key commands.

Usage:
    rpgmview scan <directory> [--filter TEXT]
    rpgmview decode <paths...> [--key HEX] [-o DIR] [--remove-source] [--restore-headers]
    rpgmview encode <paths...> [--key HEX] [-o DIR] [--mz]
    rpgmview detect-key <directory>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rpgmview.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="rpgmview",
        description=f"rpgmview v{__version__} - RPG Maker MV/MZ asset decoder",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- scan ---
    p_scan = subparsers.add_parser("scan", help="List a directory's assets")
    p_scan.add_argument("directory", type=Path, help="Directory to scan")
    p_scan.add_argument(
        "-f", "--filter", dest="filter_text", default=None,
        help="Only show names containing TEXT (case-insensitive)",
    )
    p_scan.set_defaults(func=_cmd_scan)

    # --- decode / encode ---
    for name, help_text in (
        ("decode", "Decode obfuscated assets to plain files"),
        ("encode", "Obfuscate plain assets"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("paths", type=Path, nargs="+", help="Files or directories")
        p.add_argument(
            "-k", "--key", default=None,
            help="32-hex key (default: settings, then auto-detect)",
        )
        p.add_argument(
            "-o", "--output", type=Path, default=None,
            help="Write results under this directory instead of next to sources",
        )
        p.add_argument(
            "--remove-source", action="store_true",
            help="Delete each source after a verified write",
        )
        p.add_argument(
            "--mz", action="store_true",
            help="Use MZ extensions (.png_/.ogg_/.m4a_) when encoding",
        )
        p.add_argument(
            "--restore-headers", action="store_true",
            help="Force PNG/OGG/M4A magic bytes onto decoded output",
        )
        p.add_argument(
            "-j", "--workers", type=int, default=None,
            help="Concurrent files (default: settings)",
        )
        p.set_defaults(func=_cmd_batch, operation=name)

    # --- detect-key ---
    p_detect = subparsers.add_parser(
        "detect-key", help="Find the encryption key in a game folder",
    )
    p_detect.add_argument("directory", type=Path, help="Game directory")
    p_detect.set_defaults(func=_cmd_detect_key)

    return parser


async def _cmd_scan(args: argparse.Namespace) -> int:
    """Print the scanned tree."""
    from rpgmview.scan.scanner import DirectoryScanner

    directory: Path = args.directory
    if not directory.is_dir():
        logger.error("Not a directory: %s", directory)
        return 1

    scan = DirectoryScanner().scan(directory, args.filter_text)
    files = 0
    dirs = 0
    async for entry in scan:
        indent = "  " * entry.depth
        if entry.is_directory:
            dirs += 1
            print(f"{indent}{entry.name}/")
            continue
        files += 1
        detail = entry.obfuscation
        if entry.is_obfuscated:
            detail += f" -> .{entry.logical_extension}"
        print(f"{indent}{entry.name}  [{entry.asset_type}, {detail}, {entry.size_bytes} B]")

    for warning in scan.warnings:
        print(f"warning: {warning.path}: {warning.reason}", file=sys.stderr)
    print(f"\n{dirs} directories, {files} files")
    return 0


async def _cmd_batch(args: argparse.Namespace) -> int:
    """Run a bulk encode/decode job and print the per-item report."""
    from rpgmview.batch.processor import BatchProcessor
    from rpgmview.config.settings import Settings
    from rpgmview.keys.detection import detect_key
    from rpgmview.keys.store import KeyStore

    settings = Settings()
    store = KeyStore()
    if args.key:
        store.set(args.key)
    elif settings.encryption_key:
        store.set(settings.encryption_key)
    else:
        search_root = next((p for p in args.paths if p.is_dir()), args.paths[0].parent)
        key = await asyncio.to_thread(detect_key, search_root)
        if key is None:
            logger.error("No key given and none found under %s", search_root)
            return 1
        store.set(key.hex)

    processor = BatchProcessor(
        key_store=store,
        workers=args.workers or settings.batch_workers,
        remove_source=args.remove_source or settings.batch_remove_source,
        output_dir=args.output or settings.batch_output_dir,
        asset_version="mz" if args.mz else settings.asset_version,
        verify_signature=settings.verify_signature,
        restore_headers=args.restore_headers or settings.restore_headers,
    )
    job = processor.create_job(args.paths, args.operation)

    async for outcome in processor.run(job):
        if outcome.ok:
            print(f"ok    {outcome.path} -> {outcome.output_path}")
        else:
            print(f"{outcome.kind:<24s} {outcome.path}: {outcome.message}")

    progress = job.progress
    print(f"\nBatch {job.job_id} {job.status}:")
    print(f"  Files:      {progress.total}")
    print(f"  Succeeded:  {progress.succeeded}")
    print(f"  Failed:     {progress.failed}")
    print(f"  Skipped:    {progress.skipped}")
    return 0 if job.status == "completed" else 1


async def _cmd_detect_key(args: argparse.Namespace) -> int:
    """Print the detected key."""
    from rpgmview.keys.detection import detect_key

    directory: Path = args.directory
    if not directory.is_dir():
        logger.error("Not a directory: %s", directory)
        return 1

    key = await asyncio.to_thread(detect_key, directory)
    if key is None:
        print("No encryption key found")
        return 1
    print(key.hex)
    return 0


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage from Settings."""
    from rpgmview.config.settings import Settings
    from rpgmview.logging.logger import setup_logging

    settings = Settings()
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
