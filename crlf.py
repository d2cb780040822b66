#!/usr/bin/env python3
"""
crlf

A cross-platform command-line tool to report and normalize line endings
across a file tree.
"""

import argparse
import concurrent.futures
import logging
import os
import shutil
import sys
import tempfile
import time
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from tqdm import tqdm

from glob_match import expand_pattern, matches_any
from line_endings import (
    LineEndingInfo,
    LineEndingVariant,
    convert_line_endings,
    detect_line_endings,
)

# Define version
__version__ = "1.0.0"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("crlf")

DEFAULT_IGNORE_DIRS: List[str] = [
    ".git",
    ".github",
    "__pycache__",
    "node_modules",
    "venv",
    ".venv",
]

MAX_FILE_SIZE = 10 * 1024 * 1024
BATCH_SIZE = 1000
BINARY_SNIFF_SIZE = 8192

INVALID_VARIANT_MESSAGE = "Invalid variant: %s. Use win, unix, mac, crlf, lf, or cr."

T = TypeVar("T")


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Set up the root handlers and the tool's log level."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=logging.INFO, format=LOG_FORMAT, handlers=handlers, force=True
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def is_binary_content(content: bytes) -> bool:
    """Treat a NUL byte near the start of the buffer as a binary marker."""
    return b"\x00" in content[:BINARY_SNIFF_SIZE]


def find_files(
    root_dir: str,
    file_patterns: Sequence[str],
    ignore_dirs: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Find all files under ``root_dir`` matching any of the given patterns.

    Paths are returned relative to ``root_dir`` with ``/`` separators, in a
    stable walk order.
    """
    if ignore_dirs is None:
        ignore_dirs = DEFAULT_IGNORE_DIRS
    ignore_dirs_set = set(ignore_dirs)

    patterns: List[str] = [expand_pattern(p) for p in file_patterns if p.strip()]
    if not patterns:
        return []

    matched: List[str] = []
    for root, dirs, files in os.walk(root_dir):
        # Skip ignored directories
        dirs[:] = sorted(d for d in dirs if d not in ignore_dirs_set)

        rel_root = os.path.relpath(root, root_dir)
        for filename in sorted(files):
            if rel_root == os.curdir:
                rel_path = filename
            else:
                rel_path = os.path.join(rel_root, filename)
            rel_path = rel_path.replace(os.sep, "/")
            if matches_any(patterns, rel_path):
                matched.append(rel_path)

    return matched


def read_file(file_path: str, max_size: int = MAX_FILE_SIZE) -> Optional[bytes]:
    """Read a whole file, or return None if it is larger than ``max_size``."""
    size = os.path.getsize(file_path)
    if size > max_size:
        logger.warning(
            "Skipping %s: %d bytes exceeds the %d byte limit", file_path, size, max_size
        )
        return None
    with open(file_path, "rb") as f:
        return f.read()


def write_file(file_path: str, content: bytes) -> None:
    """
    Overwrite a file, keeping a backup copy until the write has succeeded.

    The backup gets a fresh name next to the file, so an existing ``.bak``
    is never touched. The original content is restored from the backup if
    the write fails; the write error is re-raised either way.
    """
    temp_backup: Optional[str] = None
    try:
        fd, temp_backup = tempfile.mkstemp(
            dir=os.path.dirname(file_path) or None,
            prefix=os.path.basename(file_path) + ".",
            suffix=".bak",
        )
        os.close(fd)
        shutil.copy2(file_path, temp_backup)
    except OSError as e:
        logger.warning("Could not create backup of %s: %s", file_path, e)
        if temp_backup is not None and os.path.exists(temp_backup):
            os.remove(temp_backup)
        temp_backup = None

    try:
        with open(file_path, "wb") as f:
            f.write(content)
    except OSError:
        if temp_backup is not None and os.path.exists(temp_backup):
            try:
                shutil.copy2(temp_backup, file_path)
                os.remove(temp_backup)
                logger.info(
                    "Restored original file from backup after write error: %s",
                    file_path,
                )
            except OSError as restore_err:
                logger.error(
                    "Failed to restore from backup for %s: %s", file_path, restore_err
                )
        raise

    if temp_backup is not None and os.path.exists(temp_backup):
        os.remove(temp_backup)


def inspect_file(
    file_path: str, max_size: int = MAX_FILE_SIZE
) -> Optional[LineEndingInfo]:
    """Detect a file's line endings. Returns None if it was skipped or unreadable."""
    try:
        content = read_file(file_path, max_size)
    except OSError as e:
        logger.error("Error reading %s: %s", file_path, e)
        return None
    if content is None:
        return None
    return detect_line_endings(content)


def convert_file(
    file_path: str,
    target: LineEndingVariant,
    max_size: int = MAX_FILE_SIZE,
    dry_run: bool = False,
    include_binary: bool = False,
) -> bool:
    """
    Rewrite a file's line endings to ``target``.

    Returns True if the file was rewritten (or would be, on a dry run).
    Unreadable, oversized and binary files are skipped and return False.
    """
    try:
        content = read_file(file_path, max_size)
    except OSError as e:
        logger.error("Error reading %s: %s", file_path, e)
        return False
    if content is None:
        return False

    if not include_binary and is_binary_content(content):
        logger.debug("Skipping binary file: %s", file_path)
        return False

    converted = convert_line_endings(content, target)
    if converted == content:
        logger.debug("No changes needed for file: %s", file_path)
        return False

    if dry_run:
        logger.info("Would convert %s to %s", file_path, target)
        return True

    try:
        write_file(file_path, converted)
    except OSError as e:
        logger.error("Error writing to %s: %s", file_path, e)
        return False

    logger.info("Converted %s to %s", file_path, target)
    return True


def format_report_line(info: LineEndingInfo, path: str) -> str:
    return (
        f"LF: {info.lf_count:<3} | CRLF: {info.crlf_count:<3} | "
        f"CR: {info.cr_count:<3} | {info.variant.to_string():<6} | {path}"
    )


def process_files_parallel(
    files: Sequence[str],
    worker: Callable[[str], T],
    max_workers: Optional[int] = None,
    show_progress: bool = True,
) -> Iterator[Tuple[str, T]]:
    """
    Run ``worker`` over ``files`` on a thread pool.

    Results are yielded in input order, one batch at a time so very large
    trees do not queue every future at once.
    """
    if not files:
        return

    # Calculate optimal number of workers if not specified
    if max_workers is None:
        cpu_count: Optional[int] = os.cpu_count()
        max_workers = min((cpu_count or 2) * 2, 32, len(files))
    else:
        max_workers = min(max_workers, 32, len(files))

    logger.debug(
        "Using %d worker threads for processing %d files", max_workers, len(files)
    )

    for i in range(0, len(files), BATCH_SIZE):
        batch_files = files[i : i + BATCH_SIZE]

        with tqdm(
            total=len(batch_files),
            desc=f"Scanning files (batch {i // BATCH_SIZE + 1})",
            unit="file",
            disable=None if show_progress else True,
        ) as pbar:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=max_workers
            ) as executor:
                for file_path, result in zip(
                    batch_files, executor.map(worker, batch_files)
                ):
                    pbar.update(1)
                    yield file_path, result


def run_check(
    args: argparse.Namespace,
    files: List[str],
    skip_variant: Optional[LineEndingVariant] = None,
) -> int:
    """Print a report line per file, leaving out files already in ``skip_variant``."""
    reported = 0
    errors = 0

    def worker(rel_path: str) -> Optional[LineEndingInfo]:
        return inspect_file(os.path.join(args.root_dir, rel_path), args.max_size)

    for rel_path, info in process_files_parallel(
        files, worker, args.workers, not args.no_progress
    ):
        if info is None:
            errors += 1
            continue
        if skip_variant is not None and info.variant == skip_variant:
            continue
        tqdm.write(format_report_line(info, rel_path))
        reported += 1

    logger.debug(
        "Reported: %d, Skipped: %d, Unreadable: %d",
        reported,
        len(files) - reported - errors,
        errors,
    )
    if skip_variant is not None and reported:
        return 1
    return 0


def run_convert(args: argparse.Namespace, files: List[str]) -> int:
    target: LineEndingVariant = args.target

    def worker(rel_path: str) -> bool:
        return convert_file(
            os.path.join(args.root_dir, rel_path),
            target,
            args.max_size,
            dry_run=args.dry_run,
            include_binary=args.include_binary,
        )

    converted = sum(
        1
        for _, changed in process_files_parallel(
            files, worker, args.workers, not args.no_progress
        )
        if changed
    )
    verb = "Would convert" if args.dry_run else "Converted"
    logger.info("%s %d of %d files to %s.", verb, converted, len(files), target)
    return 0


def format_duration(execution_time: float) -> str:
    if execution_time < 60:
        return f"{execution_time:.2f} seconds"
    if execution_time < 3600:
        minutes = int(execution_time // 60)
        seconds = execution_time % 60
        return f"{minutes} minute{'s' if minutes != 1 else ''} {seconds:.2f} seconds"
    hours = int(execution_time // 3600)
    minutes = int((execution_time % 3600) // 60)
    seconds = execution_time % 60
    return (
        f"{hours} hour{'s' if hours != 1 else ''} "
        f"{minutes} minute{'s' if minutes != 1 else ''} "
        f"{seconds:.2f} seconds"
    )


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--root",
        dest="root_dir",
        default=None,
        help="Root directory to scan (default: current directory)",
    )
    common.add_argument(
        "--ignore-dirs",
        nargs="+",
        default=[],
        help="Directories to ignore during scanning "
        "(default: .git, .github, __pycache__, node_modules, venv, .venv)",
    )
    common.add_argument(
        "--max-size",
        type=int,
        default=MAX_FILE_SIZE,
        help="Skip files larger than this many bytes (default: 10 MiB)",
    )
    common.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads (default: auto-detect based on CPU count)",
    )
    common.add_argument(
        "--no-progress", action="store_true", help="Disable the progress bar"
    )
    common.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    common.add_argument("--log-file", default=None, help="Also append logs to this file")

    parser = argparse.ArgumentParser(
        prog="crlf",
        description="Report and normalize line endings in text files",
        epilog="Variants: win/crlf (\\r\\n), unix/lf (\\n), mac/cr (\\r). "
        "In patterns, * matches within a directory and ** matches across "
        "directories, e.g. '*.py' 'src/**/*.c' '.txt'.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"crlf v{__version__}",
        help="Show program version and exit",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    check = subparsers.add_parser(
        "check",
        parents=[common],
        help="Show the line ending variant of every matching file",
    )
    check.add_argument("patterns", nargs="+", help="Glob patterns to match")

    not_parser = subparsers.add_parser(
        "not",
        parents=[common],
        help="Show matching files that do NOT use the given variant",
    )
    not_parser.add_argument("variant", help="win, unix, mac, crlf, lf or cr")
    not_parser.add_argument("patterns", nargs="+", help="Glob patterns to match")

    convert = subparsers.add_parser(
        "convert",
        parents=[common],
        help="Convert matching files to the given variant",
    )
    convert.add_argument("variant", help="win, unix, mac, crlf, lf or cr")
    convert.add_argument("patterns", nargs="+", help="Glob patterns to match")
    convert.add_argument(
        "--dry-run",
        action="store_true",
        help="Report files that would change without writing them",
    )
    convert.add_argument(
        "--include-binary",
        action="store_true",
        help="Also convert files that look binary",
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(args.verbose, args.log_file)

        target: Optional[LineEndingVariant] = None
        if args.command in ("not", "convert"):
            target = LineEndingVariant.from_string(args.variant)
            if target is None:
                logger.error(INVALID_VARIANT_MESSAGE, args.variant)
                return 2
        args.target = target

        root_dir: str = args.root_dir if args.root_dir else os.getcwd()
        if not os.path.isdir(root_dir):
            logger.error("Error: '%s' is not a valid directory.", root_dir)
            return 1
        args.root_dir = os.path.abspath(root_dir)

        ignore_dirs: List[str] = (
            args.ignore_dirs if args.ignore_dirs else DEFAULT_IGNORE_DIRS
        )

        # Validate workers count
        if args.workers is not None and args.workers <= 0:
            logger.warning(
                "Invalid worker count (%d), using auto-detection instead", args.workers
            )
            args.workers = None

        logger.debug(
            "Searching for files in %s matching patterns: %s",
            args.root_dir,
            " ".join(args.patterns),
        )
        logger.debug("Ignoring directories: %s", ", ".join(ignore_dirs))

        start_time: float = time.time()

        files: List[str] = find_files(args.root_dir, args.patterns, ignore_dirs)
        if not files:
            logger.warning("No matching files found.")
            return 0

        logger.debug("Found %d matching files.", len(files))

        if args.command == "convert":
            result = run_convert(args, files)
        else:
            result = run_check(args, files, skip_variant=target)

        logger.debug("Done in %s.", format_duration(time.time() - start_time))
        return result
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.isEnabledFor(logging.DEBUG):
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
