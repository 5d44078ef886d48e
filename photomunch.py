#!/usr/bin/env python

r"""
photomunch.py - Organize and copy/move photos and videos into monthly folders

SUMMARY:
--------
This script reads the EXIF data (or, barring that, the file modification date) of every file
in one or more source directories whose name matches a filter, and copies (or moves) those
files into subfolders of a destination directory named by year and month (YYYY-MM).

FEATURES:
---------
- Any number of source directories, one destination directory (the last path given).
- Filenames are matched against a regular expression (default: common photo/video extensions,
  case-insensitive).
- Uses EXIF metadata (via hachoir) for the capture date when available; otherwise falls back
  to the file system's modification date. EXIF reading can be switched off entirely.
- Optional recursion into subdirectories of each source.
- Copies are verified by byte count and keep the original modification time and permissions.
- Moves are plain renames; a failed rename is reported, never silently turned into a copy.
- A failing file is logged and counted, and the run carries on with the next one
  (unless --stop-on-error is given).
- Dry run mode: log every action without touching the file system.
- Logging to the console and to 'events.log' in the destination directory.

USAGE EXAMPLES:
---------------
1. Copy all photos and videos from a memory card into a monthly archive:
    python photomunch.py /media/card/DCIM ~/Pictures/archive

2. Move files from two import folders, including their subfolders:
    python photomunch.py -m -r ~/Import/phone ~/Import/camera ~/Pictures/archive

3. Ignore EXIF data and sort by file modification date only:
    python photomunch.py -i -r ~/Downloads/photos ~/Pictures/archive

4. Only pick up RAW files, with verbose logging:
    python photomunch.py -v -f "(?i)\.(dng|cr2|nef)$" /media/card ~/Pictures/raw

5. Dry run: see where every file would go without copying anything:
    python photomunch.py -d -r /media/card ~/Pictures/archive

6. Stop at the first file that cannot be transferred:
    python photomunch.py -m -s /media/card ~/Pictures/archive

See --help for all options.
"""

# Standard library imports
import sys
import datetime
import logging
import shutil
import argparse
import os
import re
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

# Third-party library imports for metadata extraction
from hachoir.parser import createParser
from hachoir.metadata import extractMetadata
from hachoir.core import config as hachoir_config

# Suppress hachoir warnings to keep console output clean
hachoir_config.quiet = True

__version__ = "1.0.0"
myversion = f"v. {__version__} 2026-10-18"

# Default filename filter: common photo and video extensions, any case
DEFAULT_PATTERN = r"(?i)\.(jpg|dng|tiff|jpeg|mpg|mp4|mov)$"

# Owner-writable, group/other-readable
DIRECTORY_MODE = 0o755

# Read size used when streaming a copy
CHUNK_SIZE = 64 * 1024

LOG_FILE_NAME = "events.log"


class PhotoMunchError(Exception):
    """Base error for photomunch."""


class SourceDirectoryError(PhotoMunchError):
    """A source directory is missing, is not a directory, or cannot be listed."""

    def __init__(self, path, reason):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class TransferError(PhotoMunchError):
    """A single file could not be copied or moved."""

    def __init__(self, message, source, destination, operation):
        self.source = Path(source)
        self.destination = Path(destination)
        self.operation = operation
        super().__init__(
            f"{message} (operation: {operation}, source: {source}, destination: {destination})"
        )


class NotAFileError(TransferError):
    """The source handed to a transfer is not a regular file."""

    def __init__(self, source, destination):
        super().__init__(f"Not a file: {source}", source, destination, "transfer")


class IntegrityError(TransferError):
    """Fewer (or more) bytes were written than the source holds."""

    def __init__(self, written, expected, source, destination):
        self.written = written
        self.expected = expected
        super().__init__(
            f"Failed to write full file. Wrote {written} of {expected} bytes",
            source,
            destination,
            "copy",
        )


@dataclass(frozen=True)
class Config:
    """Options for one run, built once from the command line."""

    source_dirs: Tuple[Path, ...]
    destination_dir: Path
    pattern: re.Pattern = re.compile(DEFAULT_PATTERN)
    move: bool = False
    ignore_exif: bool = False
    recursive: bool = False
    verbose: bool = False
    dryrun: bool = False
    stop_on_error: bool = False

    def matches(self, filename: str) -> bool:
        """Return True if the filename passes the configured filter."""
        return self.pattern.search(filename) is not None


@dataclass(frozen=True)
class CandidateFile:
    """One directory entry under consideration during a walk."""

    path: Path
    name: str
    mtime: datetime.datetime
    is_dir: bool

    @classmethod
    def from_path(cls, path: Path) -> "CandidateFile":
        """
        Stat a directory entry. Raises OSError if the entry cannot be stat'ed.

        Symlinks are followed for the timestamp but never count as directories.
        """
        st = path.stat()
        return cls(
            path=path,
            name=path.name,
            mtime=datetime.datetime.fromtimestamp(st.st_mtime),
            is_dir=stat.S_ISDIR(st.st_mode) and not path.is_symlink(),
        )


@dataclass(frozen=True)
class ResolvedDestination:
    directory: Path
    path: Path


class TransferStats:
    """Counters for a run, plus the list of files that failed."""

    def __init__(self):
        self.matched = 0
        self.transferred = 0
        self.skipped = 0
        self.failed = 0
        self.exif_dates = 0
        self.fallback_dates = 0
        self.failures: List[Tuple[Path, str]] = []

    def add_failure(self, path: Path, error: Exception):
        """Record a failed file (or unreadable directory) with its error."""
        self.failed += 1
        self.failures.append((Path(path), str(error)))

    def summary(self) -> str:
        return (
            f"Files matched: {self.matched}, transferred: {self.transferred}, "
            f"failed: {self.failed}, skipped: {self.skipped} "
            f"(EXIF dates: {self.exif_dates}, file system dates: {self.fallback_dates})"
        )


def month_label(timestamp) -> str:
    """
    Return the year-month folder name for a timestamp, e.g. "2023-07".

    The timestamp is used as given; no timezone conversion is done.
    """
    return f"{timestamp.year:04d}-{timestamp.month:02d}"


def resolve_destination(destination_root: Path, timestamp, filename: str) -> ResolvedDestination:
    """
    Work out where a file belongs in the destination tree.

    Args:
        destination_root (Path): Destination directory given on the command line
        timestamp (datetime.datetime or datetime.date): Effective timestamp of the file
        filename (str): Original file name, kept as is

    Returns:
        ResolvedDestination: The monthly subdirectory and the full destination file path

    This is pure path arithmetic and never touches the file system.
    """
    directory = Path(destination_root) / month_label(timestamp)
    return ResolvedDestination(directory=directory, path=directory / filename)


def read_capture_date(filename: Path, logger):
    """
    Extract the capture date from the file's embedded metadata with hachoir.

    Args:
        filename (Path): Path to the file to extract metadata from
        logger (logging.Logger): Logger for recording issues

    Returns:
        datetime.datetime or None: The 'creation_date' metadata value, or None
        when hachoir does not recognize the file or finds no date

    Parse and extraction errors propagate; effective_timestamp() turns them
    into the modification-time fallback.
    """
    parser = createParser(str(filename))
    # hachoir returns None when it does not recognize the format
    if not parser:
        logger.debug(f"Unable to parse file for capture date: {filename}")
        return None

    with parser:
        metadata = extractMetadata(parser)

    if not metadata:
        logger.debug(f"Unable to extract metadata for {filename}")
        return None

    cd = metadata.getValues("creation_date")
    return cd[0] if cd else None


def copy_file(source: Path, destination: Path, source_stat, logger) -> int:
    """
    Copy a regular file, verify the byte count and carry over mtime and permissions.

    Args:
        source (Path): File to copy
        destination (Path): Target file path, created or overwritten
        source_stat (os.stat_result): Stat of the source taken before the copy
        logger (logging.Logger): Logger for recording issues

    Returns:
        int: Number of bytes written

    Raises:
        TransferError: Source and destination are the same file, the source could
            not be opened, the destination could not be created, or the copy
            itself failed
        IntegrityError: The number of bytes written differs from the source size

    Failing to set the modification time or the permission bits is only logged:
    the content is already in place at that point.
    """
    written = 0

    # Opening the destination for writing would truncate the source
    if destination.exists() and os.path.samefile(source, destination):
        raise TransferError("Source and destination are the same file", source, destination, "copy")

    try:
        src_fh = open(source, "rb")
    except OSError as err:
        raise TransferError(f"Failed to open source file: {err}", source, destination, "open") from err

    with src_fh:
        try:
            dst_fh = open(destination, "wb")
        except OSError as err:
            raise TransferError(
                f"Failed to create destination file: {err}", source, destination, "create"
            ) from err

        try:
            with dst_fh:
                for chunk in iter(lambda: src_fh.read(CHUNK_SIZE), b""):
                    written += dst_fh.write(chunk)
        except OSError as err:
            raise TransferError(f"Failed to copy file: {err}", source, destination, "copy") from err

    if written != source_stat.st_size:
        raise IntegrityError(written, source_stat.st_size, source, destination)

    try:
        shutil.copymode(source, destination)
    except OSError as err:
        logger.warning(f"Could not copy permissions to {destination}: {err}")

    # Access time becomes "now", modification time is the source's original one
    try:
        os.utime(destination, ns=(time.time_ns(), source_stat.st_mtime_ns))
    except OSError as err:
        logger.warning(f"Could not set modification time on {destination}: {err}")

    return written


def move_file(source: Path, destination: Path, logger):
    """
    Rename a file into place.

    A rename that fails (for example across devices) raises TransferError.
    There is no copy-then-delete fallback; rerun in copy mode instead.
    """
    try:
        os.rename(source, destination)
    except OSError as err:
        raise TransferError(f"Failed to move file: {err}", source, destination, "move") from err
    logger.debug(f"Renamed {source} -> {destination}")


def transfer_file(source, destination, move: bool, logger):
    """
    Copy or move a single regular file.

    Args:
        source (Path): File to transfer
        destination (Path): Full destination file path
        move (bool): Rename instead of copying
        logger (logging.Logger): Logger for recording operations

    Raises:
        NotAFileError: source is a directory or other non-regular file
        TransferError: the source cannot be stat'ed or the copy/move failed
        IntegrityError: the copy wrote the wrong number of bytes

    A destination that already is the source file (re-sorting an organized
    archive) is logged and left alone.
    """
    source = Path(source)
    destination = Path(destination)

    try:
        source_stat = source.stat()
    except OSError as err:
        raise TransferError(f"Failed to stat source file: {err}", source, destination, "stat") from err

    if not stat.S_ISREG(source_stat.st_mode):
        raise NotAFileError(source, destination)

    if destination.exists() and os.path.samefile(source, destination):
        logger.info(f"Already in place: {destination}")
        return

    if move:
        move_file(source, destination, logger)
    else:
        written = copy_file(source, destination, source_stat, logger)
        logger.debug(f"Copied {written} bytes {source} -> {destination}")


def effective_timestamp(candidate: CandidateFile, config: Config, logger, read_date, stats: TransferStats):
    """
    Pick the timestamp used to file a candidate.

    Modification time when EXIF is ignored; otherwise the capture date from
    read_date, falling back to modification time when it returns nothing or
    fails in any way.
    """
    if config.ignore_exif:
        stats.fallback_dates += 1
        return candidate.mtime

    try:
        captured = read_date(candidate.path, logger)
    except Exception as e:
        logger.debug(f"Failed to read capture date from {candidate.path}: {e}")
        captured = None

    if captured:
        stats.exif_dates += 1
        return captured

    logger.debug(f"No EXIF date for {candidate.path}, using file system date")
    stats.fallback_dates += 1
    return candidate.mtime


def process_directory(
    source_dir,
    config: Config,
    logger,
    stats: Optional[TransferStats] = None,
    read_date: Optional[Callable] = None,
    transfer: Optional[Callable] = None,
) -> TransferStats:
    """
    Walk a source directory and file every matching photo into the destination.

    Args:
        source_dir (Path): Source directory to scan
        config (Config): Options for the run
        logger (logging.Logger): Logger for recording operations
        stats (TransferStats, optional): Counters to add to; a new one is made if omitted
        read_date (callable, optional): (path, logger) -> date or None. Defaults to
            read_capture_date
        transfer (callable, optional): (source, destination, move, logger). Defaults
            to transfer_file

    Returns:
        TransferStats: The counters, including everything below source_dir

    Raises:
        SourceDirectoryError: source_dir is missing, not a directory, the destination
            itself, or cannot be listed
        PhotoMunchError: a file failed and config.stop_on_error is set

    Entries are visited in name order, depth first. A file that fails to
    transfer is logged and counted, and the walk continues with the next entry.
    """
    if stats is None:
        stats = TransferStats()
    if read_date is None:
        read_date = read_capture_date
    if transfer is None:
        transfer = transfer_file

    source_dir = Path(source_dir)

    # Check the path to validate that it's a folder
    if not source_dir.exists():
        raise SourceDirectoryError(source_dir, "Source directory does not exist")
    if not source_dir.is_dir():
        raise SourceDirectoryError(source_dir, "Path is not a directory")
    if source_dir.resolve() == Path(config.destination_dir).resolve():
        raise SourceDirectoryError(source_dir, "Source and destination directories must not be the same")

    _walk(source_dir, config, logger, stats, read_date, transfer)
    return stats


def _walk(directory: Path, config: Config, logger, stats: TransferStats, read_date, transfer):
    logger.info(f"Source Folder: {directory}")

    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as err:
        raise SourceDirectoryError(directory, f"Failed to read directory ({err})") from err

    destination_root = Path(config.destination_dir).resolve()

    for entry in entries:
        try:
            candidate = CandidateFile.from_path(entry)
        except OSError as err:
            logger.error(f"Failed to stat {entry}: {err}")
            stats.add_failure(entry, err)
            if config.stop_on_error:
                raise TransferError(f"Failed to stat file: {err}", entry, config.destination_dir, "stat") from err
            continue

        if candidate.is_dir:
            if not config.recursive:
                logger.debug(f"Skipping subdirectory (not recursive): {entry}")
                continue
            # Never feed the run its own output
            if entry.resolve() == destination_root:
                logger.info(f"Skipping destination directory inside source: {entry}")
                continue
            try:
                _walk(entry, config, logger, stats, read_date, transfer)
            except SourceDirectoryError as err:
                logger.error(str(err))
                stats.add_failure(entry, err)
                if config.stop_on_error:
                    raise
            continue

        if entry.is_symlink() and entry.is_dir():
            logger.debug(f"Skipping symlinked directory: {entry}")
            continue

        if not config.matches(candidate.name):
            logger.debug(f"Skipping: {entry} didn't pass filter")
            stats.skipped += 1
            continue

        stats.matched += 1
        try:
            _file_candidate(candidate, config, logger, stats, read_date, transfer)
        except TransferError as err:
            logger.error(str(err))
            stats.add_failure(entry, err)
            if config.stop_on_error:
                raise


def _file_candidate(candidate: CandidateFile, config: Config, logger, stats: TransferStats, read_date, transfer):
    photo_date = effective_timestamp(candidate, config, logger, read_date, stats)
    resolved = resolve_destination(config.destination_dir, photo_date, candidate.name)

    action = "Moving" if config.move else "Copying"
    prefix = "[DRY RUN] " if config.dryrun else ""
    logger.info(f"{prefix}{action} {candidate.path} -> {resolved.path}")

    if config.dryrun:
        stats.transferred += 1
        return

    # Make sure the destination directory exists
    try:
        resolved.directory.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
    except OSError as err:
        raise TransferError(
            f"Failed to create destination directory {resolved.directory}: {err}",
            candidate.path,
            resolved.path,
            "mkdir",
        ) from err

    transfer(candidate.path, resolved.path, config.move, logger)
    stats.transferred += 1


def set_up_logging(destination_dir: Path, verbose: bool, dryrun: bool = False):
    """
    Set up logging to the console and to a file in the destination directory.

    Args:
        destination_dir (Path): Directory where the log file will be created
        verbose (bool): Whether to enable verbose (DEBUG) logging
        dryrun (bool): Log to the console only, so nothing is written to disk

    Returns:
        logging.Logger: Configured logger instance

    Handlers from an earlier call are closed and replaced, so calling main()
    repeatedly in one process does not duplicate output.
    """
    logger = logging.getLogger("photomunch")
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    close_logging(logger)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console)

    if not dryrun:
        logfile = Path(destination_dir) / LOG_FILE_NAME
        try:
            logfile.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(logfile, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to open log file {logfile}: {e}")
        else:
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s %(message)s"))
            logger.addHandler(fh)

    return logger


def close_logging(logger):
    """Detach and close every handler on the logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def print_examples():
    """
    Print usage examples to the user.

    This function extracts and displays the examples section from the module's docstring.
    It's used when the --examples flag is provided.
    """
    doc_lines = __doc__.split("\n")
    examples_start = doc_lines.index("USAGE EXAMPLES:")
    examples_end = next(
        (
            i
            for i, line in enumerate(doc_lines[examples_start:], examples_start)
            if line.startswith("See --help")
        ),
        len(doc_lines),
    )

    examples = "\n".join(doc_lines[examples_start : examples_end + 1])
    print(examples)


class VersionedArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that shows the version and a help hint on errors."""

    def error(self, message):
        sys.stderr.write(f"photomunch {myversion}\n\n")
        sys.stderr.write(f"{self.prog}: error: {message}\n")
        sys.stderr.write(f"Try '{self.prog} --help' for more information.\n")
        sys.exit(2)


def parse_arguments(args=None):
    """
    Parse command line arguments using argparse.

    Args:
        args (list, optional): Command line arguments. Defaults to sys.argv[1:].

    Returns:
        argparse.Namespace: Parsed arguments, with the compiled filter stored as 'pattern'

    Fewer than two paths, or a filter that is not a valid regular expression,
    ends the program through parser.error() before anything is processed.
    """
    if args is None:
        args = sys.argv[1:]

    # --examples works without the otherwise required paths
    if "--examples" in args:
        print_examples()
        sys.exit(0)

    parser = VersionedArgumentParser(
        prog="photomunch",
        description="PhotoMunch ingests photos based on their EXIF data. It reads the EXIF capture date (or, barring that, the file modification date) of every file in the source directories that matches the filter, and copies (or moves) it into a YYYY-MM subdirectory of the destination directory.",
        epilog="""
IMPORTANT NOTES:
• All paths but the last are sources; the last path is the destination
• Files with the same name from the same month overwrite each other
• Activity is logged to 'events.log' in the destination directory
• Use --examples to see usage scenarios
• Use -d/--dryrun to preview operations before making changes""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "paths",
        nargs="+",
        metavar="PATH",
        help="One or more source directories followed by the destination directory. The destination is created if it doesn't exist.",
    )

    parser.add_argument(
        "-m",
        "--move",
        action="store_true",
        help="Move files instead of copying them. Moves are renames: a move across file systems fails and is reported rather than turned into a copy.",
    )

    parser.add_argument(
        "-i",
        "--ignore-exif",
        action="store_true",
        dest="ignore_exif",
        help="Ignore EXIF data and file everything by its modification date.",
    )

    parser.add_argument(
        "-r",
        "--recursive",
        action="store_true",
        help="Recurse into subdirectories of the source directories.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging, including skipped files and EXIF lookups.",
    )

    parser.add_argument(
        "-f",
        "--filter",
        default=DEFAULT_PATTERN,
        metavar="REGEX",
        dest="filter",
        help=f"Regular expression filenames must match. Add (?i) for case-insensitive matching [default: {DEFAULT_PATTERN}]",
    )

    parser.add_argument(
        "-d",
        "--dryrun",
        action="store_true",
        help="Dry run mode: log what would be copied or moved without creating, copying or moving anything.",
    )

    parser.add_argument(
        "-s",
        "--stop-on-error",
        action="store_true",
        dest="stop_on_error",
        help="Stop the whole run at the first file that cannot be transferred. By default failures are logged and the run continues.",
    )

    parser.add_argument(
        "--examples",
        action="store_true",
        help="Display usage examples and exit.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show program version and exit",
    )

    parsed_args = parser.parse_args(args)

    if len(parsed_args.paths) < 2:
        parser.error(f"expected 2+ paths (SOURCE... DEST), got {len(parsed_args.paths)}")

    try:
        parsed_args.pattern = re.compile(parsed_args.filter)
    except re.error as e:
        parser.error(f"failed to parse filter regular expression {parsed_args.filter!r}: {e}")

    return parsed_args


def build_config(parsed_args) -> Config:
    """Turn parsed arguments into the read-only Config for the run."""
    paths = [Path(p).expanduser().resolve() for p in parsed_args.paths]
    return Config(
        source_dirs=tuple(paths[:-1]),
        destination_dir=paths[-1],
        pattern=parsed_args.pattern,
        move=parsed_args.move,
        ignore_exif=parsed_args.ignore_exif,
        recursive=parsed_args.recursive,
        verbose=parsed_args.verbose,
        dryrun=parsed_args.dryrun,
        stop_on_error=parsed_args.stop_on_error,
    )


def main(args=None) -> int:
    """
    Main entry point for the script.

    Args:
        args (list, optional): Command line arguments. Defaults to None.

    Returns:
        int: Exit status. 0 when every source was processed without a failed
        file, 1 otherwise.
    """
    parsed_args = parse_arguments(args)
    config = build_config(parsed_args)

    logger = set_up_logging(config.destination_dir, config.verbose, config.dryrun)

    start_time = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    logger.info("=" * 80)
    logger.info(f"photomunch {myversion}")
    logger.info(f"Session Started: {start_time}")
    logger.info("=" * 80)
    logger.debug("Command-line options: %s", vars(parsed_args))
    if config.dryrun:
        logger.info("[DRY RUN] No files or directories will be changed")

    stats = TransferStats()
    failed_sources = 0
    aborted = False

    try:
        for source_dir in config.source_dirs:
            try:
                process_directory(source_dir, config, logger, stats=stats)
            except SourceDirectoryError as e:
                failed_sources += 1
                logger.error(str(e))
                if config.stop_on_error:
                    aborted = True
                    break
            except PhotoMunchError as e:
                # Only reached with --stop-on-error
                logger.error(f"Stopping after failure: {e}")
                aborted = True
                break

        logger.info(stats.summary())
        for path, error in stats.failures:
            logger.info(f"  failed: {path}: {error}")

        end_time = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        logger.info("=" * 80)
        logger.info(f"Session Ended: {end_time}")
        logger.info("=" * 80)
    finally:
        close_logging(logger)

    if aborted or failed_sources or stats.failed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
