#!/usr/bin/env python

r"""
gardepro.py - Archive one camera image or video by its embedded creation time

SUMMARY:
--------
This script takes a single JPEG or MP4 file from a trail camera, reads the moment it
was captured from the file's own metadata (EXIF for images, the movie header for videos)
and copies it into a year-partitioned archive tree. The naming convention is:

    <target>/<Year>/<Month>-<Day>-<Hour>:<Minute>:<Second>-<BaseName>.<Ext>

where the year directory is created when required, the date and time come from the
media file (never from the source directory) and BaseName.Ext is the source basename.

FEATURES:
---------
- EXIF 'DateTime' tag for images (primary IFD first, then the Exif sub-IFD) via exifread.
- Movie header (mvhd) creation time for MP4/QuickTime video via hachoir.
- Deterministic destination path; re-running on an archived file is a no-op.
- Never overwrites: an existing destination with different content is a hard stop.
- Errors are logged and reported in a dialog box (or on stderr with --no-dialog).
- Logging to a file (default in the temp directory) or to the console.

USAGE EXAMPLES:
---------------
1. Archive a camera image, logging to the default log file:
    python gardepro.py -s /media/sd/DCIM/IMG_0001.JPG -t /archive/deer

2. Archive a video, logging to the console instead:
    python gardepro.py -c -s /media/sd/DCIM/VID_0002.MP4 -t /archive/deer

3. Use a custom log file and verbose logging:
    python gardepro.py -v -l ~/gardepro.log -s IMG_0003.JPG -t /archive/deer

4. Run headless (no dialog box on errors):
    python gardepro.py --no-dialog -s IMG_0004.JPG -t /archive/deer

See --help for all options.
"""

# Standard library imports
import sys
import enum
import logging
import shutil
import argparse
import tempfile
import datetime
from dataclasses import dataclass
from pathlib import Path

# Third-party library imports for metadata extraction
import exifread
from hachoir.parser import createParser
from hachoir.core import config

# Suppress hachoir warnings to keep console output clean
config.quiet = True

# Script version information
__version__ = "1.0.0"

DEFAULT_LOG_FILE = Path(tempfile.gettempdir()) / "gardepro.log"

# EXIF DateTime (0x0132) as named by exifread in each IFD, in lookup order
EXIF_DATETIME_KEYS = ("Image DateTime", "EXIF DateTime")
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# Movie header times count seconds from this instant
MAC_EPOCH = datetime.datetime(1904, 1, 1, tzinfo=datetime.timezone.utc)

COMPARE_CHUNK_SIZE = 64 * 1024


class MediaKind(enum.Enum):
    IMAGE = "image"
    VIDEO = "video"


MEDIA_EXTENSIONS = {
    ".jpg": MediaKind.IMAGE,
    ".jpeg": MediaKind.IMAGE,
    ".mp4": MediaKind.VIDEO,
    ".mov": MediaKind.VIDEO,
}


class PlacementOutcome(enum.Enum):
    CREATED = "created"
    SKIPPED_IDENTICAL = "skipped identical"
    REJECTED_CONFLICT = "rejected conflict"


# ========================================
# Errors
# ========================================


class ArchiveError(Exception):
    """Base class for every failure that ends an invocation."""

    title = "Archive error"


class ExtractionFailure(ArchiveError):
    title = "Get creation time"


class MetadataNotFound(ExtractionFailure):
    pass


class MetadataMalformed(ExtractionFailure):
    pass


class UnexpectedStructure(ExtractionFailure):
    pass


class UnsupportedKind(ArchiveError):
    title = "Unrecognized extension"


class DirectoryFailure(ArchiveError):
    title = "Check target dir"


class CompareFailure(ArchiveError):
    title = "Compare files"


class ConflictFailure(ArchiveError):
    title = "Pre-existing file not identical"


class CopyFailure(ArchiveError):
    title = "Copy source file to target directory"


class CommandLineError(Exception):
    """Raised by the argument parser instead of exiting."""


# ========================================
# Media files and timestamps
# ========================================


@dataclass(frozen=True)
class MediaFile:
    path: Path
    kind: MediaKind

    @classmethod
    def from_path(cls, path) -> "MediaFile":
        """
        Classify a source file by its extension alone.

        Raises:
            UnsupportedKind: if the extension is not a known image or video type
        """
        path = Path(path)
        ext = path.suffix.lower()
        kind = MEDIA_EXTENSIONS.get(ext)
        if kind is None:
            raise UnsupportedKind(f"Unrecognized extension: {ext or '(none)'}")
        return cls(path, kind)


def read_image_timestamp(path: Path, logger) -> datetime.datetime:
    """
    Read the EXIF 'DateTime' tag of an image.

    Args:
        path (Path): Image file to read
        logger (logging.Logger): Logger for recording the available tags on failure

    Returns:
        datetime.datetime: Naive local capture time, exactly as the camera wrote it

    Raises:
        MetadataNotFound: if the file or the tag is missing
        MetadataMalformed: if the tag holds something other than 'YYYY:MM:DD HH:MM:SS'
    """
    try:
        with open(path, "rb") as f:
            tags = exifread.process_file(f, details=False)
    except FileNotFoundError as err:
        raise MetadataNotFound(f"Source file not found: {path}") from err
    except Exception as err:
        raise MetadataMalformed(f"Unable to read EXIF data from {path}: {err}") from err

    tag = None
    for key in EXIF_DATETIME_KEYS:
        if key in tags:
            tag = tags[key]
            break

    if tag is None:
        logger.debug(f"EXIF tags in {path.name}: {sorted(tags) or 'none'}")
        raise MetadataNotFound(f"No EXIF DateTime tag (0x132) in {path}")

    value = tag.values
    if not isinstance(value, str):
        raise MetadataMalformed(f"EXIF DateTime is not a string: {value!r}")

    value = value.strip("\x00 ")
    try:
        # The camera writes local time with no zone; keep it naive.
        return datetime.datetime.strptime(value, EXIF_DATETIME_FORMAT)
    except ValueError as err:
        raise MetadataMalformed(f"Unable to parse EXIF DateTime '{value}': {err}") from err


def mac_timestamp_to_local(seconds: int) -> datetime.datetime:
    """
    Convert seconds since 1904-01-01 UTC into naive local wall-clock time.
    """
    if seconds < 0:
        raise ValueError(f"Negative container timestamp: {seconds}")
    when = MAC_EPOCH + datetime.timedelta(seconds=seconds)
    return when.astimezone().replace(tzinfo=None)


def find_movie_headers(parser) -> list:
    """Return every movie header (moov/mvhd) field set found in a parsed container."""
    headers = []
    for atom in parser:
        if "movie" not in atom:
            continue
        for child in atom["movie"]:
            if "movie_hdr" in child:
                headers.append(child["movie_hdr"])
    return headers


def read_video_timestamp(path: Path, logger) -> datetime.datetime:
    """
    Read the creation time from the movie header of an MP4/QuickTime container.

    Args:
        path (Path): Video file to read
        logger (logging.Logger): Logger for recording parser details

    Returns:
        datetime.datetime: Naive local capture time

    Raises:
        MetadataNotFound: if the file, the movie header or its creation time is missing
        MetadataMalformed: if the container cannot be parsed
        UnexpectedStructure: if more than one movie header is present
    """
    if not path.exists():
        raise MetadataNotFound(f"Source file not found: {path}")

    try:
        parser = createParser(str(path))
    except Exception as err:
        raise MetadataMalformed(f"Failed to create parser for {path}: {err}") from err

    if not parser:
        raise MetadataMalformed(f"Unable to parse container: {path}")

    created = None
    with parser:
        try:
            headers = find_movie_headers(parser)
            logger.debug(f"Found {len(headers)} movie header(s) in {path.name}")
            if len(headers) == 1:
                created = headers[0]["creation_date"].value
        except Exception as err:
            raise MetadataMalformed(f"Error walking container {path}: {err}") from err

    if not headers:
        raise MetadataNotFound(f"No movie header (moov/mvhd) in {path}")
    if len(headers) != 1:
        raise UnexpectedStructure(f"Wrong number of movie headers: {len(headers)}")

    # hachoir renders the raw seconds as a naive datetime counted from 1904
    if not isinstance(created, datetime.datetime):
        raise MetadataMalformed(f"Unexpected creation time value: {created!r}")
    created = created.replace(tzinfo=None)
    seconds = int((created - MAC_EPOCH.replace(tzinfo=None)).total_seconds())
    if seconds == 0:
        raise MetadataNotFound(f"Creation time not set in movie header of {path}")
    return mac_timestamp_to_local(seconds)


DEFAULT_EXTRACTORS = {
    MediaKind.IMAGE: read_image_timestamp,
    MediaKind.VIDEO: read_video_timestamp,
}


# ========================================
# Comparison, paths and placement
# ========================================


class FileComparator:
    """Byte-for-byte file equality."""

    def __init__(self, chunk_size: int = COMPARE_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def equal(self, first: Path, second: Path) -> bool:
        try:
            if first.stat().st_size != second.stat().st_size:
                return False
            with open(first, "rb") as a, open(second, "rb") as b:
                for chunk in iter(lambda: a.read(self.chunk_size), b""):
                    if chunk != b.read(len(chunk)):
                        return False
            return True
        except OSError as err:
            raise CompareFailure(f"Compare files {first} and {second}: {err}") from err


def compute_destination(root, timestamp: datetime.datetime, source_basename: str) -> Path:
    """
    Build the archive path for a file captured at `timestamp`.

    Args:
        root: Target root directory (str or Path; empty and "." are rejected,
            callers resolve a relative root first)
        timestamp (datetime.datetime): Capture time, taken at face value
        source_basename (str): Original file name, extension included

    Returns:
        Path: <root>/<YYYY>/<MM>-<DD>-<hh>:<mm>:<ss>-<basename>

    Example:
        /archive, 2023:06:15 14:30:05, IMG_001.JPG
            -> /archive/2023/06-15-14:30:05-IMG_001.JPG
    """
    if root is None or str(root) in ("", "."):
        raise ValueError("Target root must be a non-empty directory path")
    if not source_basename:
        raise ValueError("Source basename must not be empty")
    if not isinstance(timestamp, datetime.datetime):
        raise TypeError(f"Timestamp must be a datetime, not {type(timestamp).__name__}")

    year_dir = Path(root) / f"{timestamp.year:04d}"
    return year_dir / f"{timestamp:%m-%d-%H:%M:%S}-{source_basename}"


class Archiver:
    """
    Places one media file into the archive tree.

    The comparator, the logger and the per-kind timestamp extractors are
    supplied by the caller.
    """

    def __init__(self, comparator: FileComparator, logger, extractors=None):
        self.comparator = comparator
        self.logger = logger
        self.extractors = dict(DEFAULT_EXTRACTORS if extractors is None else extractors)

    compute_destination = staticmethod(compute_destination)

    def ensure_directory(self, path: Path) -> None:
        """Create `path` (and missing parents) unless it is already a directory."""
        try:
            if path.exists():
                if not path.is_dir():
                    raise DirectoryFailure(f"Target dir is not a directory: {path}")
                return
            path.mkdir(parents=True)
            self.logger.info(f"Created new target dir: {path}")
        except OSError as err:
            raise DirectoryFailure(f"Make target dir {path}: {err}") from err

    def place(self, source_path: Path, destination_path: Path) -> PlacementOutcome:
        """
        Copy the source to the destination unless something is already there.

        An existing destination is compared in full with the source: identical
        content is skipped, different content is rejected. Nothing is ever
        overwritten. The existence check and the copy are separate steps, so a
        process creating the destination in between is not detected.

        Returns:
            PlacementOutcome: CREATED, SKIPPED_IDENTICAL or REJECTED_CONFLICT

        Raises:
            CompareFailure: if the destination cannot be inspected or compared
            CopyFailure: if the copy fails
        """
        try:
            exists = destination_path.exists()
        except OSError as err:
            raise CompareFailure(f"Stat target file {destination_path}: {err}") from err

        if exists:
            if self.comparator.equal(source_path, destination_path):
                self.logger.info(f"Skipping pre-existing identical file: {destination_path}")
                return PlacementOutcome.SKIPPED_IDENTICAL
            self.logger.error(f"Pre-existing file not identical: {destination_path}")
            return PlacementOutcome.REJECTED_CONFLICT

        try:
            shutil.copy2(source_path, destination_path)
        except OSError as err:
            raise CopyFailure(f"Copy {source_path} to {destination_path}: {err}") from err
        self.logger.info(f"Copied file: {source_path} -> {destination_path}")
        return PlacementOutcome.CREATED

    def archive(self, source_path, target_root):
        """
        Run the whole sequence for one source file.

        Returns:
            tuple: (PlacementOutcome, Path) for a created or skipped file

        Raises:
            ArchiveError: on the first failing step; a conflicting destination
                is raised as ConflictFailure
        """
        media = MediaFile.from_path(source_path)
        extractor = self.extractors.get(media.kind)
        if extractor is None:
            raise UnsupportedKind(f"No timestamp extractor for {media.kind.value} files")

        when = extractor(media.path, self.logger)
        self.logger.debug(f"Creation time of {media.path.name}: {when}")

        try:
            destination = compute_destination(target_root, when, media.path.name)
        except (ValueError, TypeError) as err:
            raise DirectoryFailure(f"Target path for {media.path.name}: {err}") from err
        self.logger.debug(f"Target path: {destination}")
        self.ensure_directory(destination.parent)

        outcome = self.place(media.path, destination)
        if outcome is PlacementOutcome.REJECTED_CONFLICT:
            raise ConflictFailure(f"Pre-existing file not identical: {destination}")
        return outcome, destination


# ========================================
# Reporting and logging
# ========================================


class ConsoleReporter:
    """Writes error reports to stderr."""

    def __init__(self, stream=None):
        self.stream = stream

    def error(self, title: str, message: str) -> None:
        stream = sys.stderr if self.stream is None else self.stream
        stream.write(f"{title}: {message}\n")


class DialogReporter:
    """Shows error reports in a modal dialog box."""

    def error(self, title: str, message: str) -> None:
        try:
            import tkinter
            from tkinter import messagebox
        except ImportError as err:
            # Python built without Tk
            self._fall_back(title, message, err)
            return

        try:
            root = tkinter.Tk()
        except tkinter.TclError as err:
            # No display available
            self._fall_back(title, message, err)
            return
        root.withdraw()
        try:
            messagebox.showerror(title, message, parent=root)
        finally:
            root.destroy()

    @staticmethod
    def _fall_back(title: str, message: str, err: Exception) -> None:
        sys.stderr.write(f"{title}: {message} (dialog unavailable: {err})\n")


def set_up_logging(log_file: Path, console: bool, verbose: bool):
    """
    Set up logging to a file or to the console.

    Args:
        log_file (Path): File to append log records to (ignored in console mode)
        console (bool): Whether to log to stderr instead of the file
        verbose (bool): Whether to enable verbose (DEBUG) logging

    Returns:
        logging.Logger: Configured logger instance

    Raises:
        OSError: if the log file cannot be opened
    """
    logger = logging.getLogger("gardepro")

    # Set logging level based on verbose flag
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    # Drop handlers left over from an earlier run in this process
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    if console:
        handler = logging.StreamHandler(sys.stderr)
    else:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # Separate blocks of log records from different runs
        with open(log_file, "a", encoding="utf-8") as f:
            f.write("\n")
        handler = logging.FileHandler(log_file, encoding="utf-8")

    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-5s %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(handler)
    return logger


# ========================================
# Command line
# ========================================


def print_examples():
    """
    Print the usage examples section of the module docstring.
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
    print("\n".join(doc_lines[examples_start : examples_end + 1]))


class ReportingArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises CommandLineError instead of exiting on bad input."""

    def error(self, message):
        raise CommandLineError(message)


def parse_arguments(args=None):
    """
    Parse command line arguments using argparse.

    Args:
        args (list, optional): Command line arguments. Defaults to sys.argv[1:].

    Returns:
        argparse.Namespace: Parsed arguments

    Raises:
        CommandLineError: on unknown or missing flags
    """
    parser = ReportingArgumentParser(
        prog="gardepro.py",
        description="Copy one trail camera image or video into a year-partitioned archive, "
        "named by the capture time found in its EXIF data or movie header.",
        epilog="""
IMPORTANT NOTES:
• Files are never overwritten; a same-named file with different content is an error
• Re-running on an already archived file is a no-op
• Errors are shown in a dialog box unless --no-dialog is given""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-s",
        "--source",
        required=True,
        help="Source media file (.jpg, .jpeg, .mp4 or .mov).",
        metavar="FILE",
    )

    parser.add_argument(
        "-t",
        "--target",
        required=True,
        help="Target root directory; a subdirectory per year is created below it.",
        metavar="DIR",
    )

    parser.add_argument(
        "-c",
        "--console",
        action="store_true",
        help="Log to the console instead of the log file.",
    )

    parser.add_argument(
        "-l",
        "--log",
        default=str(DEFAULT_LOG_FILE),
        help=f"Path to the log file [default: {DEFAULT_LOG_FILE}]",
        metavar="FILE",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging.",
    )

    parser.add_argument(
        "--no-dialog",
        action="store_true",
        help="Report errors on stderr instead of in a dialog box.",
        dest="no_dialog",
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

    return parser.parse_args(args)


def main(args=None, reporter=None):
    """
    Main entry point for the script.

    Args:
        args (list, optional): Command line arguments. Defaults to sys.argv[1:].
        reporter (optional): Error reporter; chosen from --no-dialog when omitted.

    Returns:
        int: Process exit status
    """
    if args is None:
        args = sys.argv[1:]

    # Special handling for --examples flag to bypass required arguments
    if "--examples" in args:
        print_examples()
        return 0

    # The reporter is needed before the flags are known to be valid
    if reporter is None:
        reporter = ConsoleReporter() if "--no-dialog" in args else DialogReporter()

    try:
        parsed_args = parse_arguments(args)
    except CommandLineError as err:
        reporter.error("Error parsing command line flags", str(err))
        return 2

    if not parsed_args.source or not parsed_args.target:
        reporter.error(
            "Error parsing command line flags", "Source and target must not be empty"
        )
        return 2

    try:
        logger = set_up_logging(
            Path(parsed_args.log).expanduser(), parsed_args.console, parsed_args.verbose
        )
    except OSError as err:
        reporter.error("Log File Creation", str(err))
        return 1

    source = Path(parsed_args.source).expanduser()
    target = Path(parsed_args.target).expanduser().resolve()

    logger.info(f"GardePro {__version__} starting")
    logger.info(f"source: {source}")
    logger.info(f"target: {target}")

    archiver = Archiver(FileComparator(), logger)
    try:
        outcome, destination = archiver.archive(source, target)
        logger.debug(f"Outcome: {outcome.value} ({destination})")
        status = 0
    except ArchiveError as err:
        logger.error(f"{err.title}: {err}")
        reporter.error(err.title, str(err))
        status = 1
    finally:
        logger.info("GardePro finished")
        # Ensure all log messages are written and the log file released
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    return status


if __name__ == "__main__":
    sys.exit(main())
