import argparse
import sys
from pathlib import Path

from clonezilla_usb.__version__ import __version__
from clonezilla_usb.app import workflow
from clonezilla_usb.app.context import RunConfig
from clonezilla_usb.config import settings
from clonezilla_usb.logging import setup_logging
from clonezilla_usb.services.versions import VERSION_RE


DESCRIPTION = (
    "Prepare a USB drive with Clonezilla Live on a boot partition and an "
    "optional backup image on a second partition."
)
EPILOG = """\
This script must be run as root. It creates two partitions on the chosen
device: one for Clonezilla and one for backups.

Examples:
  %(prog)s                        # Full setup with prompts
  %(prog)s -v -D /tmp             # Verbose, download to /tmp
  %(prog)s --backup-only          # Only add backup to existing drive
  %(prog)s -V 3.1.2-22 -y         # Pin the Clonezilla version, no prompts
  %(prog)s -o -i ~/clonezilla.zip # Offline setup from a local archive
"""


class SetupArgumentParser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _version_arg(text: str) -> str:
    version = text.strip()
    if not VERSION_RE.match(version):
        raise argparse.ArgumentTypeError(
            f"invalid version {text!r} (expected e.g. 3.1.2-22)"
        )
    return version


def build_parser() -> argparse.ArgumentParser:
    parser = SetupArgumentParser(
        prog=settings.PROG_NAME,
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "-d", "--dry-run", action="store_true", help="Show what would be done without making changes"
    )
    parser.add_argument(
        "-b",
        "--backup-only",
        action="store_true",
        help="Only add a backup to existing Clonezilla USB drive",
    )
    parser.add_argument(
        "-l", "--log-file", type=Path, metavar="PATH", help="Specify log file location"
    )
    parser.add_argument(
        "-V",
        "--version",
        type=_version_arg,
        metavar="VERSION",
        help="Specify Clonezilla version (default: latest)",
    )
    parser.add_argument(
        "-D",
        "--download-dir",
        type=Path,
        metavar="DIR",
        help=f"Specify download directory (default: {settings.DEFAULT_DOWNLOAD_DIR})",
    )
    parser.add_argument(
        "-o", "--offline", action="store_true", help="Never use the network"
    )
    parser.add_argument(
        "-y", "--yes", action="store_true", help="Skip confirmation prompts (use with caution)"
    )
    parser.add_argument(
        "-B",
        "--backup",
        metavar="SOURCE",
        help="Backup archive URL or local path (skips the backup menu)",
    )
    parser.add_argument(
        "-i",
        "--image",
        type=Path,
        metavar="PATH",
        help="Local Clonezilla Live zip to install instead of downloading",
    )
    parser.add_argument(
        "--tool-version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def build_config(args: argparse.Namespace) -> RunConfig:
    image_path = args.image.expanduser() if args.image else None
    return RunConfig(
        verbose=args.verbose,
        dry_run=args.dry_run,
        backup_only=args.backup_only,
        offline=args.offline,
        skip_confirmation=args.yes,
        version=args.version,
        backup_source=args.backup,
        image_path=image_path,
        download_dir=(args.download_dir or settings.DEFAULT_DOWNLOAD_DIR).expanduser(),
        log_file=args.log_file or settings.DEFAULT_LOG_FILE,
        lock_file=settings.DEFAULT_LOCK_FILE,
        mount_point=Path(settings.get_setting("mount_point", str(settings.MOUNT_POINT))),
        live_base_url=settings.get_setting("live_base_url", settings.LIVE_BASE_URL),
        internet_check_url=settings.get_setting(
            "internet_check_url", settings.INTERNET_CHECK_URL
        ),
    )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = build_config(args)
    setup_logging(verbose=config.verbose, log_file=config.log_file)
    return workflow.run(config)


if __name__ == "__main__":
    sys.exit(main())
