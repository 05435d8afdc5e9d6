"""Install the live system onto partition 1 and a backup onto partition 2."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from clonezilla_usb.config.settings import UNMOUNT_TIMEOUT_SECONDS, get_backup_presets
from clonezilla_usb.domain.models import BackupPreset, PartitionPair
from clonezilla_usb.logging import LoggerFactory, report
from clonezilla_usb.services.command_runner import CommandError
from clonezilla_usb.services.fetch import FetchEngine, is_local_file, is_url
from clonezilla_usb.services.preconditions import check_internet
from clonezilla_usb.services.versions import build_download_url, resolve_version
from clonezilla_usb.storage.archive import ensure_not_empty, extract_archive
from clonezilla_usb.storage.exceptions import InvalidSourceError, MountError
from clonezilla_usb.storage.mount import MountPoint


if TYPE_CHECKING:
    from clonezilla_usb.app.context import RunContext


log = LoggerFactory.for_install()

CUSTOM_CHOICE_LABEL = "Custom backup (URL or local file path)"


def _discard(ctx: RunContext, archive: Path) -> None:
    if ctx.config.dry_run:
        log.info(f"[DRY RUN] Would delete {archive}")
        return
    archive.unlink(missing_ok=True)
    log.debug(f"Deleted {archive}")


def _flush(ctx: RunContext, partition: str) -> None:
    try:
        ctx.runner.run(["sync"], mutating=True)
    except CommandError as error:
        raise MountError(f"Failed to flush writes to {partition}: {error.detail}") from error


def _live_image_url(ctx: RunContext) -> str:
    config = ctx.config
    if config.dry_run:
        version = config.version or "<latest>"
        log.info(f"[DRY RUN] Would resolve Clonezilla version ({version})")
        return build_download_url(version, config.live_base_url)
    version = resolve_version(ctx.http, config.live_base_url, config.version)
    url = build_download_url(version, config.live_base_url)
    log.info(f"Clonezilla version: {version}")
    log.debug(f"Clonezilla URL: {url}")
    return url


def install_live_image(ctx: RunContext, partitions: PartitionPair) -> None:
    """Put the extracted live system onto the first partition.

    With ``--image`` the local archive is copied instead of downloading; a
    pinned version is then only logged.
    """
    config = ctx.config
    report("INFO", "Setting up Clonezilla...", force_show=True)
    engine = FetchEngine(ctx)
    archive = config.live_archive

    if config.image_path is None:
        url: Optional[str] = _live_image_url(ctx)
    else:
        url = None
        if config.version:
            log.info(f"Using local image {config.image_path} (version {config.version})")

    mount_point = MountPoint(ctx.runner, config.mount_point)
    mount_point.ensure()
    with mount_point.mounted(partitions.first):
        if url is None:
            engine.copy_local(str(config.image_path), archive, "Clonezilla Live")
        else:
            checksum = None if config.dry_run else engine.resolve_checksum(url)
            if checksum:
                log.debug("Found checksum for verification")
            engine.fetch(url, archive, "Clonezilla Live", checksum)

        report("INFO", "Extracting Clonezilla...")
        extract_archive(ctx.runner, archive, mount_point.path)
        if not config.dry_run:
            ensure_not_empty(mount_point.path)

    _discard(ctx, archive)
    report("SUCCESS", "Clonezilla setup completed")


def _presets() -> list[BackupPreset]:
    return [BackupPreset(name=p["name"], url=p["url"]) for p in get_backup_presets()]


def select_backup_source(ctx: RunContext) -> str:
    """Return the backup source: ``--backup`` if given, else a menu choice."""
    if ctx.config.backup_source:
        log.debug(f"Using backup source from command line: {ctx.config.backup_source}")
        return ctx.config.backup_source.strip()

    presets = _presets()
    custom_choice = len(presets) + 1
    while True:
        ctx.token.raise_if_cancelled()
        ctx.prompter.show()
        ctx.prompter.show("Available backup options:")
        for index, preset in enumerate(presets, start=1):
            ctx.prompter.show(f"  {index}) {preset.name}")
        ctx.prompter.show(f"  {custom_choice}) {CUSTOM_CHOICE_LABEL}")

        answer = ctx.prompter.ask(f"Select backup option (1-{custom_choice}): ").strip()
        choice = int(answer) if answer.isdigit() else 0
        if 1 <= choice <= len(presets):
            log.info(f"Selected: {presets[choice - 1].name}")
            return presets[choice - 1].url
        if choice == custom_choice:
            source = ctx.prompter.ask("Enter the URL or path of the backup file: ").strip()
            if source:
                return source
            report("ERROR", "No backup file provided")
            continue
        report("ERROR", f"Invalid choice. Please select 1-{custom_choice}.")


def _check_source(ctx: RunContext, source: str) -> bool:
    """Validate ``source`` and return True if it is a URL.

    Raises:
        InvalidSourceError: Neither a URL nor a readable local file, or a URL
            while offline
    """
    config = ctx.config
    if is_url(source):
        if config.offline:
            raise InvalidSourceError(source, "URL sources are not available in offline mode")
        if config.backup_only and config.network_allowed:
            check_internet(ctx.http, config.internet_check_url, sleep=ctx.sleep)
        return True
    if is_local_file(source):
        return False
    raise InvalidSourceError(source)


def install_backup(ctx: RunContext, partitions: PartitionPair) -> bool:
    """Optionally put an extracted backup onto the second partition.

    Returns:
        True if a backup was installed, False if the operator skipped it
    """
    config = ctx.config
    if not config.backup_only and not config.backup_source:
        if not ctx.prompter.confirm("Would you like to add a backup from a zip file?"):
            log.info("Skipping backup setup")
            return False

    source = select_backup_source(ctx)
    from_url = _check_source(ctx, source)

    report("INFO", "Setting up backup...", force_show=True)
    engine = FetchEngine(ctx)
    archive = config.backup_archive

    mount_point = MountPoint(ctx.runner, config.mount_point)
    mount_point.ensure()
    with mount_point.mounted(partitions.second, unmount_timeout=UNMOUNT_TIMEOUT_SECONDS):
        if from_url:
            checksum = None if config.dry_run else engine.resolve_checksum(source)
            engine.fetch(source, archive, "backup file", checksum)
        else:
            report("INFO", f"Copying backup from: {source}", force_show=True)
            engine.copy_local(source, archive, "backup file")

        report("INFO", "Extracting backup...", force_show=True)
        extract_archive(ctx.runner, archive, mount_point.path)
        if not config.dry_run:
            ensure_not_empty(mount_point.path)
        _flush(ctx, partitions.second)

    _discard(ctx, archive)
    report("SUCCESS", "Backup setup completed", force_show=True)
    return True
