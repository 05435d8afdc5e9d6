from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from clonezilla_usb.config import settings
from clonezilla_usb.domain.models import BlockDevice, PartitionPair, Stage, StageHistory
from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.services.cancellation import CancellationToken
from clonezilla_usb.services.command_runner import CommandRunner
from clonezilla_usb.services.http_client import HttpClient
from clonezilla_usb.ui.prompts import ConsolePrompter


log = LoggerFactory.for_system()


@dataclass(frozen=True)
class RunConfig:
    """Immutable run parameters built once from the command line."""

    verbose: bool = False
    dry_run: bool = False
    backup_only: bool = False
    offline: bool = False
    skip_confirmation: bool = False
    version: Optional[str] = None
    backup_source: Optional[str] = None
    image_path: Optional[Path] = None
    download_dir: Path = settings.DEFAULT_DOWNLOAD_DIR
    log_file: Path = settings.DEFAULT_LOG_FILE
    lock_file: Path = settings.DEFAULT_LOCK_FILE
    mount_point: Path = settings.MOUNT_POINT
    live_base_url: str = settings.LIVE_BASE_URL
    internet_check_url: str = settings.INTERNET_CHECK_URL
    min_device_size: int = settings.MIN_DEVICE_SIZE

    @property
    def live_archive(self) -> Path:
        return self.download_dir / settings.ZIP_NAME

    @property
    def backup_archive(self) -> Path:
        return self.download_dir / settings.BACKUP_NAME

    @property
    def network_allowed(self) -> bool:
        return not (self.dry_run or self.offline)


@dataclass
class RunContext:
    """Everything a component needs for one run, threaded through every call."""

    config: RunConfig
    runner: CommandRunner
    http: HttpClient
    prompter: ConsolePrompter
    token: CancellationToken
    sleep: Callable[[float], None] = time.sleep
    device: Optional[BlockDevice] = None
    partitions: Optional[PartitionPair] = None
    history: StageHistory = field(default_factory=StageHistory)

    @classmethod
    def create(
        cls,
        config: RunConfig,
        *,
        runner: Optional[CommandRunner] = None,
        http: Optional[HttpClient] = None,
        prompter: Optional[ConsolePrompter] = None,
        token: Optional[CancellationToken] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> RunContext:
        token = token or CancellationToken()
        return cls(
            config=config,
            runner=runner or CommandRunner(dry_run=config.dry_run, token=token),
            http=http or HttpClient(),
            prompter=prompter or ConsolePrompter(),
            token=token,
            sleep=sleep or token.wait,
        )

    @property
    def stage(self) -> Optional[Stage]:
        return self.history.current

    def enter(self, stage: Stage) -> None:
        previous = self.history.current
        self.history.enter(stage)
        log.debug(
            f"Stage {previous.name if previous else '-'} -> {stage.name}"
        )
