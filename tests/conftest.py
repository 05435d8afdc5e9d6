"""
Pytest configuration and shared fixtures for clonezilla-usb-setup tests.

This module provides fake capabilities (process runner, prompter, HTTP client)
and lsblk fixtures so that no test touches a real device, the network, or
requires root.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest
from loguru import logger

from clonezilla_usb.app.context import RunConfig, RunContext
from clonezilla_usb.services.cancellation import CancellationToken
from clonezilla_usb.services.command_runner import CommandError, CommandResult
from clonezilla_usb.storage.exceptions import OperationCancelled
from clonezilla_usb.ui.prompts import ConsolePrompter


GIB = 1024**3


# ==============================================================================
# Fake Capabilities
# ==============================================================================


class FakeRunner:
    """Records commands and answers them from prefix rules.

    Rules are matched in reverse registration order, so a later ``on()``
    overrides an earlier one for the same prefix.
    """

    def __init__(self, dry_run: bool = False, token: Optional[CancellationToken] = None):
        self.dry_run = dry_run
        self.token = token or CancellationToken()
        self.calls: List[Dict[str, Any]] = []
        self._rules: List[tuple] = []

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        effect: Optional[Callable[[tuple], Any]] = None,
    ) -> "FakeRunner":
        self._rules.append((tuple(prefix), stdout, stderr, returncode, effect))
        return self

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        timeout: Optional[float] = None,
        mutating: bool = False,
        cancellable: bool = True,
    ) -> CommandResult:
        if cancellable:
            self.token.raise_if_cancelled()
        argv = tuple(str(arg) for arg in argv)
        skipped = mutating and self.dry_run
        self.calls.append(
            {"argv": argv, "mutating": mutating, "skipped": skipped, "timeout": timeout}
        )
        if skipped:
            return CommandResult(argv=argv, returncode=0)

        result = CommandResult(argv=argv, returncode=0)
        for prefix, stdout, stderr, returncode, effect in reversed(self._rules):
            if argv[: len(prefix)] != prefix:
                continue
            if effect is not None:
                outcome = effect(argv)
                if isinstance(outcome, CommandResult):
                    result = outcome
                    break
            result = CommandResult(
                argv=argv, returncode=returncode, stdout=stdout, stderr=stderr
            )
            break

        if check and not result.ok:
            raise CommandError(result)
        return result

    @property
    def executed(self) -> List[tuple]:
        return [call["argv"] for call in self.calls if not call["skipped"]]

    @property
    def mutations(self) -> List[tuple]:
        """Mutating commands that actually ran."""
        return [
            call["argv"] for call in self.calls if call["mutating"] and not call["skipped"]
        ]

    def commands(self, name: str) -> List[tuple]:
        return [call["argv"] for call in self.calls if call["argv"][0] == name]


class FakePrompter(ConsolePrompter):
    """Answers prompts from a scripted list; running out behaves like EOF."""

    def __init__(self, answers: Optional[List[str]] = None):
        super().__init__()
        self.answers = list(answers or [])
        self.questions: List[str] = []
        self.lines: List[str] = []

    def show(self, line: str = "") -> None:
        self.lines.append(line)

    def ask(self, text: str) -> str:
        self.questions.append(text)
        if not self.answers:
            raise OperationCancelled("Input stream closed")
        return self.answers.pop(0)


class FakeHttp:
    """HTTP capability with canned answers and a call log."""

    def __init__(
        self,
        reachable: Any = True,
        sizes: Optional[Dict[str, int]] = None,
        texts: Optional[Dict[str, str]] = None,
    ):
        self._reachable = reachable
        self.sizes = sizes or {}
        self.texts = texts or {}
        self.calls: List[tuple] = []

    def reachable(self, url: str) -> bool:
        self.calls.append(("HEAD", url))
        if isinstance(self._reachable, list):
            return self._reachable.pop(0) if self._reachable else False
        return self._reachable

    def remote_size(self, url: str) -> Optional[int]:
        self.calls.append(("SIZE", url))
        return self.sizes.get(url)

    def fetch_text(self, url: str) -> Optional[str]:
        self.calls.append(("GET", url))
        return self.texts.get(url)


# ==============================================================================
# lsblk Fixtures
# ==============================================================================


def lsblk_disk(
    name: str = "sdb",
    size: int = 16 * GIB,
    *,
    mountpoint: Optional[str] = None,
    children: Optional[List[Dict[str, Any]]] = None,
    rm: Any = True,
    tran: str = "usb",
    model: str = "USB Flash Drive",
) -> Dict[str, Any]:
    return {
        "name": name,
        "path": f"/dev/{name}",
        "size": size,
        "type": "disk",
        "model": model,
        "vendor": "Generic ",
        "rm": rm,
        "tran": tran,
        "mountpoint": mountpoint,
        "fstype": None,
        "children": children or [],
    }


def lsblk_part(name: str, *, mountpoint: Optional[str] = None, fstype: str = "vfat") -> Dict[str, Any]:
    return {
        "name": name,
        "path": f"/dev/{name}",
        "size": GIB,
        "type": "part",
        "mountpoint": mountpoint,
        "fstype": fstype,
    }


def lsblk_json(*disks: Dict[str, Any]) -> str:
    return json.dumps({"blockdevices": list(disks)})


@pytest.fixture
def usb_disk() -> Dict[str, Any]:
    """An unmounted 16 GiB removable USB disk with no partitions."""
    return lsblk_disk()


@pytest.fixture
def system_disk() -> Dict[str, Any]:
    """The disk holding the running system."""
    return lsblk_disk(
        "sda",
        256 * GIB,
        rm=False,
        tran="sata",
        model="Internal SSD",
        children=[
            lsblk_part("sda1", mountpoint="/boot/efi"),
            lsblk_part("sda2", mountpoint="/", fstype="ext4"),
        ],
    )


# ==============================================================================
# Run Fixtures
# ==============================================================================


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def fake_runner(token) -> FakeRunner:
    return FakeRunner(token=token)


@pytest.fixture
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def fake_prompter() -> FakePrompter:
    return FakePrompter()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    """RunConfig with every path rooted in tmp_path."""
    download_dir = tmp_path / "downloads"
    download_dir.mkdir()
    return RunConfig(
        download_dir=download_dir,
        log_file=tmp_path / "setup.log",
        lock_file=tmp_path / "setup.lock",
        mount_point=tmp_path / "mnt",
        live_base_url="https://example.test/clonezilla_live_stable",
        internet_check_url="https://probe.example.test",
    )


@pytest.fixture
def make_context(fake_runner, fake_http, fake_prompter, token, sleeps):
    """Build a RunContext around the fakes for a given RunConfig."""

    def _make(config: RunConfig) -> RunContext:
        fake_runner.dry_run = config.dry_run
        return RunContext(
            config=config,
            runner=fake_runner,
            http=fake_http,
            prompter=fake_prompter,
            token=token,
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def ctx(make_context, run_config) -> RunContext:
    return make_context(run_config)


# ==============================================================================
# Logging Fixtures
# ==============================================================================


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records: List[Dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


def messages(records: List[Dict[str, Any]], level: Optional[str] = None) -> List[str]:
    return [
        record["message"]
        for record in records
        if level is None or record["level"].name == level
    ]
