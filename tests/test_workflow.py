"""End-to-end runs of the setup workflow against fake capabilities."""

from dataclasses import replace

import pytest

from conftest import lsblk_json, messages

from clonezilla_usb.app import workflow
from clonezilla_usb.config.settings import INSTALL_HINT
from clonezilla_usb.services.command_runner import CommandError, CommandResult
from clonezilla_usb.services.process_lock import ProcessLock
from clonezilla_usb.storage.devices import LSBLK_COLUMNS
from clonezilla_usb.storage.exceptions import MissingDependencyError, OperationCancelled


LSBLK = ("lsblk", "-J", "-b", "-o", LSBLK_COLUMNS)


@pytest.fixture(autouse=True)
def host(mocker):
    """Root, all tools present, /dev/sdb exists, nothing mounted on the host."""
    mocker.patch("clonezilla_usb.app.workflow.check_root")
    mocker.patch("clonezilla_usb.app.workflow.check_dependencies")
    mocker.patch("clonezilla_usb.storage.devices.is_block_device", return_value=True)
    mocker.patch("clonezilla_usb.storage.mount.is_mountpoint_active", return_value=False)
    mocker.patch("psutil.disk_usage", return_value=mocker.Mock(free=100 * 1024**3))
    mocker.patch("shutil.which", return_value=None)


@pytest.fixture
def usb_runner(fake_runner, usb_disk):
    """Runner that knows a blank 16 GiB USB disk at /dev/sdb."""
    fake_runner.on(*LSBLK, stdout=lsblk_json(usb_disk))
    fake_runner.on(*LSBLK, "/dev/sdb", stdout=lsblk_json(usb_disk))
    fake_runner.on("lsblk", "-lnpo", stdout="/dev/sdb disk\n/dev/sdb1 part\n/dev/sdb2 part\n")
    return fake_runner


@pytest.fixture
def run_setup(fake_runner, fake_http, fake_prompter, token, sleeps):
    def _run(config, *answers, lock=None):
        fake_runner.dry_run = config.dry_run
        fake_prompter.answers = list(answers)
        return workflow.run(
            config,
            runner=fake_runner,
            http=fake_http,
            prompter=fake_prompter,
            token=token,
            sleep=sleeps.append,
            lock=lock,
            handle_signals=False,
        )

    return _run


class TestDryRun:
    """A dry run changes nothing and never touches the network."""

    def test_full_setup(self, run_setup, run_config, usb_runner, fake_http, log_records):
        config = replace(run_config, dry_run=True)

        exit_code = run_setup(config, "sdb", "YES", "no")

        assert exit_code == 0
        assert usb_runner.mutations == []
        assert fake_http.calls == []
        assert not config.lock_file.exists()
        assert not config.mount_point.exists()
        assert "DRY RUN mode - no changes will be made" in messages(log_records, "WARNING")
        assert "Setup completed successfully!" in messages(log_records, "SUCCESS")

    def test_unwritable_download_dir_is_allowed(self, run_setup, run_config, usb_runner, mocker):
        """Nothing is downloaded in a dry run, so the directory only has to exist."""
        mocker.patch("os.access", return_value=False)

        assert run_setup(replace(run_config, dry_run=True), "sdb", "YES", "no") == 0

    def test_skipped_commands_are_the_real_sequence(self, run_setup, run_config, usb_runner):
        run_setup(replace(run_config, dry_run=True), "sdb", "YES", "no")

        skipped = [
            call["argv"][0]
            for call in usb_runner.calls
            if call["skipped"] and call["argv"][0] != "umount"
        ]
        assert skipped[:7] == ["shred", "parted", "parted", "parted", "parted", "partprobe", "mkfs.vfat"]


class TestFullSetup:
    """Full setup against a fake device."""

    def test_success_with_local_image(
        self, run_setup, run_config, usb_runner, fake_http, tmp_path, sleeps
    ):
        image = tmp_path / "clonezilla.zip"
        image.write_bytes(b"PK")

        def populate(argv):
            target = argv[argv.index("-d") + 1]
            with open(f"{target}/live", "w") as f:
                f.write("x")

        usb_runner.on("unzip", effect=populate)
        config = replace(run_config, image_path=image)

        assert run_setup(config, "sdb", "YES", "no") == 0

        # --image means no connectivity probe and no download
        assert fake_http.calls == []
        assert usb_runner.commands("curl") == []
        assert usb_runner.commands("mkfs.vfat")[1][-2:] == ("BACKUP", "/dev/sdb2")
        assert sleeps == [5]
        assert not config.lock_file.exists()
        assert not config.live_archive.exists()

    def test_declined_wipe_exits_one_without_changes(
        self, run_setup, run_config, usb_runner, log_records
    ):
        assert run_setup(run_config, "sdb", "yes") == 1

        assert usb_runner.mutations == []
        assert "Operation canceled by user" in messages(log_records, "ERROR")
        assert "Setup failed with exit code 1" in messages(log_records, "ERROR")

    def test_cancel_mid_download_cleans_up(
        self, run_setup, run_config, usb_runner, token, log_records
    ):
        """A signal during the live download unmounts and removes everything."""
        config = replace(run_config, version="3.2.0-5")

        def interrupted(argv):
            with open(argv[argv.index("-o") + 1], "wb") as f:
                f.write(b"partial")
            token.cancel("Terminated by SIGTERM")
            raise OperationCancelled("Terminated by SIGTERM")

        usb_runner.on("curl", effect=interrupted)

        assert run_setup(config, "sdb", "YES") == 1

        assert usb_runner.commands("umount")[-1] == ("umount", str(config.mount_point))
        assert not config.live_archive.exists()
        assert not config.mount_point.exists()
        assert not config.lock_file.exists()
        assert "Terminated by SIGTERM" in messages(log_records, "ERROR")

    def test_no_internet(self, run_setup, run_config, usb_runner, fake_http, sleeps, log_records):
        fake_http._reachable = False

        assert run_setup(run_config) == 1

        assert sleeps == [3, 3]
        assert usb_runner.calls == []
        assert "No internet connection detected after 3 attempts" in messages(log_records, "ERROR")

    def test_offline_requires_image(self, run_setup, run_config, fake_http, log_records):
        assert run_setup(replace(run_config, offline=True)) == 1

        assert fake_http.calls == []
        errors = messages(log_records, "ERROR")
        assert "Offline mode needs a local Clonezilla archive for a full setup" in errors
        assert "Suggested fix: Pass -i/--image PATH, or use -b/--backup-only" in errors

    def test_missing_image(self, run_setup, run_config, tmp_path, log_records):
        config = replace(run_config, image_path=tmp_path / "nope.zip")
        assert run_setup(config) == 1
        assert f"Local file not found: {tmp_path / 'nope.zip'}" in messages(log_records, "ERROR")

    def test_missing_dependencies_hint(self, run_setup, run_config, mocker, log_records):
        mocker.patch(
            "clonezilla_usb.app.workflow.check_dependencies",
            side_effect=MissingDependencyError(["parted", "unzip"], hint=INSTALL_HINT),
        )

        assert run_setup(run_config) == 1

        errors = messages(log_records, "ERROR")
        assert "Missing dependencies: parted, unzip" in errors
        assert f"Suggested fix: {INSTALL_HINT}" in errors

    def test_checksum_tool_failure_exits_one(
        self, run_setup, run_config, usb_runner, fake_http, mocker, log_records
    ):
        """sha256sum failing on the download ends the run through cleanup."""
        mocker.patch("shutil.which", return_value="/usr/bin/sha256sum")
        config = replace(run_config, version="3.2.0-5")
        url = f"{config.live_base_url}/3.2.0-5/clonezilla-live-3.2.0-5-amd64.zip"
        fake_http.texts[f"{url}.sha256"] = "a" * 64

        def download(argv):
            with open(argv[argv.index("-o") + 1], "wb") as f:
                f.write(b"zip")

        usb_runner.on("curl", effect=download)
        usb_runner.on("sha256sum", returncode=1, stderr="read error")

        assert run_setup(config, "sdb", "YES") == 1

        errors = messages(log_records, "ERROR")
        assert f"Could not compute checksum of {config.live_archive}: read error" in errors
        assert "Setup failed with exit code 1" in errors
        assert usb_runner.commands("umount")[-1] == ("umount", str(config.mount_point))
        assert not config.live_archive.exists()
        assert not config.lock_file.exists()

    def test_keyboard_interrupt(self, run_setup, run_config, usb_runner, fake_prompter, mocker):
        mocker.patch.object(fake_prompter, "ask", side_effect=KeyboardInterrupt)
        assert run_setup(run_config) == 1


class TestLock:
    """Single-instance guarantee."""

    def test_live_instance_blocks_and_keeps_its_lock(
        self, run_setup, run_config, fake_runner, log_records
    ):
        run_config.lock_file.write_text("4242")
        lock = ProcessLock(run_config.lock_file, pid=1000, pid_exists=lambda pid: True)

        assert run_setup(run_config, lock=lock) == 1

        assert run_config.lock_file.read_text() == "4242"
        assert fake_runner.calls == []
        assert "Another instance is already running (PID: 4242)" in messages(log_records, "ERROR")

    def test_stale_lock_replaced(self, run_setup, run_config, usb_runner):
        run_config.lock_file.write_text("4242")
        lock = ProcessLock(run_config.lock_file, pid=1000, pid_exists=lambda pid: False)

        run_setup(replace(run_config, dry_run=True), "sdb", "YES", "no", lock=lock)

        assert not run_config.lock_file.exists()


class TestBackupOnly:
    """Adding a backup to an already prepared drive."""

    def test_local_backup(self, run_setup, run_config, usb_runner, fake_http, tmp_path):
        backup = tmp_path / "site.zip"
        backup.write_bytes(b"PK")
        usb_runner.on("blkid", stdout="vfat\n")

        def populate(argv):
            target = argv[argv.index("-d") + 1]
            with open(f"{target}/image", "w") as f:
                f.write("x")

        usb_runner.on("unzip", effect=populate)
        config = replace(run_config, backup_only=True, backup_source=str(backup))

        assert run_setup(config, "sdb") == 0

        assert usb_runner.commands("parted") == []
        assert usb_runner.commands("shred") == []
        assert usb_runner.commands("mount") == [("mount", "/dev/sdb2", str(config.mount_point))]
        assert fake_http.calls == []

    @pytest.fixture
    def prepared_drive(self, usb_runner, tmp_path):
        """A drive with a FAT32 second partition and a local backup archive."""
        backup = tmp_path / "site.zip"
        backup.write_bytes(b"PK")
        usb_runner.on("blkid", stdout="vfat\n")

        def populate(argv):
            target = argv[argv.index("-d") + 1]
            with open(f"{target}/image", "w") as f:
                f.write("x")

        usb_runner.on("unzip", effect=populate)
        return backup

    def test_sync_failure_exits_one(self, run_setup, run_config, usb_runner, prepared_drive, log_records):
        usb_runner.on("sync", returncode=1, stderr="I/O error")
        config = replace(run_config, backup_only=True, backup_source=str(prepared_drive))

        assert run_setup(config, "sdb") == 1

        errors = messages(log_records, "ERROR")
        assert "Failed to flush writes to /dev/sdb2: I/O error" in errors
        assert "Setup failed with exit code 1" in errors
        assert not config.lock_file.exists()
        assert not config.mount_point.exists()

    def test_unconverted_command_failure_exits_one(
        self, run_setup, run_config, usb_runner, prepared_drive, mocker, log_records
    ):
        failure = CommandError(CommandResult(argv=("sync",), returncode=1, stderr="I/O error"))
        mocker.patch("clonezilla_usb.app.workflow.install_backup", side_effect=failure)
        config = replace(run_config, backup_only=True, backup_source=str(prepared_drive))

        assert run_setup(config, "sdb") == 1

        errors = messages(log_records, "ERROR")
        assert "Command failed (1): sync: I/O error" in errors
        assert "Setup failed with exit code 1" in errors
        assert not config.lock_file.exists()
