"""Tests for terminal prompts and the device table."""
import io

import pytest

from clonezilla_usb.domain.models import BlockDevice
from clonezilla_usb.storage.exceptions import OperationCancelled
from clonezilla_usb.ui.prompts import ConsolePrompter, is_wipe_confirmed, is_yes
from clonezilla_usb.ui.tables import format_device_table


GIB = 1024**3


class TestAnswerRules:
    @pytest.mark.parametrize("answer", ["y", "Y", "yes", " YES "])
    def test_yes(self, answer):
        assert is_yes(answer) is True

    @pytest.mark.parametrize("answer", ["n", "No", "no"])
    def test_no(self, answer):
        assert is_yes(answer, default=True) is False

    @pytest.mark.parametrize("answer", ["", None, "maybe"])
    def test_default(self, answer):
        assert is_yes(answer) is False
        assert is_yes(answer, default=True) is True

    def test_wipe_needs_literal_uppercase(self):
        assert is_wipe_confirmed("YES") is True
        assert is_wipe_confirmed(" YES\n") is True
        for answer in ("yes", "Yes", "y", "", None, "YES!"):
            assert is_wipe_confirmed(answer) is False


class TestConsolePrompter:
    def test_ask_passes_prompt(self):
        seen = []
        prompter = ConsolePrompter(input_func=lambda text: seen.append(text) or "sdb")

        assert prompter.ask("Device: ") == "sdb"
        assert seen == ["Device: "]

    def test_eof_cancels(self):
        def closed(_text):
            raise EOFError

        with pytest.raises(OperationCancelled, match="Input stream closed"):
            ConsolePrompter(input_func=closed).ask("Device: ")

    def test_confirm_suffix_and_default(self):
        seen = []
        prompter = ConsolePrompter(input_func=lambda text: seen.append(text) or "")

        assert prompter.confirm("Continue?") is False
        assert seen == ["Continue? (yes/no) [no]: "]

    def test_show_writes_line(self):
        out = io.StringIO()
        ConsolePrompter(output=out).show("Available devices:")
        assert out.getvalue() == "Available devices:\n"


class TestDeviceTable:
    def test_header_first(self):
        lines = format_device_table([])
        assert lines[0].split() == ["DEVICE", "SIZE", "TYPE", "MODEL", "MOUNTED", "NOTES"]

    def test_rows_and_tags(self):
        usb = BlockDevice(path="/dev/sdb", size_bytes=16 * GIB, model="Cruzer", removable=True)
        system = BlockDevice(
            path="/dev/sda",
            size_bytes=256 * GIB,
            model="Internal SSD",
            system_disk=True,
            mountpoints=("/",),
        )

        header, usb_line, system_line = format_device_table([usb, system])

        assert usb_line.split() == ["/dev/sdb", "16GB", "disk", "Cruzer", "no", "[USB/SD]"]
        assert system_line.split()[-2:] == ["yes", "[SYSTEM]"]
        assert header.index("SIZE") == usb_line.index("16GB")

    def test_missing_model(self):
        line = format_device_table([BlockDevice(path="/dev/sdc", size_bytes=GIB)])[1]
        assert line.split() == ["/dev/sdc", "1GB", "disk", "-", "no"]
