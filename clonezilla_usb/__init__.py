"""Provision a USB drive as a bootable Clonezilla Live disk-imaging tool."""

from clonezilla_usb.__version__ import __version__

__all__ = ["__version__"]
