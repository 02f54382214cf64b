"""
Device Info - Machine Serial for Per-Device State
==================================================

Public notifications are marked "seen" per machine, keyed by the BIOS
serial number. Each platform exposes it differently; when none can be
read the host name stands in, and "UNKNOWN" as the last resort.
"""

import logging
import platform
import re
import subprocess
from functools import lru_cache
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

UNKNOWN_SERIAL = "UNKNOWN"
LINUX_SERIAL_PATH = Path("/sys/class/dmi/id/product_serial")
# Placeholder values some vendors burn into the BIOS
PLACEHOLDER_SERIALS = {"", "0", "none", "default string", "to be filled by o.e.m.", "system serial number"}


def _run(command) -> Optional[str]:
    try:
        completed = subprocess.run(command, capture_output=True, text=True, timeout=5, check=False)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Serial query {command[0]} failed: {e}")
        return None
    return completed.stdout if completed.returncode == 0 else None


def _windows_serial() -> Optional[str]:
    output = _run(["wmic", "bios", "get", "serialnumber"])
    if not output:
        return None
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    # First line is the "SerialNumber" header
    return lines[1] if len(lines) > 1 else None


def _linux_serial() -> Optional[str]:
    try:
        return LINUX_SERIAL_PATH.read_text().strip()
    except OSError as e:
        logger.debug(f"Cannot read {LINUX_SERIAL_PATH}: {e}")
        return None


def _macos_serial() -> Optional[str]:
    output = _run(["ioreg", "-c", "IOPlatformExpertDevice", "-d", "2"])
    if not output:
        return None
    match = re.search(r'"IOPlatformSerialNumber"\s*=\s*"([^"]+)"', output)
    return match.group(1) if match else None


def _usable(serial: Optional[str]) -> bool:
    return serial is not None and serial.strip().lower() not in PLACEHOLDER_SERIALS


def read_laptop_serial(system: Optional[str] = None) -> str:
    """Query the platform for the machine serial number. Never raises."""
    system = system or platform.system()
    readers = {
        "Windows": _windows_serial,
        "Linux": _linux_serial,
        "Darwin": _macos_serial,
    }

    reader = readers.get(system)
    serial = reader() if reader else None
    if _usable(serial):
        return serial.strip()

    host = platform.node()
    if host:
        logger.warning(f"No BIOS serial on {system}; using host name for device identity")
        return host

    logger.warning("Could not determine device identity, using UNKNOWN")
    return UNKNOWN_SERIAL


@lru_cache()
def get_laptop_serial() -> str:
    """Cached machine serial."""
    return read_laptop_serial()
