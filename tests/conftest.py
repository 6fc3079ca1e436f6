# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 MIT License
# https://github.com/mvalancy/CyberPower-PDU

"""Pytest configuration: shared fixtures plus branded HTML reports."""

import os
import platform
import subprocess
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "gateway"))


def _git(cmd: str) -> str:
    """Run a git command and return stripped output, or '' on failure."""
    try:
        return subprocess.check_output(
            ["git"] + cmd.split(), stderr=subprocess.DEVNULL
        ).decode().strip()
    except Exception:
        return ""


def pytest_configure(config):
    """Add project metadata to HTML report (only if pytest-metadata installed)."""
    try:
        from pytest_metadata.plugin import metadata_key
    except ImportError:
        return

    config.stash[metadata_key]["Project"] = "UniFi PoE RPC Gateway"
    config.stash[metadata_key]["Author"] = "Matthew Valancy, Valpatel Software LLC"
    config.stash[metadata_key]["Git Commit"] = _git("rev-parse --short HEAD")
    config.stash[metadata_key]["Git Branch"] = _git("rev-parse --abbrev-ref HEAD")
    config.stash[metadata_key]["Python"] = platform.python_version()
    config.stash[metadata_key]["Timestamp"] = datetime.now().isoformat(timespec="seconds")


# Conditional hooks: only registered when pytest-html is available
try:
    import pytest_html  # noqa: F401

    def pytest_html_report_title(report):
        report.title = "UniFi PoE RPC Gateway: Test Report"
except ImportError:
    pass


# ---------------------------------------------------------------------------
# Captured `swctrl poe show` output (US-8-150W, firmware 6.x)
# ---------------------------------------------------------------------------

POE_SHOW_ALL = """\
Total Power Limit(mW): 150000

Port  OpMode      HpMode    PwrLimit   Class   PoEPwr  PwrGood  Power(W)  Voltage(V)  Current(mA)
                              (mW)
----  ------  ------------  --------  -------  ------  -------  --------  ----------  -----------
   1    Auto        Dot3at     32000  Class 4      On     Good      4.52       53.79        84.00
   2    Auto        Dot3at     32000  Unknown     Off      Bad      0.00        0.00         0.00
   3    Auto        Dot3af     15400  Class 2      On     Good      2.10       53.81        39.00
   4     Off        Dot3at     32000  Unknown     Off      Bad      0.00        0.00         0.00
"""

POE_SHOW_PORT_3 = """\
Total Power Limit(mW): 150000

Port  OpMode      HpMode    PwrLimit   Class   PoEPwr  PwrGood  Power(W)  Voltage(V)  Current(mA)
                              (mW)
----  ------  ------------  --------  -------  ------  -------  --------  ----------  -----------
   3    Auto        Dot3af     15400  Class 2      On     Good      2.10       53.81        39.00
"""


@pytest.fixture
def poe_show_all():
    return POE_SHOW_ALL


@pytest.fixture
def poe_show_port_3():
    return POE_SHOW_PORT_3
