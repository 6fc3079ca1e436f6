# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Pure-function parser for UniFi switch `swctrl poe show` output.

Takes raw shell text and returns a PoEStatus. No I/O; every transport
that speaks the switch shell funnels its output through here, so a
firmware with a different table layout only needs a new parser.

Example output (US-8-150W):
    Total Power Limit(mW): 150000

    Port  OpMode      HpMode    PwrLimit   Class   PoEPwr  PwrGood  Power(W)  Voltage(V)  Current(mA)
                                  (mW)
    ----  ------  ------------  --------  -------  ------  -------  --------  ----------  -----------
       3    Auto        Dot3at     32000  Class 4      On     Good      4.52       53.79        84.00
"""

import logging
import re

from .errors import EmptyResult, MalformedOutput
from .poe_model import PoEPortStatus, PoEStatus

logger = logging.getLogger(__name__)

TOTAL_LIMIT_LABEL = "Total Power Limit"
SEPARATOR_PREFIX = "----"
MIN_ROW_FIELDS = 10

_ANSI_RE = re.compile(r'\x1b\[[0-9;]*[a-zA-Z]')


def _int(token: str) -> int:
    try:
        return int(token)
    except ValueError:
        return 0


def _float(token: str) -> float:
    try:
        return float(token)
    except ValueError:
        return 0.0


def parse_total_power_limit(lines: list[str]) -> int | None:
    """'Total Power Limit(mW): 150000' -> 150000; unparseable -> None."""
    for line in lines:
        if TOTAL_LIMIT_LABEL in line:
            _, _, value = line.partition(":")
            try:
                return int(value.strip())
            except ValueError:
                logger.debug("Unparseable power limit line: %r", line)
                return None
    return None


def parse_poe_row(line: str) -> PoEPortStatus | None:
    """Map one table row onto a PoEPortStatus, or None if too short.

    Column order: Port OpMode HpMode PwrLimit Class PoEPwr PwrGood
    Power(W) Voltage(V) Current(mA). The class column may be two
    tokens ("Class 4"), which shifts the remaining columns by one.
    """
    fields = line.split()
    if len(fields) < MIN_ROW_FIELDS:
        return None

    status = PoEPortStatus(
        port=_int(fields[0]),
        op_mode=fields[1],
        hp_mode=fields[2],
        power_limit_mw=_int(fields[3]),
    )

    idx = 4
    if fields[idx].startswith("Class") and idx + 1 < len(fields):
        status.poe_class = f"{fields[idx]} {fields[idx + 1]}"
        idx += 1
    else:
        status.poe_class = fields[idx]

    rest = fields[idx + 1:]
    # "Powering On" and friends: glue a trailing On/Off onto the flag
    if (len(rest) > 5 and rest[0].lower() == "powering"
            and rest[1].lower() in ("on", "off")):
        rest = [f"{rest[0]} {rest[1]}"] + rest[2:]
    if len(rest) < 5:
        return None

    status.poe_power = rest[0]
    status.power_good = rest[1]
    status.power_w = _float(rest[2])
    status.voltage_v = _float(rest[3])
    status.current_ma = _float(rest[4])
    return status


def parse_poe_status(text: str) -> PoEStatus:
    """Parse full `swctrl poe show` output into a PoEStatus snapshot.

    Raises MalformedOutput when there is no dashed separator row and
    EmptyResult when no data row could be parsed.
    """
    lines = [_ANSI_RE.sub('', line).rstrip() for line in text.splitlines()]

    result = PoEStatus(total_power_limit_mw=parse_total_power_limit(lines))

    data_start = None
    for i, line in enumerate(lines):
        if line.strip().startswith(SEPARATOR_PREFIX):
            data_start = i + 1
            break
    if data_start is None:
        raise MalformedOutput("could not find data section in output")

    for line in lines[data_start:]:
        if not line.strip():
            continue
        row = parse_poe_row(line)
        if row is None:
            logger.debug("Skipping short PoE row: %r", line)
            continue
        result.ports.append(row)

    if not result.ports:
        raise EmptyResult("no port data found in output")
    return result
