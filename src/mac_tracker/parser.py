"""
MAC address table parser.

Turns the raw output of `show mac address-table` from one switch into
Observation records. Expected row layout:

    VlanId    Mac Address         Type      Interface
    10        aa:bb:cc:dd:ee:ff   dynamic   Gi0/1

Headers, separator rules, `--More--` prompts and legend text are skipped.
Malformed rows are dropped silently; only unreadable input raises.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

from ._types import Observation, is_valid_mac, normalize_mac, now_utc
from .exceptions import ParseFailureError

logger = logging.getLogger(__name__)

_SEPARATOR_RE = re.compile(r"^[-=+\s]+$")
_PAGINATION_RE = re.compile(r"-+\s*more\s*-+", re.IGNORECASE)
_BACKSPACES_RE = re.compile(r"[\x08\r]")

_HEADER_TOKENS = frozenset({"vlan", "vlanid", "vid"})

_LEGEND_PREFIXES = (
    "codes:",
    "pv ",
    "total mac addresses",
    "legend:",
    "* -",
    "+ -",
)


def _clean_line(raw_line: str) -> str:
    """Drop pagination prompts and the backspaces that erase them."""
    line = _BACKSPACES_RE.sub("", raw_line)
    return _PAGINATION_RE.sub("", line).strip()


def _is_noise(line: str) -> bool:
    """Check for header, separator or legend lines."""
    lowered = line.lower()
    if "---" in line or _SEPARATOR_RE.match(line):
        return True
    if "vlanid" in lowered or lowered.split()[0] in _HEADER_TOKENS:
        return True
    return lowered.startswith(_LEGEND_PREFIXES)


def _parse_line(line: str, host_name: str, observed_at: datetime) -> Optional[Observation]:
    """Parse one table row, returning None for rows that are not entries."""
    parts = line.split()
    if len(parts) < 4:
        return None

    vlan_token, mac_token = parts[0], parts[1]
    try:
        vlan_id = int(vlan_token)
    except ValueError:
        return None

    if not is_valid_mac(mac_token):
        return None

    return Observation(
        mac_address=normalize_mac(mac_token),
        vlan_id=vlan_id,
        interface_name=" ".join(parts[3:]),
        host_name=host_name,
        observed_at=observed_at,
    )


def parse_mac_table(
    raw_text: Optional[str],
    host_name: str,
    observed_at: Optional[datetime] = None,
) -> list[Observation]:
    """
    Parse MAC address table output into observations.

    Args:
        raw_text: Command output from one host
        host_name: Name of the host the output came from
        observed_at: Timestamp stamped on every observation (defaults to now)

    Returns:
        Observations in line order, duplicates included

    Raises:
        ParseFailureError: Output is missing, not text, or empty
    """
    if raw_text is None:
        raise ParseFailureError(f"No MAC table output received from {host_name}")
    if not isinstance(raw_text, str):
        raise ParseFailureError(
            f"Unreadable MAC table output from {host_name}: {type(raw_text).__name__}"
        )
    if not raw_text.strip():
        raise ParseFailureError(f"Empty MAC table output from {host_name}")

    observed_at = observed_at or now_utc()
    observations: list[Observation] = []

    for raw_line in raw_text.splitlines():
        line = _clean_line(raw_line)
        if not line or _is_noise(line):
            continue

        observation = _parse_line(line, host_name, observed_at)
        if observation is None:
            logger.debug(f"Skipping MAC table line from {host_name}: {line!r}")
            continue
        observations.append(observation)

    logger.info(f"Parsed {len(observations)} MAC addresses from {host_name}")
    return observations
