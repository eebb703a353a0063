"""Core primitives for the DaoVsDao engine.

This module provides the foundational utilities used throughout the package:
- Units and identity constants (wei-scale amounts, zero address)
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (sorted keys, no floats)
- YAML/JSON loading with consistent encoding
- Duration parsing for cooldown and scenario settings

Design principles:
- Pure functions where possible
- No global mutable state
- Integer amounts only
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import re
from typing import Any, Optional

import yaml

# JSON Schemas shipped inside the package
SCHEMA_DIR = pathlib.Path(__file__).resolve().parent / "schemas"

# Smallest units per whole token (18 decimals)
WAD = 10**18

# Marker used for empty cells and unset addresses in every read model
ZERO_ADDRESS = "0x" + "0" * 40

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


def is_zero_address(address: Optional[str]) -> bool:
    """True for None, empty strings and the zero address."""
    if not address:
        return True
    return address.strip().lower() == ZERO_ADDRESS


def parse_ether(value: Any) -> int:
    """Convert a whole-token amount ("0.25", 1, "1.5") to smallest units.

    Parsing goes through the string form so that "0.1" is exact.
    """
    s = str(value).strip()
    m = re.fullmatch(r"(\d*)(?:\.(\d*))?", s)
    if not m or not (m.group(1) or m.group(2)):
        raise ValueError(f"Invalid token amount: {value!r}")
    whole = int(m.group(1) or 0)
    frac = (m.group(2) or "")
    if len(frac) > 18:
        raise ValueError(f"Too many decimals in token amount: {value!r}")
    return whole * WAD + int(frac.ljust(18, "0") or 0)


def format_ether(amount: int) -> str:
    """Render smallest units as a decimal token string without trailing zeros."""
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(int(amount)), WAD)
    if not frac:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{str(frac).rjust(18, '0').rstrip('0')}"


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected (amounts are integers)

    This ensures byte-for-byte reproducibility for state digests.
    """
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def parse_duration_seconds(duration: Any) -> int:
    """Parse duration string to seconds.

    Supported formats:
    - Shorthand: "30s", "15m", "2h", "7d"
    - ISO8601 subset: "PT1H", "PT30M", "P1D"
    - Plain integer (seconds)

    Raises ValueError for unparseable input.
    """
    if isinstance(duration, int) and not isinstance(duration, bool):
        if duration < 0:
            raise ValueError(f"Negative duration: {duration}")
        return duration

    s = str(duration or "").strip()
    if not s:
        raise ValueError("Empty duration")

    if re.fullmatch(r"\d+", s):
        return int(s)

    m = re.fullmatch(r"(?i)(\d+)\s*([smhd])", s)
    if m:
        n, unit = int(m.group(1)), m.group(2).lower()
        return n * {"s": 1, "m": 60, "h": 3600, "d": 86400}[unit]

    m = re.fullmatch(r"(?i)P(\d+)D", s)
    if m:
        return int(m.group(1)) * 86400

    m = re.fullmatch(r"(?i)PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?", s)
    if m and any(m.groups()):
        h = int(m.group(1) or 0)
        mi = int(m.group(2) or 0)
        sec = int(m.group(3) or 0)
        return h * 3600 + mi * 60 + sec

    raise ValueError(f"Cannot parse duration: {duration!r}")
