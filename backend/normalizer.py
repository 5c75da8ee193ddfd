import math
import re

# Matches: INT-1-A1-1030-001, bsc-1-b1-0204-004, CAR-2-C1-0000-010, OPT-EX
CANONICAL = re.compile(r'^[A-Za-z]+(?:-[A-Za-z0-9]+)*$')
PREFIX = re.compile(r'^[A-Za-z]+')
NUMBER = re.compile(r'\d+(?:\.\d+)?')

QUARTERS = ("Q1", "Q2", "Q3", "Q4")


def normalize_code(raw: str) -> str | None:
    """
    Normalizes a course code to canonical upper-case 'PREFIX-...' format.
    Handles: ' int-1-a1-1030-001 ', 'BSC-1-B1-0204-004'
    Returns None if the string cannot be parsed as a course code.
    """
    if not raw or not raw.strip():
        return None
    token = raw.strip()
    if CANONICAL.match(token):
        return token.upper()
    return None


def parse_credits(raw) -> float:
    """Numeric credit value from a number or text like '2', '2.5 credits'. Missing → 0."""
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return safe_float(raw, 0.0)
    if not raw:
        return 0.0
    m = NUMBER.search(str(raw))
    return float(m.group(0)) if m else 0.0


def derive_prefix(code) -> str:
    """Leading letters of a course code, upper-cased ('INT-1-...' → 'INT')."""
    if not code:
        return ""
    m = PREFIX.match(str(code))
    return m.group(0).upper() if m else ""


def derive_quarters(code) -> list[str]:
    """
    Quarter tags from the 4-digit flag segment (index 3) of a course code.
    '1011' → ['Q1', 'Q3', 'Q4']; a missing or malformed segment yields [].
    """
    parts = str(code or "").split("-")
    flags = parts[3] if len(parts) > 3 else ""
    if len(flags) != 4:
        return []
    return [QUARTERS[i] for i, ch in enumerate(flags) if ch != "0"]


def safe_float(val, default=None):
    """float(val), or default for bools, NaN and anything unconvertible."""
    if isinstance(val, bool):
        return default
    try:
        out = float(val)
    except (TypeError, ValueError, OverflowError):
        return default
    if math.isnan(out):
        return default
    return out


def normalize_input(raw_str: str, catalog_codes: set) -> dict:
    """
    Splits comma/newline/semicolon-separated input and resolves each token
    to a catalog code.

    A token that is exactly a catalog code is taken as-is; otherwise it is
    matched case-insensitively against the catalog. Only tokens that match
    no catalog code are checked against the canonical code format.

    Returns:
      {
        "valid":         ["INT-1-A1-1030-001"],   # catalog codes, as stored
        "invalid":       ["not a code"],          # failed regex
        "not_in_catalog": ["INT-9-Z9-0000-999"]   # valid format but unknown course
      }
    """
    if not raw_str or not raw_str.strip():
        return {"valid": [], "invalid": [], "not_in_catalog": []}

    by_upper: dict[str, str] = {}
    for code in sorted(catalog_codes):
        by_upper.setdefault(code.upper(), code)

    tokens = re.split(r'[,\r\n;]+', raw_str)
    valid = []
    invalid = []
    not_in_catalog = []
    seen: set[str] = set()

    for token in tokens:
        token = token.strip()
        if not token:
            continue
        if token in catalog_codes:
            resolved = token
        else:
            resolved = by_upper.get(token.upper())

        if resolved is not None:
            if resolved not in seen:
                valid.append(resolved)
                seen.add(resolved)
            continue

        normalized = normalize_code(token)
        if normalized is None:
            if token not in seen:
                invalid.append(token)
                seen.add(token)
        elif normalized not in seen:
            not_in_catalog.append(normalized)
            seen.add(normalized)

    return {"valid": valid, "invalid": invalid, "not_in_catalog": not_in_catalog}
