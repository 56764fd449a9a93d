"""Identifier parsing and relationship algebra for SwipeTree.

A person's place in the tree is encoded entirely in their numeric ID. With a
digit width of 6, ``100000`` is a root-generation person, ``140000`` is their
fourth child, ``141000`` the first child of ``140000`` and so on. The number
of trailing zeros tells which decimal place is "this generation's slot".
A ``.1`` suffix marks the spouse of the base ID.
"""

from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from config import MAX_CANDIDATES


class MalformedIdError(ValueError):
    """Raised when an identifier cannot be parsed."""


class IdOverflowError(ValueError):
    """Raised when formatting would drop significant digits."""


@dataclass(frozen=True)
class ParsedId:
    """A parsed identifier."""
    base_id: str
    is_spouse: bool = False
    partner_hint: str | None = None

    @property
    def width(self) -> int:
        return len(self.base_id)

    @property
    def number(self) -> int:
        return int(self.base_id)


# ============================================================================
# Codec
# ============================================================================

def parse_id(raw: str, width: int | None = None) -> ParsedId:
    """
    Parse an identifier such as ``140000``, ``140000.1`` or ``140000.1.2``.

    The first suffix segment marks a spouse when it equals ``"1"``; the second
    segment is kept as ``partner_hint`` and is not used by any derivation.
    If ``width`` is given, the base ID must have exactly that many digits.
    """
    if raw is None or not raw.strip():
        raise MalformedIdError("Identifier is empty")

    parts = raw.strip().split(".")
    base_id = parts[0]
    if not base_id or not (base_id.isascii() and base_id.isdigit()):
        raise MalformedIdError(f"Base id must be decimal digits: '{raw}'")
    if width is not None and len(base_id) != width:
        raise MalformedIdError(f"Base id '{base_id}' is not {width} digits wide")

    is_spouse = len(parts) > 1 and parts[1] == "1"
    partner_hint = parts[2] if len(parts) > 2 and parts[2] else None
    return ParsedId(base_id=base_id, is_spouse=is_spouse, partner_hint=partner_hint)


def format_id(n: int, width: int) -> str:
    """Zero-pad ``n`` to exactly ``width`` digits."""
    if n < 0:
        raise IdOverflowError(f"Cannot format negative id {n}")
    digits = str(n)
    if len(digits) > width:
        raise IdOverflowError(f"{n} does not fit in {width} digits")
    return digits.zfill(width)


def trailing_zero_count(digits: str) -> int:
    """Count trailing '0' characters. An all-zero string yields its length."""
    count = 0
    for ch in reversed(digits):
        if ch != "0":
            break
        count += 1
    return count


# ============================================================================
# Relationship algebra
# ============================================================================

def parent_of(n: int, width: int, tz: int) -> str | None:
    """Parent ID, or None when ``n`` is already at the top level."""
    if tz >= width:
        return None
    step = 10 ** tz
    return format_id(n - (n % (step * 10)), width)


def children_of(n: int, width: int, tz: int, max_candidates: int = MAX_CANDIDATES) -> list[str]:
    """Candidate child IDs, first slot first. Not filtered for existence."""
    child_step = 10 ** max(0, tz - 1)
    floor = n - (n % (child_step * 10))
    return [format_id(floor + k * child_step, width) for k in range(1, max_candidates + 1)]


def siblings_of(n: int, width: int, tz: int, max_candidates: int = MAX_CANDIDATES) -> list[str]:
    """Candidate sibling IDs in slot order, with ``n`` itself left out."""
    # The all-zero root has no slot of its own
    if tz >= width:
        return []
    sib_step = 10 ** tz
    floor = n - (n % (sib_step * 10))
    return [
        format_id(floor + k * sib_step, width)
        for k in range(1, max_candidates + 1)
        if floor + k * sib_step != n
    ]


def spouses_of(base_id: str) -> list[str]:
    """Only the canonical first spouse slot is ever proposed."""
    return [f"{base_id}.1"]


# ============================================================================
# String-level helpers
# ============================================================================

def _split(raw: str, width: int | None) -> tuple[ParsedId, int, int, int]:
    parsed = parse_id(raw, width)
    return parsed, parsed.number, parsed.width, trailing_zero_count(parsed.base_id)


def parent_id(raw: str, width: int | None = None) -> str | None:
    """Parent of any identifier; spouse suffixes are ignored."""
    _, n, w, tz = _split(raw, width)
    return parent_of(n, w, tz)


def children_ids(raw: str, width: int | None = None, max_candidates: int = MAX_CANDIDATES) -> list[str]:
    _, n, w, tz = _split(raw, width)
    return children_of(n, w, tz, max_candidates)


def sibling_ids(raw: str, width: int | None = None, max_candidates: int = MAX_CANDIDATES) -> list[str]:
    _, n, w, tz = _split(raw, width)
    return siblings_of(n, w, tz, max_candidates)


def spouse_ids(raw: str, width: int | None = None) -> list[str]:
    parsed = parse_id(raw, width)
    return spouses_of(parsed.base_id)


def spouse_toggle(raw: str, width: int | None = None) -> str:
    """The other half of a couple: ``140000`` <-> ``140000.1``."""
    parsed = parse_id(raw, width)
    if parsed.is_spouse:
        return parsed.base_id
    return spouses_of(parsed.base_id)[0]


# ============================================================================
# URL helpers
# ============================================================================

def start_id_from_url(url: str) -> str | None:
    """
    Read a start id from ``#id=100000`` or ``?id=100000``.

    The fragment wins when it carries a key=value pair; otherwise the query
    string is used. Returns the trimmed id, or None if missing or blank.
    """
    if not url:
        return None
    parts = urlsplit(url)
    source = parts.fragment if "=" in parts.fragment else parts.query
    values = parse_qs(source).get("id")
    if not values:
        return None
    value = values[0].strip()
    return value or None


def anchor_fragment(raw: str) -> str:
    """Location fragment reflecting the current anchor."""
    return f"#id={raw}"
