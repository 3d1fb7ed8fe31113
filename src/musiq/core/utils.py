import re
import unicodedata

_YEAR_RE = re.compile(r"\d{4}")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


def lower_lay_string(s: str) -> str:
    """
    Normalize a string and drop accents ("Beyoncé" -> "Beyonce").
    """
    normalized = unicodedata.normalize('NFKD', s)
    return ''.join(c for c in normalized if not unicodedata.combining(c))


def collapse(s: str) -> str:
    """
    Collapse runs of whitespace into a single space and trim both ends.
    """
    return re.sub(r'\s+', ' ', s).strip()


def prepare_input(input_str: str) -> str:
    """Search key used on both sides of catalog substring matching."""
    prepared_input = lower_lay_string(input_str)
    prepared_input = prepared_input.lower()
    prepared_input = collapse(prepared_input)
    return prepared_input


def escape_like(s: str) -> str:
    return s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def parse_year(raw: str | None) -> int | None:
    """First 4-digit run of a date-like value, e.g. '2019-05-01' -> 2019."""
    if not raw:
        return None
    m = _YEAR_RE.search(str(raw))
    return int(m.group(0)) if m else None


def parse_leading_int(raw: str | None) -> int | None:
    """'3/12' -> 3, '07' -> 7, 'A1' -> None."""
    if not raw:
        return None
    m = _LEADING_INT_RE.match(str(raw))
    return int(m.group(1)) if m else None


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def format_size(num_bytes: int) -> str:
    size = float(max(0, num_bytes))
    if size < 1024:
        return f"{int(size)} B"
    for unit in ("KB", "MB"):
        size /= 1024
        if size < 1024:
            return f"{size:.1f} {unit}"
    return f"{size / 1024:.1f} GB"
