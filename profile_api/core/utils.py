import hashlib
import math
import re
import unicodedata

def normalize_address(addr: str) -> str:
    """
    Minimal normalization so cache keys are stable:
    - trim whitespace
    - lowercase
    - collapse multiple spaces
    """
    return " ".join(addr.strip().lower().split())

def fold_accents(text: str) -> str:
    """'Rue Barbès' -> 'Rue Barbes'."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))

# Street-type abbreviations found in the sales registry (upper-case, abbreviated)
# expanded to the spelled-out form used by the address database.
STREET_ABBREVIATIONS = {
    "all": "allee", "av": "avenue", "ave": "avenue", "bd": "boulevard",
    "bld": "boulevard", "ch": "chemin", "che": "chemin", "chem": "chemin",
    "crs": "cours", "fg": "faubourg", "imp": "impasse", "pl": "place",
    "pas": "passage", "qu": "quai", "r": "rue", "rte": "route",
    "sq": "square", "st": "saint", "ste": "sainte", "vla": "villa",
}

def street_token(name: str | None) -> str:
    """
    Comparison token for a street name: accents folded, lowercase,
    abbreviations expanded, everything but [a-z0-9] removed.

    "RUE AUGUSTE BLANQUI" and "Rue Auguste Blanqui" both give
    "rueaugusteblanqui"; "AV DE LA REPUBLIQUE" gives "avenuedelarepublique".
    """
    if not name:
        return ""
    words = re.split(r"[^a-z0-9]+", fold_accents(name).lower())
    return "".join(STREET_ABBREVIATIONS.get(w, w) for w in words if w)

def streets_match(record_token: str, query_token: str) -> bool:
    """
    Heuristic street equality: either token contains the other.
    There is no shared street identifier between the address database and
    the sales registry, so this is a best-effort join, not a guarantee.
    """
    if not query_token:
        return True
    if not record_token:
        return False
    return record_token in query_token or query_token in record_token

_HOUSE_NUMBER = re.compile(r"^\s*(\d+)(?:[.,]0+)?(?!\d)")

def parse_house_number(value) -> int | None:
    """
    Leading numeric part of a house number.
    Accepts 12, "12", "12.0" (registry exports), "12 bis", "12B".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 and float(value).is_integer() else None
    m = _HOUSE_NUMBER.match(str(value))
    if not m:
        return None
    number = int(m.group(1))
    return number or None

# Unit indicators that confuse address search ("Apt 4", "bât. B", "#12", "lot 3")
_UNIT_MARKERS = re.compile(
    r"\b(apt|appt|appartement|unit|suite|b[aâ]timent|b[aâ]t|escalier|esc|[ée]tage|lot)\b\.?\s*\w+",
    re.IGNORECASE,
)

def strip_unit_markers(addr: str) -> str:
    cleaned = _UNIT_MARKERS.sub("", addr)
    cleaned = re.sub(r"#\s*\w+", "", cleaned)
    cleaned = re.sub(r"\s+,", ",", cleaned)
    cleaned = re.sub(r",\s*,", ",", cleaned)
    cleaned = re.sub(r"\s{2,}", " ", cleaned)
    return cleaned.strip().strip(",").strip()

def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """Great-circle distance in meters, rounded."""
    r = 6371000.0
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return round_half_up(r * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a)))

def round_half_up(x: float) -> int:
    """0.5 goes up (5000.5 -> 5001), unlike round() which goes to even."""
    return int(math.floor(x + 0.5))

def weak_etag(payload_bytes: bytes) -> str:
    """Weak ETag for client-side conditional requests."""
    h = hashlib.sha256(payload_bytes).hexdigest()[:24]
    return f'W/"{h}"'
