"""Field normalisation applied before embedding and scoring.

Every normaliser returns ``None`` for missing or empty input so that
downstream feature functions can tell "missing" apart from "different".
"""

from __future__ import annotations

import re
from dataclasses import replace

from unidecode import unidecode

from entitylens.preparation.records import SourceRecord

# ---------------------------------------------------------------------------
# Suffix patterns to strip (order matters — match longest first)
# ---------------------------------------------------------------------------

_SUFFIX_PATTERN = re.compile(
    r"\b("
    r"limited|ltd|inc|incorporated|llc|l\.l\.c\.|plc|p\.l\.c\.|"
    r"corp|corporation|co|company|gmbh|ag|sa|sas|sarl|pty|bv|nv|"
    r"pvt|private"
    r")\.?\s*$",
    re.IGNORECASE,
)

_ADDRESS_ABBREVIATIONS: dict[str, str] = {
    "street": "st",
    "avenue": "ave",
    "road": "rd",
    "boulevard": "blvd",
    "drive": "dr",
    "lane": "ln",
    "court": "ct",
    "place": "pl",
    "square": "sq",
    "suite": "ste",
    "floor": "fl",
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
}

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[a-z]{2,}$")


def _clean_text(text: str) -> str:
    text = unidecode(text).lower()
    text = re.sub(r"[^a-z0-9\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_name(name: str | None) -> str | None:
    """Normalise an organisation name for matching.

    Steps:
      1. Transliterate Unicode to ASCII (e.g. ü → u).
      2. Lowercase.
      3. Strip trailing legal suffixes (Ltd, Inc, LLC, etc.), repeatedly.
      4. Remove non-alphanumeric characters (keep spaces).
      5. Collapse whitespace and strip leading/trailing spaces.
    """
    if not name:
        return None

    text = unidecode(name).lower().strip()
    # "Foo Holdings Co. Ltd." needs more than one pass
    while True:
        stripped = _SUFFIX_PATTERN.sub("", text).strip(" ,")
        if stripped == text:
            break
        text = stripped

    text = re.sub(r"[^a-z0-9\s]", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


def normalize_address(address: str | None) -> str | None:
    """Normalise a street address, abbreviating common street words."""
    if not address:
        return None
    tokens = _clean_text(address).split()
    text = " ".join(_ADDRESS_ABBREVIATIONS.get(t, t) for t in tokens)
    return text or None


def normalize_city(city: str | None) -> str | None:
    if not city:
        return None
    return _clean_text(city) or None


def normalize_postal_code(postal_code: str | None) -> str | None:
    """Uppercase and drop whitespace/punctuation (``sw1a 1aa`` → ``SW1A1AA``)."""
    if not postal_code:
        return None
    text = re.sub(r"[^A-Za-z0-9]", "", unidecode(postal_code)).upper()
    return text or None


def normalize_phone(phone: str | None) -> str | None:
    """Keep digits only; compare on the last 10 digits to ignore country codes."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 7:
        return None
    return digits[-10:]


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    text = email.strip().lower()
    if not _EMAIL_PATTERN.match(text):
        return None
    return text


def normalize_country(country: str | None) -> str | None:
    if not country:
        return None
    return re.sub(r"[^A-Z]", "", unidecode(country).upper()) or None


def normalize_record(record: SourceRecord) -> SourceRecord:
    """Return a copy of *record* with every matchable field normalised.

    Records whose name normalises to nothing keep the original lowercase
    name so that they still embed to something.
    """
    return replace(
        record,
        name=normalize_name(record.name) or record.name.strip().lower(),
        address=normalize_address(record.address),
        city=normalize_city(record.city),
        postal_code=normalize_postal_code(record.postal_code),
        country=normalize_country(record.country),
        phone=normalize_phone(record.phone),
        email=normalize_email(record.email),
    )


def record_text(record: SourceRecord) -> str:
    """Concatenate the fields that feed the embedding."""
    parts = [record.name, record.address, record.city, record.postal_code]
    return " | ".join(p for p in parts if p)
