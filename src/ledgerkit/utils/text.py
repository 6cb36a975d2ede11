"""Text normalization helpers shared by the normalizer, deduper and detectors."""

import re
import unicodedata

MOJIBAKE_REPLACEMENTS = [
    ("Ã¡", "á"),
    ("Ã ", "à"),
    ("Ã¢", "â"),
    ("Ã£", "ã"),
    ("Ã§", "ç"),
    ("Ã©", "é"),
    ("Ãª", "ê"),
    ("Ã­", "í"),
    ("Ã³", "ó"),
    ("Ã´", "ô"),
    ("Ãµ", "õ"),
    ("Ãº", "ú"),
    ("Ã‡", "Ç"),
    ("Ã‰", "É"),
    ("Ã“", "Ó"),
    ("Ãš", "Ú"),
    ("Ãƒ", "Ã"),
    ("Ã•", "Õ"),
    ("â€“", "-"),
    ("â€”", "-"),
    ("â€œ", '"'),
    ("â€\x9d", '"'),
    ("â€˜", "'"),
    ("â€™", "'"),
    ("Âº", "º"),
    ("Âª", "ª"),
    ("Â ", " "),
]

ENCODING_CANDIDATES = ("utf-8", "latin-1", "cp1252")

INSTALLMENT_PATTERNS = [
    re.compile(r"\b(?:PARCELA|PARCELADO|PARC|PCLA|PCL)\.?\s*(\d{1,3})\s*(?:DE|/)\s*(\d{1,3})\b"),
    re.compile(r"\b(\d{1,3})\s*/\s*(\d{1,3})\s*PARC\b"),
    re.compile(r"\bPARC\.?\s*(\d{1,3})\s*-\s*(\d{1,3})\b"),
    re.compile(r"\bINSTALL?MENT\s*(\d{1,3})\s*(?:OF|/)\s*(\d{1,3})\b"),
]

MERCHANT_NOISE_TOKENS = {
    "PIX",
    "PAGAMENTO",
    "PAGTO",
    "PGTO",
    "COMPRA",
    "COMPRAS",
    "DEBITO",
    "CREDITO",
    "TRANSFER",
    "TRANSFERENCIA",
    "TED",
    "DOC",
    "IOF",
    "PARC",
    "PARCELA",
    "ENVIADO",
    "RECEBIDO",
    "PURCHASE",
    "PAYMENT",
    "POS",
}

DESCRIPTION_KIND_PATTERN = re.compile(
    r"^(PIX ENVIADO|PIX RECEBIDO|TED ENVIADA|TED RECEBIDA|DOC ENVIADO|DOC RECEBIDO|"
    r"COMPRA CARTAO|COMPRA NO DEBITO|PAGAMENTO|TRANSFERENCIA|TRANSFER)\s*[:\-]?\s*(.*)$"
)


def strip_accents(value: str) -> str:
    """Remove diacritics, keeping the base characters."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_text(value: str | None) -> str:
    """Normalize free text for comparisons.

    Upper-cases, strips diacritics, replaces punctuation with spaces and
    collapses whitespace. ``None`` becomes an empty string.
    """
    if not value:
        return ""
    text = strip_accents(str(value)).upper()
    text = re.sub(r"[^A-Z0-9/\-.,:% ]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_key(value: str | None) -> str:
    """Normalize a column name or keyword to a compact lowercase key."""
    text = strip_accents(value or "").lower()
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def fix_mojibake(value: str) -> str:
    """Repair common UTF-8 text that was decoded as Latin-1."""
    if "Ã" not in value and "Â" not in value and "â€" not in value:
        return value
    for broken, fixed in MOJIBAKE_REPLACEMENTS:
        value = value.replace(broken, fixed)
    return value


def _decoding_penalty(text: str) -> int:
    replacement = text.count("\ufffd")
    artifacts = len(re.findall(r"[ÃÂâ]", text))
    controls = len(re.findall(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", text))
    return replacement * 40 + artifacts * 4 + controls * 2


def decode_statement(buffer: bytes) -> tuple[str, str]:
    """Decode a statement file, picking the least corrupted encoding.

    Args:
        buffer: Raw file bytes

    Returns:
        Tuple of (decoded text, encoding name)
    """
    if buffer.startswith(b"\xef\xbb\xbf"):
        buffer = buffer[3:]

    best_text = ""
    best_encoding = ENCODING_CANDIDATES[0]
    best_penalty = None
    for encoding in ENCODING_CANDIDATES:
        text = buffer.decode(encoding, errors="replace")
        penalty = _decoding_penalty(text)
        if best_penalty is None or penalty < best_penalty:
            best_text, best_encoding, best_penalty = text, encoding, penalty

    return fix_mojibake(best_text.lstrip("\ufeff")), best_encoding


def find_installment(value: str | None) -> tuple[int, int] | None:
    """Return (current, total) when the text carries an installment marker."""
    text = normalize_text(value)
    for pattern in INSTALLMENT_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        current, total = int(match.group(1)), int(match.group(2))
        if 1 <= current <= total <= 360:
            return current, total
    return None


def has_installment_marker(value: str | None) -> bool:
    """Check if a description looks like one installment of a split purchase."""
    return find_installment(value) is not None


def strip_installment_marker(value: str | None) -> str:
    """Remove installment markers from normalized text."""
    text = normalize_text(value)
    for pattern in INSTALLMENT_PATTERNS:
        text = pattern.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()


def split_description(value: str | None) -> tuple[str | None, str]:
    """Split composed bank descriptions such as ``PIX ENVIADO: JOAO``.

    Returns:
        Tuple of (movement kind or None, counterparty text)
    """
    text = normalize_text(value)
    match = DESCRIPTION_KIND_PATTERN.match(text)
    if match is None or not match.group(2).strip():
        return None, text
    return match.group(1), match.group(2).strip()


def build_merchant_key(description: str | None) -> str:
    """Build a grouping key for a merchant out of a raw description."""
    _, counterparty = split_description(description)
    text = strip_installment_marker(counterparty)
    tokens = [
        token
        for token in re.split(r"[\s/\-.,:%]+", text)
        if len(token) > 1 and token not in MERCHANT_NOISE_TOKENS and not token.isdigit()
    ]
    if not tokens:
        return "transacao"
    return " ".join(tokens[:6]).lower()


def token_set(value: str | None) -> set[str]:
    """Tokens of three or more characters, used for description similarity."""
    return {token for token in normalize_text(value).split(" ") if len(token) >= 3}
