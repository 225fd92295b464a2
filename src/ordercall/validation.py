import re
import unicodedata

from ordercall.tools import Product


def normalize(text: str) -> str:
    """Lowercase and strip accents so "Sí" and "si" compare equal."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def match_any_keyword(text: str, keywords: set[str] | frozenset[str]) -> bool:
    """Check if any keyword appears in text as a whole word (not substring)."""
    lower = normalize(text)
    return any(re.search(rf"\b{re.escape(normalize(kw))}\b", lower) for kw in keywords)


WORD_TO_NUMBER = {
    "un": 1, "uno": 1, "una": 1, "one": 1,
    "dos": 2, "two": 2,
    "tres": 3, "three": 3,
    "cuatro": 4, "four": 4,
    "cinco": 5, "five": 5,
    "seis": 6, "six": 6,
    "siete": 7, "seven": 7,
    "ocho": 8, "eight": 8,
    "nueve": 9, "nine": 9,
    "diez": 10, "ten": 10,
    "once": 11, "doce": 12, "docena": 12, "dozen": 12,
    "quince": 15, "veinte": 20, "twenty": 20,
    "treinta": 30, "cuarenta": 40, "cincuenta": 50, "cien": 100, "ciento": 100,
}


STOPWORDS = frozenset({
    "a", "al", "algo", "algun", "alguna", "alguno", "busco", "buscar", "buscando",
    "busque", "con", "de", "del", "el", "en", "es", "esta", "este", "hay", "la",
    "las", "lo", "los", "me", "mi", "necesito", "necesitamos", "para", "por",
    "porfavor", "favor", "que", "quiero", "quisiera", "queremos", "se", "sobre",
    "su", "tiene", "tienen", "tienes", "un", "una", "unas", "uno", "unos", "y",
    "informacion", "ver", "mostrar", "muestreme", "dame", "deme", "gustaria",
    "interesa", "me", "nos", "bueno", "hola", "pues", "ahora",
    "i", "need", "want", "looking", "for", "an", "the", "some", "search", "find",
    "do", "you", "have", "please",
})


_CODE_PATTERN = re.compile(r"\b([a-z]{2,4})[\s-]?(\d{3})\b")
_STRICT_CODE_PATTERN = re.compile(r"\b([a-z]{2,4})-?(\d{3})\b")


def extract_quantity(text: str, default: int = 1) -> int:
    """First quantity mentioned as digits or a number word."""
    lower = normalize(text)
    # Digits glued to letters belong to product codes, not quantities
    for match in re.finditer(r"(?<![a-z\d-])(\d{1,4})(?![\d])", lower):
        start = match.start()
        prefix = lower[max(0, start - 5):start]
        if re.search(r"[a-z]{2,4}[\s-]$", prefix) and re.search(r"^\d{3}$", match.group(1)):
            continue
        value = int(match.group(1))
        if value > 0:
            return value
    for tok in re.findall(r"[a-z]+", lower):
        if tok in WORD_TO_NUMBER:
            return WORD_TO_NUMBER[tok]
    return default


def extract_order_lines(text: str, catalog: list[Product] | None = None) -> list[tuple[str, int]]:
    """Pair each product code with the quantity spoken just before it.

    "dos LAP001 y cinco MON001" -> [("LAP001", 2), ("MON001", 5)]

    Codes may be spoken as "LAP001", "lap-001" or, with a catalog, "lap 001".
    With a catalog only known codes are kept; a repeated code counts once.
    """
    lower = normalize(text)
    pattern = _CODE_PATTERN if catalog else _STRICT_CODE_PATTERN
    known = {p.code.upper() for p in catalog} if catalog else None
    lines: list[tuple[str, int]] = []
    prev_end = 0
    for match in pattern.finditer(lower):
        code = f"{match.group(1)}{match.group(2)}".upper()
        segment = lower[prev_end:match.start()]
        prev_end = match.end()
        if known is not None and code not in known:
            continue
        if any(c == code for c, _ in lines):
            continue
        lines.append((code, extract_quantity(segment)))
    return lines


def match_catalog(text: str, catalog: list[Product]) -> list[Product]:
    """Products whose name or category shares a significant word with text."""
    words = set(re.findall(r"[a-z0-9]+", normalize(text)))
    matches = []
    for product in catalog:
        haystack = f"{product.name} {product.category}"
        product_words = {
            w for w in re.findall(r"[a-z0-9]+", normalize(haystack))
            if len(w) >= 4 and not w.isdigit()
        }
        # Plural "laptops" / "monitores" still hits "laptop" / "monitor"
        if any(w in words or f"{w}s" in words or f"{w}es" in words for w in product_words):
            matches.append(product)
    return matches


def extract_search_term(text: str, extra_stopwords: frozenset[str] = frozenset()) -> str:
    """Drop filler and trigger words, keep what the caller is looking for."""
    tokens = re.findall(r"[a-z0-9]+", normalize(text))
    kept = [
        t for t in tokens
        if t not in STOPWORDS and t not in extra_stopwords and t not in WORD_TO_NUMBER
    ]
    return " ".join(kept)
