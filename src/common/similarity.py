"""
Company-name similarity scoring.

combined = 0.4 * jaro_winkler + 0.3 * levenshtein + 0.2 * phonetic
           (+0.1 when the aggressively normalized names are identical, capped at 1)

The three signals are computed on the comparison form of each name
(lowercase, no accents, legal suffixes and punctuation removed) so that
"Acme SAS" and "ACME" compare as the same company.

Levenshtein and Jaro come from rapidfuzz. Soundex and the simplified double
metaphone are implemented here.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple, Union

from rapidfuzz.distance import Jaro, Levenshtein

from .normalization import aggressive_normalize, normalize_company_name, normalize_stage

JARO_WINKLER_PREFIX_SCALE = 0.1
JARO_WINKLER_MAX_PREFIX = 4

VOWELS = frozenset("AEIOU")

SOUNDEX_CODES = {
    **dict.fromkeys("BFPV", "1"),
    **dict.fromkeys("CGJKQSXZ", "2"),
    **dict.fromkeys("DT", "3"),
    "L": "4",
    **dict.fromkeys("MN", "5"),
    "R": "6",
}


@dataclass(frozen=True)
class SimilarityDetails:
    levenshtein: float
    jaro_winkler: float
    phonetic: float
    normalized_match: bool
    combined: float


def comparison_form(name: str) -> str:
    """Lowercase, accent-free, suffix-free form the signals are computed on."""
    form = normalize_company_name(name).replace("-", " ")
    return form or (name or "").lower().strip()


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / max_len, case-insensitive. Two empty strings score 1."""
    return Levenshtein.normalized_similarity(a.lower(), b.lower())


def jaro_winkler_similarity(a: str, b: str, prefix_scale: float = JARO_WINKLER_PREFIX_SCALE) -> float:
    """Jaro similarity boosted by the common prefix (up to 4 chars).

    The prefix boost applies at every Jaro score, not only above 0.7.
    """
    s1, s2 = a.lower(), b.lower()
    jaro = Jaro.similarity(s1, s2)
    if jaro == 1.0:
        return 1.0

    prefix = 0
    for c1, c2 in zip(s1[:JARO_WINKLER_MAX_PREFIX], s2[:JARO_WINKLER_MAX_PREFIX]):
        if c1 != c2:
            break
        prefix += 1

    return jaro + prefix * prefix_scale * (1 - jaro)


def soundex(text: str) -> str:
    """Classic 4-character Soundex code. Empty input gives '0000'."""
    s = "".join(ch for ch in text.upper() if "A" <= ch <= "Z")
    if not s:
        return "0000"

    result = s[0]
    prev_code = SOUNDEX_CODES.get(s[0], "")
    for ch in s[1:]:
        if len(result) >= 4:
            break
        code = SOUNDEX_CODES.get(ch, "")
        if code and code != prev_code:
            result += code
        prev_code = code

    return (result + "0000")[:4]


def double_metaphone(text: str) -> Tuple[str, str]:
    """Simplified double metaphone. Returns (primary, alternate), max 4 chars each."""
    s = "".join(ch for ch in text.upper() if "A" <= ch <= "Z")
    if not s:
        return "", ""

    primary = ""
    alternate = ""
    i = 0

    # Silent initial letters
    if s[:2] in ("GN", "KN", "PN", "WR", "PS"):
        i = 1

    if s[0] == "X":
        primary += "S"
        alternate += "S"
        i = 1

    def at(idx: int) -> str:
        return s[idx] if 0 <= idx < len(s) else ""

    while i < len(s) and (len(primary) < 4 or len(alternate) < 4):
        c = s[i]
        nxt = at(i + 1)
        prev = at(i - 1)

        if c in VOWELS:
            if i == 0:
                primary += "A"
                alternate += "A"
            i += 1
        elif c == "B":
            primary += "P"
            alternate += "P"
            i += 2 if nxt == "B" else 1
        elif c == "C":
            if nxt == "H":
                primary += "X"
                alternate += "X"
                i += 2
            elif nxt in ("I", "E", "Y"):
                primary += "S"
                alternate += "S"
                i += 1
            else:
                primary += "K"
                alternate += "K"
                i += 2 if nxt == "C" else 1
        elif c == "D":
            if nxt == "G" and at(i + 2) in ("I", "E", "Y"):
                primary += "J"
                alternate += "J"
                i += 3
            else:
                primary += "T"
                alternate += "T"
                i += 2 if nxt == "D" else 1
        elif c == "G":
            if nxt == "H":
                if i > 0 and prev not in VOWELS:
                    i += 2
                else:
                    primary += "K"
                    alternate += "K"
                    i += 2
            elif nxt == "N":
                primary += "N"
                alternate += "KN"
                i += 2
            elif nxt in ("I", "E", "Y"):
                primary += "J"
                alternate += "K"
                i += 1
            else:
                primary += "K"
                alternate += "K"
                i += 2 if nxt == "G" else 1
        elif c == "H":
            if nxt in VOWELS and prev not in VOWELS:
                primary += "H"
                alternate += "H"
            i += 1
        elif c == "P":
            if nxt == "H":
                primary += "F"
                alternate += "F"
                i += 2
            else:
                primary += "P"
                alternate += "P"
                i += 2 if nxt == "P" else 1
        elif c == "Q":
            primary += "K"
            alternate += "K"
            i += 2 if nxt == "Q" else 1
        elif c == "S":
            if nxt == "H":
                primary += "X"
                alternate += "X"
                i += 2
            elif nxt in ("I", "E", "Y") and at(i + 2) == "O":
                primary += "X"
                alternate += "S"
                i += 3
            else:
                primary += "S"
                alternate += "S"
                i += 2 if nxt == "S" else 1
        elif c == "T":
            if nxt == "H":
                primary += "0"  # theta
                alternate += "T"
                i += 2
            elif nxt == "I" and at(i + 2) in ("O", "A"):
                primary += "X"
                alternate += "X"
                i += 3
            else:
                primary += "T"
                alternate += "T"
                i += 2 if nxt == "T" else 1
        elif c == "V":
            primary += "F"
            alternate += "F"
            i += 2 if nxt == "V" else 1
        elif c in ("W", "Y"):
            if nxt in VOWELS:
                primary += c
                alternate += c
            i += 1
        elif c == "X":
            primary += "KS"
            alternate += "KS"
            i += 2 if nxt == "X" else 1
        elif c == "Z":
            primary += "S"
            alternate += "S"
            i += 2 if nxt == "Z" else 1
        else:
            # F, J, K, L, M, N, R map to themselves; doubled letters collapse
            primary += c
            alternate += c
            i += 2 if nxt == c else 1

    return primary[:4], alternate[:4]


def phonetic_similarity(a: str, b: str) -> float:
    """0.3 * soundex match + 0.7 * metaphone match score."""
    soundex_match = 1.0 if soundex(a) == soundex(b) else 0.0

    primary1, alt1 = double_metaphone(a)
    primary2, alt2 = double_metaphone(b)

    if primary1 == primary2:
        metaphone_score = 1.0
    elif primary1 == alt2 or alt1 == primary2:
        metaphone_score = 0.8
    elif alt1 == alt2 and alt1 != "":
        metaphone_score = 0.6
    else:
        metaphone_score = 0.0

    return soundex_match * 0.3 + metaphone_score * 0.7


def combined_similarity(a: str, b: str) -> SimilarityDetails:
    """Weighted similarity between two company names, in [0, 1]."""
    form_a = comparison_form(a)
    form_b = comparison_form(b)

    levenshtein = levenshtein_similarity(form_a, form_b)
    jaro_winkler = jaro_winkler_similarity(form_a, form_b)
    phonetic = phonetic_similarity(form_a, form_b)

    norm_a = aggressive_normalize(a)
    norm_b = aggressive_normalize(b)
    normalized_match = bool(norm_a) and norm_a == norm_b

    combined = jaro_winkler * 0.4 + levenshtein * 0.3 + phonetic * 0.2
    if normalized_match:
        combined = min(1.0, combined + 0.1)

    return SimilarityDetails(
        levenshtein=levenshtein,
        jaro_winkler=jaro_winkler,
        phonetic=phonetic,
        normalized_match=normalized_match,
        combined=combined,
    )


def string_similarity(a: str, b: str) -> float:
    return combined_similarity(a, b).combined


Amount = Union[Decimal, int, float, None]


def are_funding_rounds_similar(
    amount1: Amount,
    date1: Optional[date],
    stage1: Optional[str],
    amount2: Amount,
    date2: Optional[date],
    stage2: Optional[str],
    amount_tolerance: float = 0.10,
    days_tolerance: int = 7,
) -> bool:
    """
    Check whether two rounds could describe the same event.

    Each known dimension must agree: amounts within `amount_tolerance`
    (relative to the larger), dates within `days_tolerance` days, and
    normalized stages equal. Unknown dimensions are not held against a match.
    """
    if amount1 is not None and amount2 is not None:
        larger = max(Decimal(str(amount1)), Decimal(str(amount2)))
        smaller = min(Decimal(str(amount1)), Decimal(str(amount2)))
        if larger > 0 and (larger - smaller) / larger > Decimal(str(amount_tolerance)):
            return False

    if date1 is not None and date2 is not None:
        if abs((date1 - date2).days) > days_tolerance:
            return False

    if stage1 and stage2:
        if normalize_stage(stage1) != normalize_stage(stage2):
            return False

    return True
