from typing import Optional, Tuple


# =============================================================================
# INDUSTRY VOCABULARY
# =============================================================================
# Closed list of labels the classifier may assign. Any label returned by the
# text generation service that is not listed here is dropped.
# =============================================================================

INDUSTRY_VOCABULARY: Tuple[str, ...] = (
    "Semiconductors",
    "IT Hardware",
    "IT Software",
    "Internet/Gaming",
    "Telecom Services",
    "Automobiles",
    "Consumer Durables/Apparel",
    "Retail/Distribution",
    "Media/Entertainment",
    "Hotels/Leisure",
    "Consumer Staples",
    "Food & Beverage",
    "Machinery",
    "Shipbuilding",
    "Transportation",
    "Construction",
    "Trading/Capital Goods",
    "Pharma/Biotech",
    "Healthcare",
    "Banks",
    "Securities",
    "Insurance",
    "Chemicals",
    "Oil Refining",
    "Steel/Metals",
    "Energy",
    "Utilities",
)

_VOCABULARY_BY_FOLDED = {label.casefold(): label for label in INDUSTRY_VOCABULARY}


def canonical_industry(label: str) -> Optional[str]:
    """
    Map a label to its vocabulary spelling.

    Matching ignores case and surrounding whitespace only; anything else is
    treated as out of vocabulary.

    Returns:
        The canonical label, or None if the label is not in the vocabulary
    """
    if not isinstance(label, str):
        return None
    return _VOCABULARY_BY_FOLDED.get(label.strip().casefold())
