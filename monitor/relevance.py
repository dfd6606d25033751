"""
Keyword rules deciding whether fetched text concerns the Thailand–Cambodia
conflict, plus tag extraction for ingested items.
"""

import re
from typing import List

THAILAND_TERMS = ["thailand", "thai", "ថៃ", "ប្រទេសថៃ", "រាជាណាចក្រថៃ"]
CAMBODIA_TERMS = ["cambodia", "cambodian", "khmer", "កម្ពុជា", "ព្រះរាជាណាចក្រកម្ពុជា"]

CONFLICT_TERMS = [
    "border", "dispute", "tension", "conflict", "diplomatic",
    "territory", "maritime", "fishing", "trade", "economic",
    "cooperation", "agreement", "embassy", "ambassador",
    "foreign minister", "preah vihear", "temple", "bilateral",
    "negotiation", "summit", "meeting", "discussion", "ceasefire",
    "talks", "mediation", "shelling", "military", "troops",
    # Khmer
    "ព្រំដែន", "ជម្លោះ", "វិវាទ", "កិច្ចការទូត", "ដែនដី",
    "កិច្ចសហប្រតិបត្តិការ", "កិច្ចព្រមព្រៀង", "ការចរចា",
    "កិច្ចប្រជុំ", "ពិភាក្សា", "យោធា", "កងទ័ព",
]

# Social posts are short; a single location or topic word is enough.
SOCIAL_TERMS = [
    "border", "dispute", "territory", "conflict", "tension",
    "diplomatic", "embassy", "ambassador", "foreign minister",
    "trade", "economic", "cooperation", "agreement",
    "preah vihear", "temple", "maritime", "fishing",
    "cambodia", "thailand", "thai", "khmer", "siem reap",
    "aranyaprathet", "poipet", "border crossing",
]

_KEYWORD_PATTERNS = [
    re.compile(r"\b(thailand|thai|cambodia|cambodian|khmer)\b"),
    re.compile(r"\b(border|dispute|tension|conflict|diplomatic)\b"),
    re.compile(r"\b(territory|maritime|fishing|trade|economic)\b"),
    re.compile(r"\b(cooperation|agreement|embassy|ambassador)\b"),
    re.compile(r"\b(foreign minister|bilateral|negotiation|summit)\b"),
    re.compile(r"(កម្ពុជា|ថៃ|ប្រទេសថៃ|ព្រះរាជាណាចក្រកម្ពុជា|រាជាណាចក្រថៃ)"),
    re.compile(r"(ព្រំដែន|ជម្លោះ|វិវាទ|កិច្ចការទូត)"),
    re.compile(r"(ដែនដី|កិច្ចសហប្រតិបត្តិការ|កិច្ចព្រមព្រៀង)"),
    re.compile(r"(ការចរចា|កិច្ចប្រជុំ|ពិភាក្សា|យោធា|កងទ័ព)"),
]

MAX_KEYWORDS = 15


def _contains_any(text: str, terms: List[str]) -> bool:
    return any(term in text for term in terms)


def is_conflict_related(content: str, title: str = "") -> bool:
    """News rule: both countries, or one country plus a conflict term."""
    text = f"{title} {content}".lower()

    has_thailand = _contains_any(text, THAILAND_TERMS)
    has_cambodia = _contains_any(text, CAMBODIA_TERMS)
    if has_thailand and has_cambodia:
        return True
    if not (has_thailand or has_cambodia):
        return False
    return _contains_any(text, CONFLICT_TERMS)


def is_social_post_related(content: str) -> bool:
    return _contains_any(content.lower(), SOCIAL_TERMS)


def extract_keywords(content: str) -> List[str]:
    """Distinct matched keywords in first-seen order, at most MAX_KEYWORDS."""
    text = content.lower()
    keywords: List[str] = []
    for pattern in _KEYWORD_PATTERNS:
        for match in pattern.findall(text):
            if match not in keywords:
                keywords.append(match)
    return keywords[:MAX_KEYWORDS]
