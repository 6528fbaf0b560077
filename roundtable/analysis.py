"""Keyword-based question analysis: type, the two options, characteristics."""

import re
from dataclasses import dataclass, field

QUESTION_TYPES: dict[str, list[str]] = {
    "FINANCIAL": ["$", "money", "salary", "investment", "cost", "price", "pay", "income", "equity",
                  "bitcoin", "rent", "buy", "afford", "budget", "loan", "debt"],
    "CAREER": ["job", "career", "work", "boss", "company", "startup", "promotion", "quit", "fired",
               "hiring", "offer", "resume", "interview"],
    "LIFESTYLE": ["move", "city", "house", "apartment", "location", "neighborhood", "commute", "live",
                  "relocate"],
    "RELATIONSHIP": ["relationship", "dating", "marry", "breakup", "divorce", "partner", "girlfriend",
                     "boyfriend", "husband", "wife", "spouse"],
    "EDUCATION": ["college", "university", "degree", "course", "learn", "study", "bootcamp",
                  "certification", "masters", "phd", "mba"],
    "BUSINESS": ["business", "founder", "b2b", "b2c", "product", "launch", "pivot", "market", "users",
                 "customers", "revenue"],
    "HEALTH": ["health", "diet", "exercise", "surgery", "medical", "doctor", "therapy", "workout",
               "weight", "mental health"],
    "PERSONAL_DEVELOPMENT": ["habit", "productivity", "goal", "self-improvement", "skill",
                             "time management", "focus", "motivation", "procrastination"],
    "TECHNOLOGY": ["software", "framework", "programming", "tech stack", "tool", "app", "platform", "code",
                   "database", "language", "react", "python", "javascript", "rust", "cloud"],
}

# Expert perspective a question type calls for, used when no agent covers it.
IMPLIED_ROLES: dict[str, tuple[str, list[str]]] = {
    "FINANCIAL": ("financial analyst", ["financ", "money", "invest", "econom", "account"]),
    "CAREER": ("career strategist", ["career", "recruit", "hiring", "coach"]),
    "LIFESTYLE": ("lifestyle advisor", ["lifestyle", "wellbeing", "urban", "living"]),
    "RELATIONSHIP": ("relationship counselor", ["relationship", "counsel", "therap", "empath"]),
    "EDUCATION": ("education strategist", ["educat", "teacher", "academ", "learning"]),
    "BUSINESS": ("business strategist", ["business", "strateg", "market", "founder", "entrepreneur"]),
    "HEALTH": ("health analyst", ["health", "medic", "doctor", "fitness", "nutrition"]),
    "PERSONAL_DEVELOPMENT": ("habit coach", ["habit", "coach", "productiv", "psycholog"]),
    "TECHNOLOGY": ("technical analyst", ["engineer", "developer", "technical", "software", "architect"]),
}

GUIDANCE: dict[str, str] = {
    "FINANCIAL": "Use concrete numbers (breakeven, ROI, annual returns), not vague growth claims.",
    "CAREER": "Consider life stage, savings and obligations; focus on the 5-year trajectory.",
    "RELATIONSHIP": "Stay empathetic and non-judgmental; separate fixable issues from deal-breakers.",
    "EDUCATION": "Weigh career ROI, skill development and market demand.",
    "BUSINESS": "Focus on market dynamics, unit economics, defensibility and execution risk.",
    "HEALTH": "Weigh risks against benefits and cite the kind of evidence that matters.",
    "PERSONAL_DEVELOPMENT": "Favor practical, behavior-level steps over motivation talk.",
    "TECHNOLOGY": "Cover ecosystem maturity, learning curve and job market; be specific.",
    "LIFESTYLE": "Tie the options to values and practical constraints (cost, commute, social life).",
}
_GENERAL_GUIDANCE = "Keep the debate on the core tradeoffs and end with specific decision criteria."

DISCLAIMERS: dict[str, str] = {
    "HEALTH": "This is not medical advice. Consult a healthcare professional.",
    "RELATIONSHIP": "For serious relationship concerns, consider talking to a professional counselor.",
}

_OPTION_PATTERNS = [
    re.compile(r"(.+?)\s+or\s+(.+?)(?:\?|$)", re.IGNORECASE),
    re.compile(r"(.+?)\s+vs\.?\s+(.+?)(?:\?|$)", re.IGNORECASE),
]
_OPTION_PREFIX = re.compile(
    r"^(should i|do i|is it better to|can i|what if i|would it be better to)\b", re.IGNORECASE
)
_MAX_OPTION_LEN = 100


@dataclass
class Characteristics:
    has_numbers: bool = False
    is_urgent: bool = False
    is_long_term: bool = False
    has_emotional_words: bool = False
    mentions_family: bool = False


@dataclass
class QuestionAnalysis:
    type: str
    subtype: str | None
    options: list[str]
    characteristics: Characteristics = field(default_factory=Characteristics)

    @property
    def guidance(self) -> str:
        return GUIDANCE.get(self.type, _GENERAL_GUIDANCE)

    @property
    def disclaimer(self) -> str | None:
        return DISCLAIMERS.get(self.type)


def _keyword_hits(text: str, keywords: list[str]) -> int:
    return sum(1 for kw in keywords if kw in text)


def detect_types(topic: str) -> list[str]:
    """Return matching question types, best match first."""
    lower = topic.lower()
    scored = [(name, _keyword_hits(lower, keywords)) for name, keywords in QUESTION_TYPES.items()]
    # sorted() is stable, so ties keep declaration order
    return [name for name, score in sorted(scored, key=lambda s: -s[1]) if score > 0]


def _clean_option(text: str) -> str:
    return _OPTION_PREFIX.sub("", text.strip()).strip().rstrip("?").strip()


def extract_options(topic: str) -> list[str]:
    """Pull the two sides out of an "X or Y" / "X vs Y" question."""
    for pattern in _OPTION_PATTERNS:
        match = pattern.search(topic.strip())
        if not match:
            continue
        first, second = match.group(1), match.group(2)
        if len(first) < _MAX_OPTION_LEN and len(second) < _MAX_OPTION_LEN:
            options = [_clean_option(first), _clean_option(second)]
            if all(options):
                return options
    return []


def detect_characteristics(topic: str) -> Characteristics:
    lower = topic.lower()
    return Characteristics(
        has_numbers=bool(re.search(r"\d", lower)),
        is_urgent=any(w in lower for w in ("now", "immediately", "today", "urgent", "asap", "soon")),
        is_long_term=any(w in lower for w in ("future", "years", "decades", "forever", "lifetime",
                                              "long run", "retirement")),
        has_emotional_words=any(w in lower for w in ("love", "hate", "scared", "excited", "worried",
                                                     "fear", "anxious", "happy", "sad")),
        mentions_family=any(w in lower for w in ("family", "kids", "children", "spouse", "wife",
                                                 "husband", "parents", "mom", "dad")),
    )


def analyze_question(topic: str) -> QuestionAnalysis:
    types = detect_types(topic)
    return QuestionAnalysis(
        type=types[0] if types else "GENERAL",
        subtype=types[1] if len(types) > 1 else None,
        options=extract_options(topic),
        characteristics=detect_characteristics(topic),
    )
