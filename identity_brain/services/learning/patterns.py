import re
from collections import Counter

from pydantic import BaseModel, Field

from identity_brain.core.constants import MAX_KEYWORDS_PER_CONTENT, MEDIUM_CONTENT_WORDS, SHORT_CONTENT_WORDS
from identity_brain.models.identity import LengthBucket

# Ordered (tone, cue) pairs; punctuation cues match anywhere, word cues on word boundaries.
TONE_CUES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("enthusiastic", re.compile(r"!")),
    ("inquisitive", re.compile(r"\?")),
    ("polite", re.compile(r"\b(please|thank|appreciate)", re.IGNORECASE)),
    ("personal", re.compile(r"\bi (think|feel|believe)\b", re.IGNORECASE)),
    ("inclusive", re.compile(r"\b(we|our|together)\b", re.IGNORECASE)),
    ("nuanced", re.compile(r"\b(however|although|but)\b", re.IGNORECASE)),
    ("assertive", re.compile(r"\b(must|should|need to)\b", re.IGNORECASE)),
    ("tentative", re.compile(r"\b(maybe|perhaps|might)\b", re.IGNORECASE)),
)

KEYWORD_PATTERN = re.compile(r"\b[a-z]{5,}\b")

STOPWORDS = frozenset(
    {
        "about", "after", "again", "being", "before", "between", "could", "during",
        "every", "first", "found", "great", "have", "here", "just", "know", "like",
        "made", "make", "many", "more", "most", "much", "need", "never", "only",
        "other", "over", "people", "said", "same", "should", "some", "still",
        "such", "than", "that", "their", "them", "then", "there", "these", "they",
        "thing", "think", "this", "those", "time", "very", "want", "well", "were",
        "what", "when", "where", "which", "while", "will", "with", "would", "your",
    }
)


class ContentSignals(BaseModel):
    tones: list[str] = Field(default_factory=list)
    length: LengthBucket = "short"
    keywords: list[str] = Field(default_factory=list)


def length_bucket(content: str) -> LengthBucket:
    words = len(content.split())
    if words < SHORT_CONTENT_WORDS:
        return "short"
    if words < MEDIUM_CONTENT_WORDS:
        return "medium"
    return "long"


def detect_tones(content: str) -> list[str]:
    return [tone for tone, cue in TONE_CUES if cue.search(content)]


def extract_keywords(content: str, limit: int = MAX_KEYWORDS_PER_CONTENT) -> list[str]:
    """Most frequent non-stopwords of five or more letters; ties keep first-seen order."""
    words = [w for w in KEYWORD_PATTERN.findall(content.lower()) if w not in STOPWORDS]
    return [word for word, _ in Counter(words).most_common(limit)]


def extract_content_patterns(content: str) -> ContentSignals:
    return ContentSignals(
        tones=detect_tones(content),
        length=length_bucket(content),
        keywords=extract_keywords(content),
    )
