"""Text heuristics shared by the puzzle builders and the metrics synthesizer."""

from __future__ import annotations

import hashlib
import re
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from typing import Iterable

from friendle.bot.services.models import Attachment
from friendle.bot.services.models import Message
from friendle.bot.services.selection import RandomSource

BUCKET_MORNING = "Morning"
BUCKET_AFTERNOON = "Afternoon"
BUCKET_EVENING = "Evening"
BUCKET_NIGHT = "Night"

NOT_ACTIVE = "Not active"

# Minimum quote length once punctuation is stripped
MIN_NORMALIZED_QUOTE_LENGTH = 10

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp"})

STOP_WORDS = frozenset(
    {
        "the", "be", "to", "of", "and", "a", "in", "that", "have", "i", "it",
        "for", "not", "on", "with", "he", "as", "you", "do", "at", "this",
        "but", "his", "by", "from", "they", "we", "say", "her", "she", "or",
        "an", "will", "my", "one", "all", "would", "there", "their", "what",
        "so", "up", "out", "if", "about", "who", "get", "which", "go", "me",
        "when", "make", "can", "like", "time", "no", "just", "him", "know",
        "take", "people", "into", "year", "your", "good", "some", "could",
        "them", "see", "other", "than", "then", "now", "look", "only", "come",
        "its", "over", "think", "also", "back", "after", "use", "two", "how",
        "our", "work", "first", "well", "way", "even", "new", "want",
        "because", "any", "these", "give", "day", "most", "us", "lol", "yeah",
        "yay", "nah", "nahhh", "hello", "hi",
    }
)

_MENTION_TAG_RE = re.compile(r"<@!?\d+>")
_MENTION_WORD_RE = re.compile(r"@\w+")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^a-z0-9' ]+")
_DIGITS_RE = re.compile(r"^\d+$")

_URL_RE = re.compile(r"(https?://\S+|www\.\S+)", re.IGNORECASE)
_INVITE_RE = re.compile(
    r"\bdiscord\.gg/\S+|\bdiscord\.com/invite/\S+", re.IGNORECASE
)
_DOMAIN_RE = re.compile(
    r"\b(?:[a-z0-9-]+\.)+(?:com|net|org|io|gg|co|edu|gov|uk|ca|de|fr|jp|tv|me"
    r"|app|dev|ai|xyz|info|biz|ly|to|us|ru|br|in|au|nl|se|no|fi|dk|es|it|pt"
    r"|pl|cz|ch|be|at)\b",
    re.IGNORECASE,
)
_FILENAME_SPLIT_RE = re.compile(r"[._-]")
_KEYWORD_RE = re.compile(r"^[a-zA-Z]{2,}")

_YEAR = timedelta(days=365)


def anonymize_text(text: str) -> str:
    """Replace mentions with ``[mention]`` and collapse whitespace."""
    text = _MENTION_TAG_RE.sub("[mention]", text)
    text = _MENTION_WORD_RE.sub("[mention]", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def scramble_words(text: str, rng: RandomSource) -> str:
    """Fisher-Yates shuffle of the whitespace-separated words in ``text``."""
    words = text.split()
    for i in range(len(words) - 1, 0, -1):
        j = rng.randrange(i + 1)
        words[i], words[j] = words[j], words[i]
    return " ".join(words)


def normalize_quote_for_hash(text: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace.

    Letters, digits, whitespace and apostrophes survive; everything else is
    dropped. This is the form the quote hash is computed over.
    """
    lowered = anonymize_text(text).lower()
    kept = "".join(ch for ch in lowered if ch.isalnum() or ch.isspace() or ch == "'")
    return _WHITESPACE_RE.sub(" ", kept).strip()


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def contains_url_like(text: str | None) -> bool:
    """Detect URLs, Discord invites and bare domains."""
    if not text:
        return False
    if _URL_RE.search(text):
        return True
    if _INVITE_RE.search(text):
        return True
    return bool(_DOMAIN_RE.search(text))


def is_quote_candidate(message: Message, min_length: int) -> bool:
    """Long enough raw and normalized, with nothing URL-like in it."""
    content = message.content
    if not content or len(content) < min_length or contains_url_like(content):
        return False
    return len(normalize_quote_for_hash(content)) >= MIN_NORMALIZED_QUOTE_LENGTH


def bucket_for_hour(hour: int) -> str:
    if 5 <= hour < 12:
        return BUCKET_MORNING
    if 12 <= hour < 17:
        return BUCKET_AFTERNOON
    if 17 <= hour < 22:
        return BUCKET_EVENING
    return BUCKET_NIGHT


def utc_hour(moment: datetime) -> int:
    if moment.tzinfo is None:
        return moment.hour
    return moment.astimezone(UTC).hour


def bucket_time(moment: datetime) -> str:
    """Anonymize a timestamp into one of four UTC time-of-day buckets."""
    return bucket_for_hour(utc_hour(moment))


def account_age_range(created_at: datetime, now: datetime) -> str:
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    years = (now - created_at) / _YEAR
    if years < 1:
        return "Less than 1 year"
    if years < 2:
        return "1–2 years"
    if years < 4:
        return "2–4 years"
    return "4+ years"


def tokenize(content: str) -> list[str]:
    """Split message content into lower-cased word tokens."""
    if not content:
        return []
    return _NON_WORD_RE.sub(" ", content.lower()).split()


def top_non_common_word(messages: Iterable[Message]) -> str | None:
    """Most frequent content word across messages.

    Ties go to the word seen first.
    """
    freq: dict[str, int] = {}
    for message in messages:
        for word in tokenize(message.content):
            if _DIGITS_RE.match(word):
                continue
            if len(word) >= 15 and any(ch.isdigit() for ch in word):
                continue
            if word in STOP_WORDS or len(word) <= 2:
                continue
            freq[word] = freq.get(word, 0) + 1

    best_word = None
    best_count = 0
    for word, count in freq.items():
        if count > best_count:
            best_word, best_count = word, count
    return best_word


def is_image_attachment(attachment: Attachment) -> bool:
    if attachment.filename and "." in attachment.filename:
        extension = attachment.filename.rsplit(".", 1)[1].lower()
        if extension in IMAGE_EXTENSIONS:
            return True
    return bool(attachment.content_type and attachment.content_type.startswith("image"))


def first_image_attachment(message: Message) -> Attachment | None:
    for attachment in message.attachments:
        if is_image_attachment(attachment):
            return attachment
    return None


def has_image_attachment(message: Message) -> bool:
    return first_image_attachment(message) is not None


def filename_keywords(filename: str | None) -> list[str]:
    """Alphabetic keyword hints derived from an attachment's filename."""
    if not filename:
        return []
    return [
        part.lower()
        for part in _FILENAME_SPLIT_RE.split(filename)
        if part and _KEYWORD_RE.match(part)
    ]


def utc_date_label(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return moment.strftime("%Y-%m-%d")
