"""
Helper utility functions for text normalization.
"""

import html
import re

_TAG_RE = re.compile(r'<[^>]+>')
_SCRIPT_RE = re.compile(r'<(script|style)\b[^>]*>.*?</\1>', re.IGNORECASE | re.DOTALL)
_WS_RE = re.compile(r'\s+')


def strip_html_tags(text: str) -> str:
    """Remove HTML tags (and script/style bodies) and decode entities."""
    if not text:
        return ""
    clean = _SCRIPT_RE.sub(' ', text)
    clean = _TAG_RE.sub(' ', clean)
    # Decode &nbsp; &amp; &#39; etc.
    clean = html.unescape(clean).replace('\xa0', ' ')
    return collapse_whitespace(clean)


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    if not text:
        return ""
    return _WS_RE.sub(' ', text).strip()


def remove_phrases(text: str, phrases) -> str:
    """Case-insensitively remove each phrase, then tidy whitespace."""
    if not text:
        return ""
    for phrase in phrases:
        text = re.sub(re.escape(phrase), ' ', text, flags=re.IGNORECASE)
    return collapse_whitespace(text)


def contains_any(text: str, keywords) -> bool:
    """Whole-word/phrase match of any keyword in lower-cased text."""
    return any(keyword_in(text, kw) for kw in keywords)


def keyword_in(text: str, keyword: str) -> bool:
    """True if `keyword` appears in `text` on word boundaries (case-insensitive)."""
    return re.search(rf'(?<![a-z0-9]){re.escape(keyword.lower())}(?![a-z0-9])', text.lower()) is not None


def truncate_text(text: str, max_len: int = 40) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."
