"""Query keyword extraction and content highlighting."""

from __future__ import annotations

import re

HIGHLIGHT_OPEN = "<mark>"
HIGHLIGHT_CLOSE = "</mark>"

_SPLIT_PATTERN = re.compile(r"[\s,.;:!?()\[\]{}<>\"'`/\\|，。；：！？、（）【】《》“”‘’]+")

STOP_WORDS = frozenset(
    {
        # English
        "a", "an", "and", "are", "as", "at", "be", "by", "do", "does", "for",
        "from", "how", "in", "is", "it", "of", "on", "or", "the", "this",
        "that", "to", "was", "what", "when", "where", "which", "who", "why",
        "with",
        # Chinese
        "的", "了", "是", "在", "和", "与", "或", "及", "等", "吗", "呢", "吧",
        "怎么", "如何", "什么", "哪些", "为什么", "是否", "可以", "一个",
        "这个", "那个", "我们", "你们", "他们",
    }
)


def extract_keywords(query: str) -> list[str]:
    """Return distinct query tokens of length >= 2 that are not stop words."""

    keywords: dict[str, None] = {}
    for token in _SPLIT_PATTERN.split(query):
        if len(token) < 2 or token.lower() in STOP_WORDS:
            continue
        keywords.setdefault(token, None)
    return list(keywords)


def highlight(content: str, keywords: list[str]) -> str:
    """Wrap case-insensitive keyword occurrences in highlight markers."""

    if not keywords or not content:
        return content
    # Longest first so overlapping keywords mark the widest span.
    ordered = sorted(keywords, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(word) for word in ordered), re.IGNORECASE)
    return pattern.sub(lambda m: f"{HIGHLIGHT_OPEN}{m.group(0)}{HIGHLIGHT_CLOSE}", content)
