"""@mention extraction."""

import re

MENTION_PATTERN = re.compile(r"@([A-Za-z0-9_-]+)")


def parse_mentions(text: str) -> list[str]:
    """Return the distinct lower-cased handles mentioned in ``text``.

    Handles keep the order of their first appearance. ``@all`` comes back as
    the plain handle ``"all"``; expanding it is up to the caller.
    """
    if not text:
        return []

    seen: dict[str, None] = {}
    for match in MENTION_PATTERN.finditer(text):
        seen.setdefault(match.group(1).lower(), None)
    return list(seen)
