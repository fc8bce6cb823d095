"""Message type pattern matching.

``*`` expands to ``.*`` and the whole type must match. The expansion is not
segment-aware: ``client.*`` matches ``client.created`` and also
``client.created.extra``.
"""

import re
from functools import lru_cache
from typing import Pattern

WILDCARD = "*"


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Pattern[str]:
    return re.compile(re.escape(pattern).replace(r"\*", ".*"))


def match_type(pattern: str, message_type: str) -> bool:
    """Return True if ``message_type`` is matched by ``pattern``."""
    if pattern == WILDCARD or pattern == message_type:
        return True
    return compile_pattern(pattern).fullmatch(message_type) is not None
