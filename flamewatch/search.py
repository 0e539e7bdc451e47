"""
Search patterns for frame names.

A pattern is either a literal substring or a regular expression. Matching is
evaluated on demand against each frame name; nothing is cached per frame.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from flamewatch.errors import InvalidPattern
from flamewatch.flame import FrameTree, StackPath


def literal_match(needle: str, haystack: str, case_sensitive: bool = True) -> bool:
    if case_sensitive:
        return needle in haystack
    return needle.casefold() in haystack.casefold()


@dataclass(frozen=True)
class SearchPattern:
    text: str
    is_regex: bool = False
    is_manual: bool = True
    case_sensitive: bool = True
    regex: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    @classmethod
    def compile(
        cls,
        text: str,
        is_regex: bool = False,
        is_manual: bool = True,
        case_sensitive: bool = True,
    ) -> "SearchPattern":
        """Raise InvalidPattern for an empty pattern or a regex that does not compile."""
        if not text:
            raise InvalidPattern(text, "empty pattern")
        regex = None
        if is_regex:
            flags = 0 if case_sensitive else re.IGNORECASE
            try:
                regex = re.compile(text, flags)
            except re.error as exc:
                raise InvalidPattern(text, str(exc)) from exc
        return cls(text, is_regex, is_manual, case_sensitive, regex)

    def matches(self, name: str) -> bool:
        if self.regex is not None:
            return self.regex.search(name) is not None
        return literal_match(self.text, name, self.case_sensitive)


@dataclass(frozen=True)
class SearchSummary:
    matched_samples: int
    total_samples: int

    @property
    def ratio(self) -> float:
        if not self.total_samples:
            return 0.0
        return self.matched_samples / self.total_samples


def search_summary(tree: FrameTree, pattern: SearchPattern, root: StackPath = ()) -> SearchSummary:
    """Samples under the topmost matching frames below ``root``; nested matches count once."""
    start = tree.resolve(root)
    if start is None:
        return SearchSummary(0, 0)
    matched = 0
    pending = start.child_list()
    while pending:
        node = pending.pop()
        if pattern.matches(node.name):
            matched += node.total
        else:
            pending.extend(node.child_list())
    return SearchSummary(matched, start.total)
