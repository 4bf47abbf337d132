"""
Category rule matching.

Rules arrive already filtered to the owner's active rules and sorted in
evaluation order; the first rule whose pattern matches the description wins.
"""

import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern

from models import CategoryRuleModel
from utils.logger import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Optional[Pattern]:
    """Compile a rule pattern case-insensitively, or None if it does not compile."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def is_valid_pattern(pattern: str) -> bool:
    return compile_pattern(pattern) is not None


def find_matching_rule(description: str, rules: Iterable[CategoryRuleModel]) -> Optional[CategoryRuleModel]:
    for rule in rules:
        compiled = compile_pattern(rule.pattern)
        if compiled is None:
            logger.warning(f"Skipping category rule #{rule.id}: pattern does not compile")
            continue
        if compiled.search(description):
            return rule
    return None


def match_category(description: str, rules: Iterable[CategoryRuleModel]) -> Optional[int]:
    """Return the category id of the first matching rule, or None."""
    rule = find_matching_rule(description, rules)
    return rule.category_id if rule is not None else None
