"""
Content-policy substitution table for generated image prompts.

Scene descriptions written by the text model tend to reuse the script's
dramatic vocabulary verbatim, and image providers refuse a fair share of
those prompts. This table softens the narrow set of phrases that trigger
refusals. It is applied only to prompts that came from the text model.

Rules are applied in order, case-insensitively, on word boundaries.
Multi-word phrases come before the single words they contain.
"""

import re
from typing import List, Pattern, Sequence, Tuple

from scriptvision.core.logging_config import get_logger

logger = get_logger("planning.content_policy")


# (pattern, replacement) in application order
CONTENT_POLICY_RULES: List[Tuple[str, str]] = [
    # Family conflict
    (r"family conflicts?", "family conversation"),
    (r"family fights?", "family discussion"),
    (r"(?:dad|father) lying", "father speaking thoughtfully"),
    (r"(?:mom|mother) lying", "mother speaking thoughtfully"),
    (r"lying to (?:his|her|their) (?:family|kids|children|wife|husband)", "talking with loved ones"),

    # Betrayal
    (r"betrayal", "difficult revelation"),
    (r"betrayed", "disappointed"),
    (r"cheating", "secretive behaviour"),
    (r"(?:an )?affair", "a secret"),

    # Theft
    (r"robbery", "tense situation"),
    (r"theft", "missing belongings"),
    (r"stealing", "taking"),
    (r"stole", "took"),
    (r"steal", "take"),

    # Violence
    (r"fist ?fight", "heated moment"),
    (r"fighting", "disagreeing"),
    (r"fight", "disagreement"),
    (r"arguing", "talking intensely"),
    (r"argument", "serious conversation"),
    (r"punched", "confronted"),
    (r"violent", "intense"),
    (r"violence", "tension"),
    (r"murder(?:ed)?", "mystery"),
    (r"kill(?:ed|ing)?", "confront"),
    (r"(?:gun|knife|weapon)s?", "object"),
    (r"abuse[ds]?", "hardship"),
    (r"screaming", "speaking loudly"),
    (r"yelling", "speaking firmly"),
    (r"blood(?:y)?", "dramatic"),
]


def compile_rules(rules: Sequence[Tuple[str, str]]) -> List[Tuple[Pattern, str]]:
    """Compile (pattern, replacement) pairs into case-insensitive word-bounded regexes."""
    return [
        (re.compile(rf"\b{pattern}\b", re.IGNORECASE), replacement)
        for pattern, replacement in rules
    ]


_COMPILED_RULES = compile_rules(CONTENT_POLICY_RULES)


def sanitize_prompt(text: str, rules: Sequence[Tuple[str, str]] = None) -> str:
    """
    Neutralize provider-sensitive phrases in a prompt.

    Args:
        text: Prompt text produced by the text model
        rules: Optional replacement table; defaults to CONTENT_POLICY_RULES

    Returns:
        The prompt with every matching phrase replaced
    """
    if not text:
        return text

    compiled = _COMPILED_RULES if rules is None else compile_rules(rules)
    result = text
    replaced = 0
    for pattern, replacement in compiled:
        result, count = pattern.subn(replacement, result)
        replaced += count

    if replaced:
        logger.debug(f"Sanitized {replaced} phrase(s) in prompt")
    return result
