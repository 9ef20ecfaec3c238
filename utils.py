"""
Utility functions for the LinkTech application.
"""

import re
from typing import Optional


EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def is_valid_email(value: Optional[str]) -> bool:
    """Loose syntactic email check; deliverability is the mail provider's job."""
    if not value:
        return False
    return bool(EMAIL_PATTERN.match(value.strip()))


def clean_text(value) -> str:
    """Strip a user-supplied value, treating None and non-strings as empty."""
    if value is None:
        return ''
    return str(value).strip()


def mask_name(name: Optional[str], mask_char: str = '*') -> str:
    """
    Partially mask a person's name.

    Keeps the first and last character of every word and redacts the rest,
    so "Noor Alharbi" becomes "N**r A*****i". Words of one or two characters
    are kept as their first character followed by a mask.

    Args:
        name: Full display name
        mask_char: Replacement character

    Returns:
        Masked name, or empty string for empty input
    """
    words = clean_text(name).split()
    masked = []
    for word in words:
        if len(word) <= 2:
            masked.append(word[0] + mask_char)
        else:
            masked.append(word[0] + mask_char * (len(word) - 2) + word[-1])
    return ' '.join(masked)
