"""
Phone identifier helpers for the WhatsApp send API.
"""

import re

DEFAULT_CHAT_ID_SUFFIX = "@c.us"

_NON_DIGITS = re.compile(r"\D")


def normalize_chat_id(identifier: str, suffix: str = DEFAULT_CHAT_ID_SUFFIX) -> str:
    """
    Convert a stored phone number into a WhatsApp chat id.

    Numbers already carrying the suffix are returned untouched; anything
    else is reduced to its digits and suffixed, so the result is stable
    under repeated normalization.

    Args:
        identifier: Phone number as entered by a user, e.g. "+1 (555) 123-4567"
        suffix: Chat id suffix required by the channel

    Returns:
        Canonical chat id, e.g. "15551234567@c.us"
    """
    if identifier.endswith(suffix):
        return identifier
    return f"{_NON_DIGITS.sub('', identifier)}{suffix}"
