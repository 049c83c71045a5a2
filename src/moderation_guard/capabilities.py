"""Optional collaborators injected into the moderation guard.

The guard only talks to these through small protocols, so the host
application can supply its own user store or swap the profanity and phone
libraries for fakes in tests. The null implementations disable their signal
without changing any other behaviour.
"""

from __future__ import annotations
import os
import logging
from typing import Any, Dict, Iterable, Optional, Protocol

import phonenumbers
from better_profanity import Profanity

logger = logging.getLogger(__name__)


class ProfanityDictionary(Protocol):
    def is_profane(self, text: str) -> bool: ...


class PhoneValidity(Protocol):
    def is_valid(self, candidate: str, region: str) -> bool: ...


class UserRecordLookup(Protocol):
    async def by_id(self, user_id: str) -> Optional[Any]:
        """Returns a record carrying `created_at`, or None if unknown."""
        ...


class NullProfanityDictionary:
    """A dictionary that never flags anything."""

    def is_profane(self, text: str) -> bool:
        return False


class NullPhoneValidity:
    """A validator that accepts no number, so no validated-phone bonus applies."""

    def is_valid(self, candidate: str, region: str) -> bool:
        return False


class BetterProfanityDictionary:
    """Profanity dictionary backed by the `better_profanity` word list.

    Each instance owns its own `Profanity` filter, so extra words added here
    never leak into the library's module-level `profanity` object.
    """

    def __init__(self, extra_words: Optional[Iterable[str]] = None):
        self._profanity = Profanity()
        self._profanity.load_censor_words()
        if extra_words:
            self._profanity.add_censor_words(list(extra_words))

    def is_profane(self, text: str) -> bool:
        return self._profanity.contains_profanity(text)


class PhoneNumbersValidity:
    """Region-aware phone validation backed by `phonenumbers`."""

    def is_valid(self, candidate: str, region: str) -> bool:
        try:
            parsed = phonenumbers.parse(candidate, region)
        except phonenumbers.NumberParseException:
            return False
        return phonenumbers.is_valid_number(parsed)


def load_default_capabilities() -> Dict[str, Any]:
    """Builds the library-backed capabilities, honouring the disable flags.

    Set DISABLE_PROFANITY_LIBRARY=1 or DISABLE_PHONE_VALIDATION=1 to leave
    the corresponding capability out. A capability that fails to initialise
    is left out as well.

    Returns:
        Keyword arguments for `ModerationGuard`.
    """
    caps: Dict[str, Any] = {}

    if os.getenv("DISABLE_PROFANITY_LIBRARY", "0") == "1":
        logger.info("Profanity library disabled via DISABLE_PROFANITY_LIBRARY=1.")
    else:
        try:
            caps["profanity_dictionary"] = BetterProfanityDictionary()
            logger.info("Loaded better_profanity dictionary.")
        except Exception as e:
            logger.warning(
                f"Failed to load profanity dictionary: {e}. "
                "Proceeding with built-in stems only."
            )

    if os.getenv("DISABLE_PHONE_VALIDATION", "0") == "1":
        logger.info("Phone validation disabled via DISABLE_PHONE_VALIDATION=1.")
    else:
        caps["phone_validity"] = PhoneNumbersValidity()

    return caps
