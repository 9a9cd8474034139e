"""
Authorization Policies
======================
Decides which callers may use privileged ledger entry points
(currently: site-suggestion reveals). Injected into the ledger at
construction.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Set


SITE_SUGGESTION_ACTION = "request_site_suggestion"


class AuthorizationPolicy(ABC):

    @abstractmethod
    def is_authorized(self, caller: Optional[str], action: str) -> bool:
        """Return True if caller may perform action"""


class AllowAllPolicy(AuthorizationPolicy):
    """Permits every caller, including anonymous ones"""

    def is_authorized(self, caller: Optional[str], action: str) -> bool:
        return True


class AllowListPolicy(AuthorizationPolicy):
    """
    Permits only listed operator ids.

    Anonymous callers (None or empty id) are always denied.
    """

    def __init__(self, operators: Iterable[str]):
        self._operators: Set[str] = {op for op in operators if op}

    def is_authorized(self, caller: Optional[str], action: str) -> bool:
        return bool(caller) and caller in self._operators

    def grant(self, operator: str):
        self._operators.add(operator)

    def revoke(self, operator: str):
        self._operators.discard(operator)

    @property
    def operators(self) -> Set[str]:
        return set(self._operators)
