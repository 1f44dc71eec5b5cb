"""
privsalary Access Control

Owner and provider bookkeeping, plus the admin handlers that act on it.

Invariant: the owner is always also a provider. Transferring ownership
revokes nothing from the previous owner.
"""

import logging
from typing import TYPE_CHECKING, FrozenSet, Set

from .errors import InvalidParameterError, NotOwnerError, NotProviderError, PausedError
from .events import EventKind

if TYPE_CHECKING:
    from .state import SystemState

logger = logging.getLogger(__name__)


class RoleRegistry:
    """Single owner and a set of provider addresses."""

    def __init__(self, owner: str):
        if not owner:
            raise ValueError("owner address must not be empty")
        self._owner = owner
        self._providers: Set[str] = {owner}

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def providers(self) -> FrozenSet[str]:
        return frozenset(self._providers)

    def is_owner(self, address: str) -> bool:
        return address == self._owner

    def is_provider(self, address: str) -> bool:
        return address in self._providers

    def require_owner(self, caller: str) -> None:
        if not self.is_owner(caller):
            raise NotOwnerError(f"{caller} is not the owner")

    def require_provider(self, caller: str) -> None:
        if not self.is_provider(caller):
            raise NotProviderError(f"{caller} is not a provider")

    def grant(self, address: str) -> bool:
        """Add a provider. Returns False if it already was one."""
        if address in self._providers:
            return False
        self._providers.add(address)
        return True

    def revoke(self, address: str) -> bool:
        """Remove a provider. Returns False if it was not one."""
        if address not in self._providers:
            return False
        self._providers.discard(address)
        return True

    def set_owner(self, new_owner: str) -> str:
        """Swap the owner, granting provider status. Returns the previous owner."""
        previous = self._owner
        self._owner = new_owner
        self._providers.add(new_owner)
        return previous


# =============================================================================
# GUARDS
# =============================================================================

def require_not_paused(state: "SystemState") -> None:
    if state.paused:
        raise PausedError("system is paused")


# =============================================================================
# ADMIN HANDLERS
# =============================================================================

def transfer_ownership(state: "SystemState", caller: str, new_owner: str) -> None:
    state.roles.require_owner(caller)
    require_not_paused(state)
    if not new_owner:
        raise InvalidParameterError("new owner address must not be empty")

    state.events.append(EventKind.OWNERSHIP_CHANGED, {
        "previous_owner": state.roles.owner,
        "new_owner": new_owner,
    })
    state.roles.set_owner(new_owner)


def add_provider(state: "SystemState", caller: str, address: str) -> None:
    """Idempotent. Emits provider-added only when the set changes."""
    state.roles.require_owner(caller)
    require_not_paused(state)
    if state.roles.is_provider(address):
        logger.debug("add_provider no-op for existing provider %s", address)
        return
    state.events.append(EventKind.PROVIDER_ADDED, {"provider": address})
    state.roles.grant(address)


def remove_provider(state: "SystemState", caller: str, address: str) -> None:
    """
    Idempotent. The owner always keeps provider status, so removing it is a no-op.
    """
    state.roles.require_owner(caller)
    require_not_paused(state)
    if state.roles.is_owner(address):
        logger.debug("remove_provider ignored for owner %s", address)
        return
    if state.roles.is_provider(address):
        state.events.append(EventKind.PROVIDER_REMOVED, {"provider": address})
        state.roles.revoke(address)


def pause(state: "SystemState", caller: str) -> None:
    state.roles.require_owner(caller)
    require_not_paused(state)
    state.events.append(EventKind.PAUSED, {"by": caller})
    state.paused = True


def unpause(state: "SystemState", caller: str) -> None:
    """Only unpause is permitted while paused. Unpausing a running system is a no-op."""
    state.roles.require_owner(caller)
    if not state.paused:
        return
    state.events.append(EventKind.UNPAUSED, {"by": caller})
    state.paused = False
