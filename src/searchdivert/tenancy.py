"""Tenant (site) context handling for multi-site deployments.

:class:`TenantDirectory` is the host's view of which site is active.
:class:`TenantSwitcher` moves that context to each result's origin site
while the host iterates a diverted result set, and puts it back when the
outermost iteration ends.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from searchdivert.models import PlatformQuery

logger = logging.getLogger(__name__)


@runtime_checkable
class TenantDirectory(Protocol):
    """Site switching primitives supplied by the host platform."""

    def current_tenant_id(self) -> int: ...

    def switch_tenant(self, tenant_id: int) -> None: ...

    def restore_tenant(self) -> bool: ...

    def is_multi_tenant(self) -> bool: ...

    def is_switched(self) -> bool: ...


class SingleTenantDirectory:
    """Directory for a single-site deployment. Switching is not supported."""

    def __init__(self, tenant_id: int = 1) -> None:
        self._tenant_id = tenant_id

    def current_tenant_id(self) -> int:
        return self._tenant_id

    def switch_tenant(self, tenant_id: int) -> None:
        if tenant_id != self._tenant_id:
            raise KeyError(f"Unknown tenant {tenant_id} in a single-tenant deployment")

    def restore_tenant(self) -> bool:
        return False

    def is_multi_tenant(self) -> bool:
        return False

    def is_switched(self) -> bool:
        return False


class MultiTenantDirectory:
    """In-process multi-site directory with a stack of previously active sites.

    Each :meth:`switch_tenant` pushes the active site; :meth:`restore_tenant`
    pops one level. Switching to an unknown site raises ``KeyError``.
    """

    def __init__(self, tenant_ids: Iterable[int], current: int = 1) -> None:
        self._tenants = frozenset(tenant_ids)
        if current not in self._tenants:
            raise KeyError(f"Unknown tenant {current}")
        self._current = current
        self._previous: list[int] = []

    @property
    def tenant_ids(self) -> frozenset[int]:
        return self._tenants

    def current_tenant_id(self) -> int:
        return self._current

    def switch_tenant(self, tenant_id: int) -> None:
        if tenant_id not in self._tenants:
            raise KeyError(f"Unknown tenant {tenant_id}")
        self._previous.append(self._current)
        self._current = tenant_id
        logger.debug("Switched tenant %d -> %d", self._previous[-1], tenant_id)

    def restore_tenant(self) -> bool:
        if not self._previous:
            return False
        switched_from = self._current
        self._current = self._previous.pop()
        logger.debug("Restored tenant %d -> %d", switched_from, self._current)
        return True

    def is_multi_tenant(self) -> bool:
        return True

    def is_switched(self) -> bool:
        return bool(self._previous)


class TenantSwitcher:
    """Switch site context per record, but only inside a real result loop.

    The stack holds the queries whose loops are open; the innermost one
    decides whether switching applies to the record being visited.

    Args:
        directory: Host site directory.
        is_eligible: The engine's eligibility gate.
    """

    IDLE = "idle"
    IN_LOOP = "in_loop"

    def __init__(
        self,
        directory: TenantDirectory,
        is_eligible: Callable[[PlatformQuery], bool],
    ) -> None:
        self._directory = directory
        self._is_eligible = is_eligible
        self._stack: list[PlatformQuery] = []
        self._in_setup = False
        self._switched = False

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def state(self) -> str:
        return self.IN_LOOP if self._stack else self.IDLE

    @property
    def active_query(self) -> PlatformQuery | None:
        return self._stack[-1] if self._stack else None

    def loop_start(self, query: PlatformQuery) -> None:
        if not self._directory.is_multi_tenant():
            return
        self._stack.append(query)

    def loop_end(self, query: PlatformQuery) -> None:
        if not self._directory.is_multi_tenant():
            return
        if self._stack:
            self._stack.pop()
        if self._stack or not self._switched:
            return
        # the outermost loop may be ineligible even though an inner one switched
        self._switched = False
        if self._directory.is_switched():
            self._directory.restore_tenant()

    def visit_record(self, record: Any, setup: Callable[[Any], None]) -> None:
        """Move into *record*'s site if it differs from the active one.

        *setup* is the host's per-record setup; it runs once more under the
        new site. Calls arriving while it runs are ignored.
        """
        if self._in_setup or not self._directory.is_multi_tenant():
            return
        query = self.active_query
        if query is None or not self._is_eligible(query):
            return

        site_id = getattr(record, "site_id", None)
        if not site_id or site_id == self._directory.current_tenant_id():
            return

        self._directory.restore_tenant()
        self._directory.switch_tenant(site_id)
        self._switched = True

        self._in_setup = True
        try:
            setup(record)
        finally:
            self._in_setup = False
