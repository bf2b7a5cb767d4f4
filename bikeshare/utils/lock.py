from contextlib import asynccontextmanager
from typing import Optional

from bikeshare.core.errors import ActionRejected


class InFlightGuard:
    """
    Single-holder guard for state-changing actions.

    The client runs on one event loop, so a plain flag is enough: the check
    and the set happen without an await in between. A second acquisition
    while held is refused, never queued.
    """

    def __init__(self):
        self._holder: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @asynccontextmanager
    async def hold(self, action: str):
        if self._holder is not None:
            raise ActionRejected(action, f"'{self._holder}' is still in flight")
        self._holder = action
        try:
            yield
        finally:
            self._holder = None
