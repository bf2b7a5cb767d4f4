"""
Resource Snapshot Builder
-------------------------
Pulls per-bike state from the resource gateway and folds it into
ResourceRecords relative to the active identity.

INVARIANT: build_snapshot() and refresh_one(i) share the same fold, so the
record refresh_one(i) returns equals build_snapshot()[i] for the same remote
state.
INVARIANT: a failed query never yields a partial Snapshot; the whole call
raises SnapshotUnavailable and the caller keeps what it had.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from bikeshare.core.errors import RpcError, SnapshotUnavailable
from bikeshare.core.models import Identity, ResourceRecord, Snapshot
from bikeshare.gateways.resource import ResourceGateway
from bikeshare.observability.logging import log

_READ_ERRORS = (RpcError, httpx.HTTPError, ValueError, TypeError)


def fold_record(
    identity: Identity,
    available: bool,
    holder: Optional[Identity],
    inspector: Optional[Identity],
) -> ResourceRecord:
    """
    Another identity's hold leaves the bike unavailable but not inUse. The
    holder role wins if the contract ever reports this identity in both roles.
    """
    in_use = bool(identity) and holder == identity
    inspecting = bool(identity) and inspector == identity and not in_use
    return ResourceRecord(
        available=bool(available) and not in_use and not inspecting,
        heldBy=holder,
        # holder wins, so this identity never shows up in both roles
        inspectedBy=None if in_use and inspector == identity else inspector,
        inUse=in_use,
        inspecting=inspecting,
    )


class SnapshotBuilder:
    def __init__(self, resources: ResourceGateway, identity: Identity):
        self.resources = resources
        self.identity = identity or ""
        # Queried once per session, assumed stable afterwards
        self._count: Optional[int] = None

    async def resource_count(self) -> int:
        if self._count is None:
            try:
                self._count = int(await self.resources.resource_count())
            except _READ_ERRORS as e:
                raise SnapshotUnavailable(f"could not read number of bikes: {e}") from e
        return self._count

    async def _read_record(self, index: int) -> ResourceRecord:
        try:
            available, holder, inspector = await asyncio.gather(
                self.resources.is_available(index),
                self.resources.current_holder(index),
                self.resources.current_inspector(index),
            )
        except _READ_ERRORS as e:
            raise SnapshotUnavailable(f"could not read bike {index}: {e}", index=index) from e
        return fold_record(self.identity, available, holder, inspector)

    async def build_snapshot(self) -> Snapshot:
        count = await self.resource_count()
        records = []
        for i in range(count):
            records.append(await self._read_record(i))
        snapshot = Snapshot(records=tuple(records))
        log(event="snapshot_built", accountId=self.identity, bikes=len(snapshot))
        return snapshot

    async def refresh_one(self, index: int) -> ResourceRecord:
        record = await self._read_record(index)
        log(event="snapshot_record_refreshed", accountId=self.identity, index=index, record=record.to_dict())
        return record
