"""Per-package asyncio locks serializing updates, backups and restores."""

from __future__ import annotations

import asyncio


class PackageLocks:
    """One lock per package id. Different ids never contend."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, package_id: str) -> asyncio.Lock:
        lock = self._locks.get(package_id)
        if lock is None:
            lock = self._locks[package_id] = asyncio.Lock()
        return lock

    def locked(self, package_id: str) -> bool:
        lock = self._locks.get(package_id)
        return lock is not None and lock.locked()


default_locks = PackageLocks()
