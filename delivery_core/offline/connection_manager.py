# =============================================================================
# delivery_core/offline/connection_manager.py
# Remote Reachability State and Transitions
# =============================================================================
"""
ConnectionManager - owns SyncState, the process-wide view of the remote.

State machine:
    reachable   --remote call fails-----------------> unreachable
    unreachable --probe succeeds / explicit reconnect-> reachable

There is no intermediate "reconnecting" status; a probe is awaited by the
caller. Listeners registered with register_callback() are told about every
status change.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
import logging

from delivery_core.data import RemoteStoreClient

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Remote answered the last probe or call
    OFFLINE = "offline"         # Last probe or call failed
    UNKNOWN = "unknown"         # Not probed yet


@dataclass
class SyncState:
    """Current reachability with metadata. Not persisted."""
    reachable: bool = False
    schema_ready: bool = False
    last_cleanup_date: Optional[str] = None
    probed: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None

    @property
    def status(self) -> ConnectionStatus:
        if not self.probed:
            return ConnectionStatus.UNKNOWN
        return ConnectionStatus.ONLINE if self.reachable else ConnectionStatus.OFFLINE


class ConnectionManager:
    """
    Tracks whether the remote store is reachable.

    Usage:
        manager = ConnectionManager(remote)
        if await manager.check_connection():
            ...  # use the remote
        else:
            ...  # serve the local cache
    """

    def __init__(self, remote: RemoteStoreClient, state: Optional[SyncState] = None):
        self._remote = remote
        self._state = state or SyncState()
        self._callbacks: List[Callable[[SyncState], None]] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.reachable

    @property
    def is_offline(self) -> bool:
        return not self._state.reachable

    async def check_connection(self) -> bool:
        """
        Probe the remote and update state.

        Returns:
            True if the remote answered
        """
        self._state.last_check = datetime.now()
        if await self._remote.probe():
            self.mark_reachable()
        else:
            self.mark_unreachable("probe failed")
        return self._state.reachable

    def mark_reachable(self) -> None:
        was_status = self._state.status
        self._state.reachable = True
        self._state.probed = True
        self._state.last_online = datetime.now()
        self._state.consecutive_failures = 0
        self._state.error_message = None
        self._on_transition(was_status)

    def mark_unreachable(self, reason: Optional[object] = None) -> None:
        was_status = self._state.status
        self._state.reachable = False
        self._state.probed = True
        self._state.consecutive_failures += 1
        self._state.error_message = str(reason) if reason is not None else None
        self._on_transition(was_status)

    def mark_schema_ready(self) -> None:
        self._state.schema_ready = True

    def _on_transition(self, was_status: ConnectionStatus) -> None:
        if was_status != self._state.status:
            logger.info(f"Connection status changed: {was_status.value} -> {self._state.status.value}")
            self._notify_callbacks()

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """
        Register a callback for connection status changes.

        Args:
            callback: Function called with SyncState when status changes
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "schema_ready": self._state.schema_ready,
            "last_cleanup_date": self._state.last_cleanup_date,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
