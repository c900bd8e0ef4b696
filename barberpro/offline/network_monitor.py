# =============================================================================
# barberpro/offline/network_monitor.py
# Reachability Detection and Rising-Edge Notification
# =============================================================================
"""
NetworkMonitor - Polls reachability of the Supabase backend.

Features:
- Fail-closed: "unknown" (before the first check) counts as unreachable
- Periodic checks on an asyncio task
- Listeners awaited on every unreachable -> reachable transition
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]
Listener = Callable[[], Awaitable[None]]

# Fallback targets when no Supabase URL is configured
PUBLIC_DNS_HOSTS: Tuple[Tuple[str, int], ...] = (
    ("8.8.8.8", 53),        # Google DNS
    ("1.1.1.1", 53),        # Cloudflare DNS
    ("208.67.222.222", 53), # OpenDNS
)


async def tcp_probe(hosts: Sequence[Tuple[str, int]], timeout: float) -> bool:
    """Return True as soon as one host accepts a TCP connection."""
    for host, port in hosts:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except (OSError, asyncio.TimeoutError):
            continue
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
    return False


def probe_targets(supabase_url: Optional[str]) -> Tuple[Tuple[str, int], ...]:
    """Hosts to probe: the Supabase host if configured, else public resolvers."""
    if supabase_url:
        parsed = urlparse(supabase_url)
        if parsed.hostname:
            default_port = 80 if parsed.scheme == "http" else 443
            return ((parsed.hostname, parsed.port or default_port),)
    return PUBLIC_DNS_HOSTS


@dataclass
class NetworkState:
    """Last observed reachability with metadata."""
    reachable: Optional[bool] = None    # None = unknown
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0


class NetworkMonitor:
    """
    Answers "are we reachable" and emits a rising-edge signal.

    Usage:
        monitor = NetworkMonitor(supabase_url=settings.supabase_url)
        monitor.add_listener(coordinator.on_reachable)
        monitor.start()
    """

    POLL_INTERVAL = 5.0     # Seconds between checks
    PROBE_TIMEOUT = 5.0     # Timeout for one connection test

    def __init__(
        self,
        probe: Optional[Probe] = None,
        poll_interval: Optional[float] = None,
        probe_timeout: Optional[float] = None,
        supabase_url: Optional[str] = None,
    ):
        """
        Args:
            probe: Coroutine function returning reachability (default: TCP probe)
            poll_interval: Seconds between checks
            probe_timeout: Timeout per probe target
            supabase_url: Used to pick the default probe target
        """
        self.poll_interval = poll_interval or self.POLL_INTERVAL
        self.probe_timeout = probe_timeout or self.PROBE_TIMEOUT
        self._targets = probe_targets(supabase_url)
        self._probe = probe or self._default_probe
        self._state = NetworkState()
        self._listeners: List[Listener] = []
        self._task: Optional[asyncio.Task] = None

    async def _default_probe(self) -> bool:
        return await tcp_probe(self._targets, self.probe_timeout)

    @property
    def state(self) -> NetworkState:
        return self._state

    def current_status(self) -> bool:
        """Last observed reachability; unknown is reported as unreachable."""
        return self._state.reachable is True

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_listener(self, listener: Listener) -> None:
        """Register a coroutine function called on every rising edge."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def check_now(self) -> bool:
        """
        Probe once and update state; notify listeners on unreachable -> reachable.

        Returns:
            The new reachability value
        """
        was_reachable = self.current_status()
        try:
            reachable = bool(await self._probe())
        except Exception as e:
            logger.debug(f"Reachability probe failed: {e}")
            reachable = False

        now = datetime.now()
        self._state.last_check = now
        previous = self._state.reachable
        self._state.reachable = reachable

        if reachable:
            self._state.last_online = now
            self._state.consecutive_failures = 0
        else:
            self._state.consecutive_failures += 1

        if previous != reachable:
            logger.info(f"Reachability changed: {previous} -> {reachable}")

        if reachable and not was_reachable:
            await self._notify_listeners()

        return reachable

    async def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                await listener()
            except Exception as e:
                logger.error(f"Error in reachability listener: {e}", exc_info=True)

    def start(self) -> None:
        """Start background polling on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._monitoring_loop(), name="NetworkMonitor"
        )
        logger.debug("Network monitoring started")

    async def stop(self) -> None:
        """Stop background polling."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Network monitoring stopped")

    async def _monitoring_loop(self) -> None:
        """Check immediately, then every poll_interval seconds until cancelled."""
        while True:
            try:
                await self.check_now()
            except Exception as e:
                logger.error(f"Error in reachability check: {e}")
            await asyncio.sleep(self.poll_interval)

    def force_offline(self) -> None:
        """Force unreachable until the next successful check (tests, user preference)."""
        self._state.reachable = False
        logger.info("Forced offline mode")

    def get_status_display(self) -> dict:
        """Get status information for display."""
        return {
            "reachable": self._state.reachable,
            "is_online": self.current_status(),
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
        }
