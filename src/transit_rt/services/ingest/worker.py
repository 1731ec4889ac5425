"""Provider orchestrator: one independent polling loop per configured source."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from transit_rt.config import Settings, get_settings
from transit_rt.logging import bind_log_context, clear_log_context, get_logger
from transit_rt.services.ingest.provider import FeedProvider
from transit_rt.services.ingest.status import StatusRegistry

logger = get_logger(__name__)


class ProviderOrchestrator:
    """Polls every source on its own interval and records the outcome.

    The interval is the idle time between the end of one cycle and the start
    of the next, so a slow cycle delays its source's next poll. A failed
    cycle is logged and retried on the next poll; it never stops the loop.

    Usage:
        orchestrator = ProviderOrchestrator()
        await orchestrator.start()   # launches one task per source
        await orchestrator.stop()    # cancels them

        # Or run a single cycle of every source:
        report = await orchestrator.run_once()
    """

    def __init__(
        self,
        providers: Optional[Sequence[FeedProvider]] = None,
        settings: Optional[Settings] = None,
        status: Optional[StatusRegistry] = None,
    ) -> None:
        settings = settings or get_settings()
        if providers is None:
            providers = [FeedProvider(source, settings) for source in settings.feed_sources]
        self._providers = list(providers)
        self.status = status or StatusRegistry()
        for provider in self._providers:
            self.status.register(provider.kind, provider.region)

        self._tasks: list[asyncio.Task[None]] = []
        self._running = False
        self._cycle_count = 0
        self._last_cycle_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def providers(self) -> list[FeedProvider]:
        return list(self._providers)

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    async def start(self) -> None:
        """Start one background polling loop per provider."""
        if self._running:
            logger.warning("Orchestrator already running, ignoring start request")
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._poll_loop(provider), name=f"poll:{provider.name}")
            for provider in self._providers
        ]
        logger.info(
            "Provider orchestrator started",
            sources=[provider.name for provider in self._providers],
        )

    async def stop(self) -> None:
        """Cancel every polling loop and wait for them to finish."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for task in self._tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Provider orchestrator stopped")

    async def run_once(self) -> dict[str, Any]:
        """Run one cycle of every provider concurrently.

        Returns:
            Report dict keyed by source name.
        """
        results = await asyncio.gather(*(self.run_provider(p) for p in self._providers))
        return {
            "sources": {provider.name: result for provider, result in zip(self._providers, results)},
        }

    async def run_provider(self, provider: FeedProvider) -> dict[str, Any]:
        """Run one cycle of ``provider``, isolating and recording any failure."""
        ctx = provider.new_context()
        self._cycle_count += 1
        self._last_cycle_at = datetime.now(timezone.utc)
        bind_log_context(region=provider.region, kind=provider.kind, poll_id=ctx.poll_id)

        result: dict[str, Any] = {"status": "error", "poll_id": ctx.poll_id, "error": None}
        try:
            report = await provider.run_cycle(ctx)
            self.status.record_success(provider.kind, provider.region, report.written_count)
            result["status"] = "ok"
            result["report"] = report.to_dict()
        except Exception as exc:
            result["error"] = str(exc)
            self.status.record_failure(provider.kind, provider.region, str(exc))
            logger.error(
                "Feed cycle failed",
                source=provider.name,
                poll_id=ctx.poll_id,
                exc_info=exc,
            )
        finally:
            clear_log_context()

        return result

    async def get_status(self) -> dict[str, Any]:
        """Get current orchestrator state for the health endpoint."""
        return {
            "running": self._running,
            "cycle_count": self._cycle_count,
            "last_cycle_at": self._last_cycle_at.isoformat() if self._last_cycle_at else None,
            "sources": [provider.name for provider in self._providers],
        }

    async def _poll_loop(self, provider: FeedProvider) -> None:
        while self._running:
            await self.run_provider(provider)
            try:
                await asyncio.sleep(provider.interval_sec)
            except asyncio.CancelledError:
                break


# Singleton instance for the app lifecycle
_orchestrator_instance: ProviderOrchestrator | None = None


def get_orchestrator() -> ProviderOrchestrator:
    """Get or create the singleton orchestrator instance."""
    global _orchestrator_instance
    if _orchestrator_instance is None:
        _orchestrator_instance = ProviderOrchestrator()
    return _orchestrator_instance


def reset_orchestrator() -> None:
    """Reset the singleton (for testing)."""
    global _orchestrator_instance
    _orchestrator_instance = None
