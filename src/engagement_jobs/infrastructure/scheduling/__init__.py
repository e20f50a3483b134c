"""Periodic trigger implementations."""

from engagement_jobs.infrastructure.scheduling.dispatcher_ticker import DispatcherTicker

__all__ = ["DispatcherTicker"]
