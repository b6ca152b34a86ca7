"""Market resolution: per-market resolver and the polling scheduler."""

from predsettle.resolution.poller import ResolutionPoller, TickReport
from predsettle.resolution.resolver import MarketResolver, ResolutionPlan, ResolutionResult

__all__ = ["MarketResolver", "ResolutionPlan", "ResolutionPoller", "ResolutionResult", "TickReport"]
