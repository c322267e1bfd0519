"""
Resilience configuration sections.

Durations are milliseconds. The settings object that groups these sections
lives in `cache_resilience.config`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class RetryConfig(BaseModel):
    """Retry configuration."""

    max_attempts: int = Field(default=3, ge=1, description="Total attempts, first call included")
    base_delay_ms: int = Field(default=1000, ge=0, description="Delay before the second attempt")
    max_delay_ms: int = Field(default=30000, ge=0, description="Upper bound for any single delay")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, description="Exponential backoff base")
    jitter: bool = Field(default=True, description="Scale each delay by a random factor in [0.5, 1.0]")


class CircuitBreakerConfig(BaseModel):
    """
    Failure-rate circuit breaker configuration.

    The breaker opens once `minimum_requests` calls have been seen and the
    failure rate reaches `failure_threshold / minimum_requests`.
    """

    failure_threshold: int = Field(default=5, ge=1, description="Failures per minimum_requests window")
    recovery_timeout_ms: int = Field(default=60000, ge=0, description="OPEN cooldown before a trial call")
    monitoring_period_ms: int = Field(
        default=300000,
        ge=0,
        description="Quiet period after which a success discards stale counters",
    )
    minimum_requests: int = Field(default=10, ge=1, description="Requests needed before the rate is evaluated")

    @property
    def failure_rate_threshold(self) -> float:
        return self.failure_threshold / self.minimum_requests


class StateGuardConfig(BaseModel):
    """State update guard defaults (windowed breaker per component)."""

    failure_threshold: int = Field(default=3, ge=1)
    recovery_timeout_ms: int = Field(default=5000, ge=0)
    monitoring_window_ms: int = Field(default=30000, gt=0)


class ErrorLogConfig(BaseModel):
    """Bounded error log configuration."""

    max_size: int = Field(default=1000, ge=1, description="Entries kept before the oldest is evicted")
    recent_size: int = Field(default=10, ge=0, description="Entries reported as recent_errors")
