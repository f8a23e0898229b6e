"""Retry and batching policies.

Two immutable models describe *how hard* a run tries:

* :class:`RetryPolicy` — per-item retry budget and backoff curve, consumed by
  :class:`~guildscan.orchestrator.retry.ItemResolver`.
* :class:`BatchPolicy` — batch size, pacing delays and the sub-round budget,
  consumed by :class:`~guildscan.orchestrator.batch.BatchScheduler`.

Both are built from :class:`~guildscan.core.settings.Settings` once at
startup and never mutated.  ``None`` budgets mean *unbounded*.

Typical usage::

    from guildscan.core.policy import BatchPolicy, RetryPolicy

    retry = RetryPolicy(max_attempts=5, initial_delay_s=1.0, max_delay_s=60.0)
    retry.delay_for(3)          # 4.0
    batch = BatchPolicy(batch_size=10, max_sub_rounds=3)
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

__all__ = ["RetryPolicy", "BatchPolicy"]


class RetryPolicy(BaseModel):
    """Per-item retry budget and exponential backoff.

    Attributes:
        max_attempts: Failed attempts tolerated before giving up on an item.
            ``None`` retries forever.
        initial_delay_s: First backoff delay in seconds.
        max_delay_s: Upper bound for the doubling delay.
        count_rate_limits: When ``False`` (the default) an HTTP 429 does not
            consume the attempt budget; the server is pacing us, not failing.
    """

    model_config = {"frozen": True}

    max_attempts: int | None = Field(5, ge=1)
    initial_delay_s: float = Field(1.0, ge=0.0)
    max_delay_s: float = Field(60.0, ge=0.0)
    count_rate_limits: bool = False

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> RetryPolicy:
        if self.initial_delay_s > self.max_delay_s:
            raise ValueError(
                f"initial_delay_s ({self.initial_delay_s}) > max_delay_s ({self.max_delay_s})"
            )
        return self

    @property
    def bounded(self) -> bool:
        return self.max_attempts is not None

    def delay_for(self, attempt_number: int) -> float:
        """Return the backoff delay after the *attempt_number*-th attempt.

        The delay doubles after every sleep, whatever caused it:
        1 s, 2 s, 4 s, … capped at :attr:`max_delay_s`.

        Args:
            attempt_number: 1-based number of the attempt that just finished.
        """
        exponent = max(attempt_number, 1) - 1
        # Cap the exponent first so unbounded loops cannot overflow.
        if exponent > 62:
            return self.max_delay_s
        return min(self.initial_delay_s * (2**exponent), self.max_delay_s)


class BatchPolicy(BaseModel):
    """Batch partitioning, pacing and sub-round budget.

    Attributes:
        batch_size: Items per batch; also the cap on in-flight fetches.
        sub_round_delay_s: Pause before resubmitting a batch's failed items.
        batch_delay_s: Pause between consecutive batches.
        max_sub_rounds: Retry passes per batch after the initial pass.
            ``None`` keeps resubmitting until every item succeeds.
        count_no_value_as_failure: Whether a response without a usable count
            is tallied as failed (default) or set aside as skipped.
    """

    model_config = {"frozen": True}

    batch_size: int = Field(10, ge=1)
    sub_round_delay_s: float = Field(2.0, ge=0.0)
    batch_delay_s: float = Field(2.0, ge=0.0)
    max_sub_rounds: int | None = Field(3, ge=0)
    count_no_value_as_failure: bool = True
