# picket/core/models/retry.py
from __future__ import annotations

from typing import Annotated, Self

from pydantic import BaseModel, Field, model_validator

from picket.core.defaults import DEFAULT_RETRY_BASE_DELAY_MS, DEFAULT_RETRY_MAX_DELAY_MS
from picket.core.errors import ConfigurationError, ErrorCode


class RetryConfig(BaseModel):
    """
    Backoff applied when a processor fails and the job still has attempts left.

    delay(attempts) = min(base_delay_ms * 2^(attempts-1), max_delay_ms)

    Fields:
    - base_delay_ms: Delay before the first retry
    - max_delay_ms: Cap on any single delay
    """

    base_delay_ms: Annotated[int, Field(ge=100, le=3_600_000)] = Field(
        default=DEFAULT_RETRY_BASE_DELAY_MS,
        description='Delay before the first retry in milliseconds (100ms-1hr)',
    )
    max_delay_ms: Annotated[int, Field(ge=100, le=86_400_000)] = Field(
        default=DEFAULT_RETRY_MAX_DELAY_MS,
        description='Upper bound on a single retry delay in milliseconds (100ms-24hr)',
    )

    @model_validator(mode='after')
    def validate_delay_order(self) -> Self:
        if self.max_delay_ms < self.base_delay_ms:
            raise ConfigurationError(
                message='max_delay_ms is lower than base_delay_ms',
                code=ErrorCode.CONFIG_INVALID_RETRY,
                notes=[
                    f'base_delay_ms={self.base_delay_ms}ms',
                    f'max_delay_ms={self.max_delay_ms}ms',
                ],
                help_text=f'set max_delay_ms >= {self.base_delay_ms}',
            )
        return self
