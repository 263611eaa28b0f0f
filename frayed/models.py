"""
Pydantic models for the frayed package: runtime settings and engine
bookkeeping snapshots.
"""

import logging
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FrayedSettings(BaseModel):
    """Runtime configuration, overridable from the environment"""
    log_level: str = Field(
        "WARNING",
        description="Level applied by setup_logging() when none is given"
    )
    check_invariants: bool = Field(
        False,
        description="Verify engine bookkeeping after every request"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Accept only level names known to the logging module"""
        name = v.strip().upper()
        if not isinstance(logging.getLevelName(name), int):
            raise ValueError(f"Unknown log level: {v}")
        return name

    @classmethod
    def from_env(cls, environ=None) -> "FrayedSettings":
        """Build settings from FRAYED_* environment variables"""
        environ = os.environ if environ is None else environ
        values = {}

        if 'FRAYED_LOG_LEVEL' in environ:
            values['log_level'] = environ['FRAYED_LOG_LEVEL']

        if 'FRAYED_CHECK_INVARIANTS' in environ:
            values['check_invariants'] = environ['FRAYED_CHECK_INVARIANTS'].strip()

        return cls(**values)


_settings: Optional[FrayedSettings] = None


def get_settings() -> FrayedSettings:
    """Return the cached environment-derived settings"""
    global _settings
    if _settings is None:
        _settings = FrayedSettings.from_env()
    return _settings


def reset_settings():
    """Forget cached settings so the environment is read again"""
    global _settings
    _settings = None


class DefrayStats(BaseModel):
    """Point-in-time view of a splitter engine's bookkeeping"""
    top_group: int = Field(..., description="Group currently drawn from the producer", ge=0)
    oldest_buffered_group: int = Field(..., description="Least group that may still hold buffered elements", ge=0)
    bottom_group: int = Field(..., description="Group index of the first buffer slot", ge=0)
    dropped_group: Optional[int] = Field(None, description="Highest group abandoned before exhaustion", ge=0)
    buffer_slots: int = Field(..., description="Number of per-group queues held", ge=0)
    buffered_elements: int = Field(..., description="Elements waiting in the buffer", ge=0)
    buffer_allocations: int = Field(..., description="Group queues committed to the buffer so far", ge=0)
    terminators_seen: int = Field(..., description="Group terminators read from the producer", ge=0)
    lookahead_pending: bool = Field(False, description="Whether a prefetched element is waiting")
    done: bool = Field(False, description="Whether the producer is exhausted")

    @model_validator(mode='after')
    def validate_ordering(self):
        """Enforce bottom_group <= oldest_buffered_group"""
        if self.bottom_group > self.oldest_buffered_group:
            raise ValueError("bottom_group cannot exceed oldest_buffered_group")
        return self

    @property
    def live_buffer_span(self) -> int:
        """Slots that may still hold unread elements"""
        return max(self.buffer_slots - (self.oldest_buffered_group - self.bottom_group), 0)
