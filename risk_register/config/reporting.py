"""Curve output and logging configuration.

Contains the settings that shape what leaves the engine: how many loss
ticks an exceedance curve carries, where its tail is trimmed, and how log
records are emitted.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class CurveConfig(BaseModel):
    """Loss-exceedance curve generation settings.

    Attributes:
        n_entries: Number of evenly spaced loss ticks per curve.
        tail_cutoff: Exceedance probability below which trailing ticks are
            trimmed from multi-curve output. The default of 0.5% matches a
            200-year return period.
    """

    n_entries: int = Field(default=100, ge=2, le=10_000, description="Ticks per curve")
    tail_cutoff: float = Field(
        default=0.005, gt=0, lt=1, description="Exceedance floor for tail trimming"
    )


class LoggingConfig(BaseModel):
    """Where the package logger writes and at what level.

    Applied by :meth:`risk_register.config.Config.setup_logging`; nothing is
    configured just by constructing it.
    """

    enabled: bool = Field(default=True, description="Configure the package logger")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Optional[str] = Field(
        default=None, description="File to append log records to"
    )
    console_output: bool = Field(default=True, description="Write records to stdout")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="logging.Formatter format string",
    )
