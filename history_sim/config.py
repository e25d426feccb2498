"""
History simulation configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

from .schemas import DriveParameters, MovementParams, NPCUpdateParams

# Load .env file if it exists
load_dotenv()


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else None


def _optional_path(name: str) -> Path | None:
    value = os.getenv(name)
    return Path(value) if value else None


class Config:
    """Application configuration loaded from environment variables."""

    # Run length and world
    TICKS: int = int(os.getenv("HISTORY_SIM_TICKS", "200"))
    TICKS_PER_GENERATION: int = int(os.getenv("HISTORY_SIM_TICKS_PER_GENERATION", "100"))
    PERCEPTION_RANGE: float = float(os.getenv("HISTORY_SIM_PERCEPTION_RANGE", "10.0"))
    WORLD_SIZE: float = float(os.getenv("HISTORY_SIM_WORLD_SIZE", "1000.0"))

    # Drive dynamics
    DRIVE_GROWTH_RATE: float = float(os.getenv("HISTORY_SIM_DRIVE_GROWTH_RATE", "0.1"))
    DRIVE_INTENSITY_FACTOR: float = float(os.getenv("HISTORY_SIM_DRIVE_INTENSITY_FACTOR", "0.5"))

    # Action selection
    FAMILIARITY_PREFERENCE: float = float(os.getenv("HISTORY_SIM_FAMILIARITY_PREFERENCE", "0.5"))
    SOCIAL_PREFERENCE: float = float(os.getenv("HISTORY_SIM_SOCIAL_PREFERENCE", "0.5"))
    RANDOMNESS: float = float(os.getenv("HISTORY_SIM_RANDOMNESS", "0.2"))

    # Memory formation
    SIGNIFICANCE_THRESHOLD: float = float(os.getenv("HISTORY_SIM_SIGNIFICANCE_THRESHOLD", "0.3"))
    MAX_SEQUENCE_GAP: int = int(os.getenv("HISTORY_SIM_MAX_SEQUENCE_GAP", "5"))
    MIN_SEQUENCE_LENGTH: int = int(os.getenv("HISTORY_SIM_MIN_SEQUENCE_LENGTH", "2"))
    BUFFER_CAPACITY: int = int(os.getenv("HISTORY_SIM_BUFFER_CAPACITY", "20"))

    # Reproducibility and output
    SEED: int | None = _optional_int("HISTORY_SIM_SEED")
    EVENT_LOG: Path | None = _optional_path("HISTORY_SIM_EVENT_LOG")
    VERBOSE: bool = os.getenv("HISTORY_SIM_VERBOSE", "").lower() in ("1", "true", "yes", "on")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors for out-of-range values."""
        if cls.TICKS < 0:
            raise ValueError(f"HISTORY_SIM_TICKS must be >= 0, got {cls.TICKS}")

        if cls.TICKS_PER_GENERATION < 1:
            raise ValueError(
                f"HISTORY_SIM_TICKS_PER_GENERATION must be >= 1, got {cls.TICKS_PER_GENERATION}"
            )

        if cls.PERCEPTION_RANGE <= 0:
            raise ValueError(
                f"HISTORY_SIM_PERCEPTION_RANGE must be positive, got {cls.PERCEPTION_RANGE}"
            )

        if cls.WORLD_SIZE <= 0:
            raise ValueError(f"HISTORY_SIM_WORLD_SIZE must be positive, got {cls.WORLD_SIZE}")

        if not 0.0 <= cls.RANDOMNESS <= 1.0:
            raise ValueError(
                f"HISTORY_SIM_RANDOMNESS must be between 0 and 1, got {cls.RANDOMNESS}"
            )

        for name in (
            "DRIVE_GROWTH_RATE",
            "DRIVE_INTENSITY_FACTOR",
            "FAMILIARITY_PREFERENCE",
            "SOCIAL_PREFERENCE",
            "SIGNIFICANCE_THRESHOLD",
            "MAX_SEQUENCE_GAP",
        ):
            if getattr(cls, name) < 0:
                raise ValueError(f"HISTORY_SIM_{name} must be >= 0, got {getattr(cls, name)}")

        if cls.MIN_SEQUENCE_LENGTH < 1:
            raise ValueError(
                f"HISTORY_SIM_MIN_SEQUENCE_LENGTH must be >= 1, got {cls.MIN_SEQUENCE_LENGTH}"
            )

        if cls.BUFFER_CAPACITY < 1:
            raise ValueError(
                f"HISTORY_SIM_BUFFER_CAPACITY must be >= 1, got {cls.BUFFER_CAPACITY}"
            )

    @classmethod
    def update_params(cls) -> NPCUpdateParams:
        """Build tick-update parameters from the current configuration."""
        return NPCUpdateParams(
            drive_params=DriveParameters(
                base_growth_rate=cls.DRIVE_GROWTH_RATE,
                intensity_factor=cls.DRIVE_INTENSITY_FACTOR,
            ),
            familiarity_preference=cls.FAMILIARITY_PREFERENCE,
            social_preference=cls.SOCIAL_PREFERENCE,
            randomness=cls.RANDOMNESS,
            significance_threshold=cls.SIGNIFICANCE_THRESHOLD,
            max_sequence_gap=cls.MAX_SEQUENCE_GAP,
            min_sequence_length=cls.MIN_SEQUENCE_LENGTH,
        )

    @classmethod
    def movement_params(cls) -> MovementParams:
        return MovementParams(world_size=cls.WORLD_SIZE)

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "History Simulation Configuration:",
            f"  Ticks: {cls.TICKS} ({cls.TICKS_PER_GENERATION} per generation)",
            f"  World Size: {cls.WORLD_SIZE}",
            f"  Perception Range: {cls.PERCEPTION_RANGE}",
            f"  Drive Growth: {cls.DRIVE_GROWTH_RATE} (intensity factor {cls.DRIVE_INTENSITY_FACTOR})",
            f"  Preferences: familiarity={cls.FAMILIARITY_PREFERENCE} "
            f"social={cls.SOCIAL_PREFERENCE} randomness={cls.RANDOMNESS}",
            f"  Memory: threshold={cls.SIGNIFICANCE_THRESHOLD} gap={cls.MAX_SEQUENCE_GAP} "
            f"min_length={cls.MIN_SEQUENCE_LENGTH} buffer={cls.BUFFER_CAPACITY}",
            f"  Seed: {cls.SEED if cls.SEED is not None else 'random'}",
            f"  Event Log: {cls.EVENT_LOG or 'disabled'}",
        ]
        return "\n".join(lines)
