"""
Configuration settings for the LOGOS learning engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FSRS_WEIGHTS = [
    0.4, 0.6, 2.4, 5.8,       # w0-w3: initial stability per rating
    4.93, 0.94, 0.86, 0.01,   # w4-w7: difficulty modifiers
    1.49, 0.14, 0.94,         # w8-w10: recall stability growth
    2.18, 0.05, 0.34, 1.26,   # w11-w14: forget stability
    0.29, 2.61,               # w15-w16: hard penalty, easy bonus
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Persistence
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{Path.home() / '.logos' / 'engine.db'}",
        description="SQLAlchemy connection string for snapshot storage",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path",
    )

    # ========================================
    # Ability Estimation (IRT)
    # ========================================
    irt_theta_min: float = Field(
        default=-4.0,
        description="Lower clamp for theta estimates",
    )
    irt_theta_max: float = Field(
        default=4.0,
        description="Upper clamp for theta estimates",
    )
    irt_max_iterations: int = Field(
        default=50,
        description="Maximum Newton-Raphson iterations for MLE",
    )
    irt_tolerance: float = Field(
        default=1e-6,
        description="Convergence tolerance on the theta step",
    )
    irt_min_responses: int = Field(
        default=5,
        description="Responses needed before an estimate is considered confident",
    )
    irt_prior_mean: float = Field(
        default=0.0,
        description="Mean of the normal ability prior (EAP)",
    )
    irt_prior_sd: float = Field(
        default=1.0,
        description="Standard deviation of the normal ability prior (EAP)",
    )
    irt_quadrature_points: int = Field(
        default=81,
        description="Quadrature points for EAP integration",
    )
    irt_max_standard_error: float = Field(
        default=4.0,
        description="Standard error reported when there is no information",
    )

    # ========================================
    # Memory Scheduling (FSRS)
    # ========================================
    fsrs_request_retention: float = Field(
        default=0.9,
        description="Target retention when computing review intervals",
    )
    fsrs_maximum_interval: int = Field(
        default=36500,
        description="Maximum days between reviews",
    )
    fsrs_slow_response_ms: int = Field(
        default=5000,
        description="Cue-free correct answers slower than this are rated Good, faster Easy",
    )
    fsrs_weights: list[float] = Field(
        default_factory=lambda: list(DEFAULT_FSRS_WEIGHTS),
        description="The 17 FSRS-4 weights",
    )

    # ─── Mastery stage thresholds ───────────────────────────────────────────────
    mastery_stage4_accuracy: float = Field(default=0.9)
    mastery_stage4_stability: float = Field(default=30.0)
    mastery_stage4_gap: float = Field(default=0.1)
    mastery_stage3_accuracy: float = Field(default=0.75)
    mastery_stage3_stability: float = Field(default=7.0)
    mastery_stage2_accuracy: float = Field(default=0.6)
    mastery_stage2_assisted: float = Field(default=0.8)
    mastery_stage1_assisted: float = Field(default=0.5)
    mastery_cue_assisted_weight: float = Field(
        default=0.2,
        description="Fixed EWMA weight for cue-assisted accuracy",
    )
    mastery_cue_free_decay: float = Field(
        default=0.3,
        description="Cue-free EWMA weight is 1 / (exposures * decay + 1)",
    )

    # ========================================
    # Priority
    # ========================================
    priority_weight_frequency: float = Field(default=0.4)
    priority_weight_relational: float = Field(default=0.3)
    priority_weight_contextual: float = Field(default=0.3)
    priority_weight_difficulty: float = Field(default=1.0)
    priority_weight_transfer: float = Field(default=0.5)
    priority_weight_exposure: float = Field(default=0.5)
    priority_cost_floor: float = Field(
        default=0.1,
        description="Cost is floored to this value before division",
    )
    priority_new_item_urgency: float = Field(
        default=0.5,
        description="Urgency assigned to never-reviewed objects",
    )
    priority_exposure_target: int = Field(
        default=8,
        description="Exposures after which exposure need reaches zero",
    )

    # ========================================
    # Bottleneck Detection
    # ========================================
    bottleneck_min_samples: int = Field(
        default=10,
        description="Components with fewer exposures are excluded",
    )
    bottleneck_error_threshold: float = Field(
        default=0.3,
        description="Absolute error rate a candidate must exceed",
    )
    bottleneck_downstream_margin: float = Field(
        default=0.1,
        description="Margin over every downstream error rate",
    )
    bottleneck_confidence_samples: int = Field(
        default=20,
        description="Sample size at which sample confidence saturates",
    )

    # ========================================
    # Collocation Index
    # ========================================
    collocation_window_size: int = Field(
        default=5,
        description="Tokens ahead counted as co-occurring",
    )
    collocation_significance: float = Field(
        default=3.84,
        description="Dunning G2 threshold (p < 0.05)",
    )
    collocation_chunk_size: int = Field(
        default=10000,
        description="Tokens processed per indexing chunk",
    )

    def get_irt_config(self) -> dict[str, Any]:
        """Get IRT configuration as a dictionary."""
        return {
            "theta_min": self.irt_theta_min,
            "theta_max": self.irt_theta_max,
            "max_iterations": self.irt_max_iterations,
            "tolerance": self.irt_tolerance,
            "min_responses": self.irt_min_responses,
            "prior_mean": self.irt_prior_mean,
            "prior_sd": self.irt_prior_sd,
            "quadrature_points": self.irt_quadrature_points,
            "max_standard_error": self.irt_max_standard_error,
        }

    def get_mastery_thresholds(self) -> dict[str, float]:
        """Get mastery stage thresholds as a dictionary."""
        return {
            "stage4_accuracy": self.mastery_stage4_accuracy,
            "stage4_stability": self.mastery_stage4_stability,
            "stage4_gap": self.mastery_stage4_gap,
            "stage3_accuracy": self.mastery_stage3_accuracy,
            "stage3_stability": self.mastery_stage3_stability,
            "stage2_accuracy": self.mastery_stage2_accuracy,
            "stage2_assisted": self.mastery_stage2_assisted,
            "stage1_assisted": self.mastery_stage1_assisted,
        }

    def get_priority_weights(self) -> dict[str, float]:
        """Get priority weights as a dictionary."""
        return {
            "frequency": self.priority_weight_frequency,
            "relational": self.priority_weight_relational,
            "contextual": self.priority_weight_contextual,
            "difficulty": self.priority_weight_difficulty,
            "transfer": self.priority_weight_transfer,
            "exposure": self.priority_weight_exposure,
        }

    def get_bottleneck_config(self) -> dict[str, Any]:
        """Get bottleneck detection configuration as a dictionary."""
        return {
            "min_samples": self.bottleneck_min_samples,
            "error_threshold": self.bottleneck_error_threshold,
            "downstream_margin": self.bottleneck_downstream_margin,
            "confidence_samples": self.bottleneck_confidence_samples,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
