"""Configuration management for Singing Coach."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from singing_coach.music import cents_to_semitones


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All analysis tolerances live here so that every stage reads the same
    named values. Stages receive a Settings instance explicitly; only the
    CLI goes through get_settings().
    """

    model_config = SettingsConfigDict(
        env_prefix="SINGING_COACH_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Directories
    output_dir: Path = Field(
        default=Path("./output"),
        description="Default output directory for analysis reports",
    )
    default_song: str = Field(
        default="twinkle",
        description="Built-in reference melody used when none is given",
    )

    # Input validation
    min_duration_seconds: float = Field(
        default=1.0,
        description="Recordings shorter than this are rejected before analysis",
    )

    # Preprocessing
    highpass_hz: float = Field(
        default=70.0,
        description="High-pass cutoff removing rumble and DC",
    )
    lowpass_hz: float = Field(
        default=2000.0,
        description="Low-pass cutoff keeping the vocal fundamental and early harmonics",
    )
    filter_order: int = Field(
        default=2,
        description="Butterworth order of each band-limiting filter",
    )
    target_peak: float = Field(
        default=0.9,
        description="Peak amplitude after normalization",
    )

    # Pitch tracking
    frame_size: int = Field(
        default=4096,
        description="Analysis frame length in samples",
    )
    hop_size: int = Field(
        default=256,
        description="Hop between analysis frames in samples",
    )
    min_frequency_hz: float = Field(
        default=65.0,
        description="Lowest accepted fundamental frequency",
    )
    max_frequency_hz: float = Field(
        default=1000.0,
        description="Highest accepted fundamental frequency",
    )
    min_confidence: float = Field(
        default=0.1,
        description="Frames with lower energy confidence are forced unvoiced",
    )
    chunk_frames: int = Field(
        default=50,
        description="Frames processed per pitch-tracking chunk",
    )

    # Onset detection
    onset_energy_threshold: float = Field(
        default=0.02,
        description="Minimum RMS rise between frames for an energy onset",
    )
    onset_pitch_jump_semitones: float = Field(
        default=1.0,
        description="Pitch jump from the previous voiced frame that marks an onset",
    )
    onset_min_gap_seconds: float = Field(
        default=0.08,
        description="Minimum spacing between accepted onsets",
    )

    # Reference sampling
    beat_step: float = Field(
        default=0.05,
        description="Beat resolution of the sampled reference and user curves",
    )

    # Alignment
    onset_window_seconds: float = Field(
        default=0.02,
        description="RMS window used to find the start of singing",
    )
    onset_hop_seconds: float = Field(
        default=0.01,
        description="Hop of the singing-start RMS scan",
    )
    baseline_seconds: float = Field(
        default=2.0,
        description="Leading span used to estimate the baseline RMS",
    )
    baseline_factor: float = Field(
        default=0.6,
        description="Singing-start threshold as a fraction of the baseline RMS",
    )
    min_onset_rms: float = Field(
        default=0.02,
        description="Absolute floor of the singing-start threshold",
    )
    fine_step_seconds: float = Field(
        default=0.01,
        description="Bin size of the fine cross-correlation",
    )
    fine_max_shift_seconds: float = Field(
        default=0.5,
        description="Largest shift searched by the fine cross-correlation",
    )
    max_manual_offset_seconds: float = Field(
        default=2.0,
        description="Manual offset corrections are clamped to +/- this value",
    )

    # Note comparison
    pitch_tolerance_cents: float = Field(
        default=100.0,
        description="Allowed deviation from the reference pitch",
    )
    rhythm_tolerance_beats: float | None = Field(
        default=None,
        description="Allowed start/duration deviation; derived from the subdivision when unset",
    )
    rhythm_subdivision: int = Field(
        default=4,
        description="Subdivisions per beat of the rhythm tolerance (4 = sixteenth notes)",
    )
    rhythm_leniency: float = Field(
        default=1.0,
        description="Multiplier applied to the subdivision-derived rhythm tolerance",
    )
    rhythm_match_tolerance_beats: float = Field(
        default=0.25,
        description="Maximum distance for matching reference and user onsets",
    )
    timing_search_beats: float = Field(
        default=0.5,
        description="How far around a note window observed timing is searched",
    )
    smoothing_window_frames: int = Field(
        default=9,
        description="Running-median window over the sampled user curve",
    )
    ema_alpha: float = Field(
        default=0.2,
        description="Weight of the newest sample in the display-curve EMA",
    )
    stable_region_fraction: float = Field(
        default=0.6,
        description="Central share of each note used for its pitch estimate",
    )
    octave_search_range: int = Field(
        default=2,
        description="Octaves searched in each direction by octave correction",
    )
    midi_clamp_low: float = Field(
        default=36.0,
        description="Lowest MIDI value kept in the user curve (C2)",
    )
    midi_clamp_high: float = Field(
        default=77.0,
        description="Highest MIDI value kept in the user curve (F5)",
    )
    spike_threshold_semitones: float = Field(
        default=8.0,
        description="Single samples this far from both neighbours are dropped",
    )

    # Scoring
    pitch_weight: float = Field(
        default=0.6,
        description="Weight of the pitch score in the total score",
    )
    rhythm_weight: float = Field(
        default=0.4,
        description="Weight of the rhythm score in the total score",
    )
    verdict_thresholds: list[int] = Field(
        default=[90, 75, 60],
        description="Total-score thresholds of the three upper verdict tiers",
    )

    def rhythm_tolerance(self) -> float:
        """Return the rhythm tolerance in beats."""
        if self.rhythm_tolerance_beats is not None:
            return self.rhythm_tolerance_beats
        return self.rhythm_leniency / self.rhythm_subdivision

    @property
    def pitch_tolerance_semitones(self) -> float:
        return cents_to_semitones(self.pitch_tolerance_cents)


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(**overrides: object) -> Settings:
    """Configure settings with overrides. Useful for testing."""
    global _settings
    _settings = Settings(**overrides)  # type: ignore[arg-type]
    return _settings
