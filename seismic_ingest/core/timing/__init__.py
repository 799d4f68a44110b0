from .synthesizer import DEFAULT_STEP, TimestampSynthesizer, utc_now

__all__ = ["DEFAULT_STEP", "TimestampSynthesizer", "utc_now"]
