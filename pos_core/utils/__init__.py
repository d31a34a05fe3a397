# Utils package
from .time_utils import now_ms, iso_from_ms, MS_PER_SECOND, MS_PER_MINUTE, Clock

__all__ = ["now_ms", "iso_from_ms", "MS_PER_SECOND", "MS_PER_MINUTE", "Clock"]
