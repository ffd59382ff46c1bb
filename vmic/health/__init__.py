"""Health digest thresholds and rule engine."""

from .engine import BUILTIN_RULES, ByteFloorRule, DigestEngine, RatioRule, overall_severity
from .thresholds import DigestThresholds, Direction, Threshold, normalize_ratio, resolve_thresholds
