"""
Field analysis for bookmark generation.

Looks at the records of a table column by column: detects a field type
(host column type first, then name patterns, then the values
themselves), computes statistics and ranges, and proposes bookmark
generators that suit the field.

Usage:
    result = FieldAnalyzer().analyze_data(records, {"Category": "Choice"})
    meta = result.get_field("Category")
"""

from __future__ import annotations

import math
import re
import statistics
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from mapsync.core.models import (
    AnalysisRecommendation,
    AnalysisResult,
    BookmarkGeneratorConfig,
    BookmarkSuggestion,
    FieldMeta,
    FieldStats,
)
from mapsync.core.models.generator import FieldType

SAMPLE_SIZE = 100

# Host column types that settle the field type on their own
HOST_TYPES: Dict[str, FieldType] = {
    "DateTime": "datetime",
    "Date": "date",
    "Bool": "boolean",
    "Choice": "choice",
    "ChoiceList": "choice",
    "Ref": "reference",
    "RefList": "reference",
}

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
HTTP_URL = re.compile(r"^https?://")
WKT_GEOMETRY = re.compile(r"^(POINT|LINESTRING|POLYGON|MULTI)", re.IGNORECASE)

# (name patterns, value pattern, share of values that must match, type)
NAME_RULES: List[Tuple[List[re.Pattern], re.Pattern, float, FieldType]] = [
    ([re.compile(p, re.IGNORECASE) for p in (r"color", r"couleur", r"^col_")], HEX_COLOR, 0.5, "color"),
    ([re.compile(p, re.IGNORECASE) for p in (r"url", r"link", r"lien", r"href")], HTTP_URL, 0.5, "url"),
    ([re.compile(p, re.IGNORECASE) for p in (r"geom", r"wkt", r"geometry", r"shape")], WKT_GEOMETRY, 0.3, "geometry"),
]

BOOKMARK_RULES: Dict[str, List[Dict[str, Any]]] = {
    "choice": [{
        "generation_type": "per-category",
        "confidence": 0.95,
        "reason": "One bookmark per category for quick navigation",
        "config": {
            "name_template": "View: {value}",
            "camera_mode": "fit-bounds",
            "default_transition": {"type": "fly", "duration_ms": 2000},
        },
    }],
    "datetime": [{
        "generation_type": "per-time",
        "confidence": 0.9,
        "reason": "Bookmarks per time period",
        "config": {
            "name_template": "{value}",
            "time_granularity": "day",
            "camera_mode": "current",
            "default_transition": {"type": "ease", "duration_ms": 1000},
        },
    }],
    "date": [{
        "generation_type": "per-time",
        "confidence": 0.85,
        "reason": "Bookmarks per date",
        "config": {
            "name_template": "{value}",
            "time_granularity": "day",
            "camera_mode": "current",
            "default_transition": {"type": "ease", "duration_ms": 1000},
        },
    }],
    "numeric": [{
        "generation_type": "per-range",
        "confidence": 0.8,
        "reason": "Bookmarks per value range",
        "estimated_count": 5,
        "config": {
            "name_template": "{start} - {end}",
            "range_count": 5,
            "range_method": "quantile",
            "camera_mode": "fit-bounds",
            "default_transition": {"type": "fly", "duration_ms": 1500},
        },
    }],
    "integer": [{
        "generation_type": "per-range",
        "confidence": 0.75,
        "reason": "Bookmarks per range",
        "estimated_count": 5,
        "config": {
            "name_template": "{start} - {end}",
            "range_count": 5,
            "range_method": "equal",
            "camera_mode": "fit-bounds",
            "default_transition": {"type": "fly", "duration_ms": 1500},
        },
    }],
    "reference": [{
        "generation_type": "per-category",
        "confidence": 0.7,
        "reason": "Bookmarks per referenced record",
        "config": {
            "camera_mode": "fit-bounds",
            "default_transition": {"type": "fly", "duration_ms": 2000},
        },
    }],
    "text": [{
        "generation_type": "per-item",
        "confidence": 0.5,
        "reason": "Individual bookmarks (for small tables)",
        "config": {
            "max_items": 20,
            "camera_mode": "center-on-feature",
            "fly_to_feature": True,
            "default_transition": {"type": "fly", "duration_ms": 1500},
        },
    }],
    "geometry": [{
        "generation_type": "per-item",
        "confidence": 0.8,
        "reason": "One bookmark per geometry",
        "config": {
            "camera_mode": "center-on-feature",
            "fly_to_feature": True,
            "default_transition": {"type": "fly", "duration_ms": 2000},
        },
    }],
}

# Upper bound on the estimate for per-time suggestions, and days per period
TIME_ESTIMATES = {
    "hour": (24, 1 / 24),
    "day": (30, 1),
    "week": (12, 7),
    "month": (12, 30),
    "year": (10, 365),
}


# ============================================================================
# Value helpers
# ============================================================================


def is_blank(value: Any) -> bool:
    return value is None or value == ""


def to_number(value: Any) -> Optional[float]:
    """Float value of a number or numeric string; None otherwise."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_datetime(value: Any, epoch_numbers: bool = False) -> Optional[datetime]:
    """Parse ISO strings, date/datetime objects and (optionally) epoch seconds."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    if epoch_numbers and isinstance(value, (int, float)) and not isinstance(value, bool):
        # Host Date/DateTime cells hold seconds since the epoch
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    return None


def _naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


# ============================================================================
# Analyzer
# ============================================================================


class FieldAnalyzer:
    """Column-by-column analysis of a record set."""

    def analyze_data(
        self,
        records: Sequence[Mapping[str, Any]],
        column_types: Optional[Mapping[str, str]] = None,
    ) -> AnalysisResult:
        """Analyze every user field of ``records`` (``id`` and ``_``-prefixed keys skipped)."""
        if not records:
            return AnalysisResult()

        names = sorted({
            key for record in records for key in record
            if key != "id" and not key.startswith("_")
        })
        fields = [
            self.analyze_field(
                name,
                [record[name] for record in records if name in record],
                (column_types or {}).get(name),
            )
            for name in names
        ]
        return AnalysisResult(fields=fields, recommendations=self.recommend(fields))

    def analyze_field(self, name: str, values: Sequence[Any], grist_type: Optional[str] = None) -> FieldMeta:
        field_type = self.detect_field_type(name, values, grist_type)
        epoch = grist_type in ("Date", "DateTime")
        stats = self.calculate_stats(values, field_type, epoch)
        choices, choice_counts = self.extract_choices(values, field_type)

        numeric_range = None
        if field_type in ("numeric", "integer") and stats.min is not None:
            numeric_range = (float(stats.min), float(stats.max))

        date_range = None
        if field_type in ("date", "datetime") and stats.min is not None:
            date_range = (stats.min, stats.max)

        return FieldMeta(
            name=name,
            type=field_type,
            grist_type=grist_type,
            stats=stats,
            choices=choices,
            choice_counts=choice_counts,
            numeric_range=numeric_range,
            date_range=date_range,
            suggested_bookmarks=self.suggest_bookmarks(field_type, stats, choices),
        )

    # ========== Type detection ==========

    def detect_field_type(self, name: str, values: Sequence[Any], grist_type: Optional[str] = None) -> FieldType:
        present = [v for v in values if not is_blank(v)]
        if not present:
            return "unknown"

        if grist_type in HOST_TYPES:
            return HOST_TYPES[grist_type]

        for patterns, value_pattern, share, field_type in NAME_RULES:
            if any(p.search(name) for p in patterns):
                matching = [v for v in present if value_pattern.search(str(v))]
                if len(matching) > len(present) * share:
                    return field_type

        return self._detect_from_values(present)

    def _detect_from_values(self, values: Sequence[Any]) -> FieldType:
        sample = list(values[:SAMPLE_SIZE])

        # 0 and 1 compare equal to False and True
        if all(v in (True, False, "true", "false") for v in sample):
            return "boolean"

        numbers = [n for n in (to_number(v) for v in sample) if n is not None]
        if len(numbers) >= len(sample) * 0.9:
            return "integer" if all(n.is_integer() for n in numbers) else "numeric"

        dates = [v for v in sample if to_datetime(v) is not None]
        if len(dates) >= len(sample) * 0.8:
            has_time = any(
                isinstance(v, datetime) or "T" in str(v) or ":" in str(v)
                for v in sample
            )
            return "datetime" if has_time else "date"

        unique = {str(v) for v in sample}
        if len(unique) <= min(20, len(sample) * 0.3):
            return "choice"

        return "text"

    # ========== Statistics ==========

    def calculate_stats(self, values: Sequence[Any], field_type: FieldType, epoch_dates: bool = False) -> FieldStats:
        present = [v for v in values if not is_blank(v)]
        stats = FieldStats(
            count=len(values),
            null_count=len(values) - len(present),
            unique_count=len({str(v) for v in present}),
        )

        if field_type in ("numeric", "integer"):
            numbers = [n for n in (to_number(v) for v in present) if n is not None]
            if numbers:
                stats.min = min(numbers)
                stats.max = max(numbers)
                stats.mean = statistics.fmean(numbers)
                stats.median = statistics.median(numbers)

        if field_type in ("date", "datetime"):
            moments = [
                _naive(m) for m in (to_datetime(v, epoch_dates) for v in present)
                if m is not None
            ]
            if moments:
                stats.min = min(moments)
                stats.max = max(moments)

        return stats

    def extract_choices(
        self,
        values: Sequence[Any],
        field_type: FieldType,
    ) -> Tuple[Optional[List[str]], Optional[Dict[str, int]]]:
        """Distinct values by decreasing frequency (ties keep first-seen order)."""
        if field_type not in ("choice", "reference"):
            return None, None

        counts: Dict[str, int] = {}
        for value in values:
            if is_blank(value):
                continue
            key = str(value)
            counts[key] = counts.get(key, 0) + 1

        choices = sorted(counts, key=lambda k: -counts[k])
        return choices, counts

    # ========== Suggestions ==========

    def suggest_bookmarks(
        self,
        field_type: FieldType,
        stats: FieldStats,
        choices: Optional[List[str]] = None,
    ) -> List[BookmarkSuggestion]:
        suggestions = []
        for rule in BOOKMARK_RULES.get(field_type, []):
            confidence = rule["confidence"]
            estimated = float(rule.get("estimated_count", 0))
            generation_type = rule["generation_type"]
            config = rule["config"]

            if generation_type == "per-category" and choices is not None:
                estimated = len(choices)
                if len(choices) > 20:
                    confidence *= 0.7
            elif generation_type == "per-item":
                estimated = stats.count - stats.null_count
                if estimated > 50:
                    confidence *= 0.3
            elif generation_type == "per-range":
                estimated = config.get("range_count", 5)
            elif generation_type == "per-time":
                if isinstance(stats.min, datetime) and isinstance(stats.max, datetime):
                    days = (stats.max - stats.min).total_seconds() / 86400
                    cap, period_days = TIME_ESTIMATES[config.get("time_granularity", "day")]
                    estimated = min(cap, days / period_days)

            suggestions.append(BookmarkSuggestion(
                generation_type=generation_type,
                confidence=min(1.0, confidence),
                reason=rule["reason"],
                estimated_count=math.ceil(estimated),
                config=dict(config),
            ))

        suggestions = [s for s in suggestions if s.confidence > 0.3]
        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions

    def recommend(self, fields: Sequence[FieldMeta]) -> List[AnalysisRecommendation]:
        """Confident, reasonably sized bookmark sets worth generating, best first."""
        recommendations = []
        for meta in fields:
            if not meta.suggested_bookmarks:
                continue
            best = meta.suggested_bookmarks[0]
            if best.confidence >= 0.7 and 0 < best.estimated_count <= 30:
                recommendations.append(AnalysisRecommendation(
                    field_name=meta.name,
                    description=(
                        f"Generate ~{best.estimated_count} {best.generation_type} bookmarks "
                        f'for "{meta.name}" - {best.reason}'
                    ),
                    priority=best.confidence * 0.8,
                ))
        recommendations.sort(key=lambda r: r.priority, reverse=True)
        return recommendations


def suggested_config(meta: FieldMeta) -> Optional[BookmarkGeneratorConfig]:
    """Generator config from the field's best suggestion, or None."""
    if not meta.suggested_bookmarks:
        return None
    best = meta.suggested_bookmarks[0]
    return BookmarkGeneratorConfig(
        field_name=meta.name,
        generation_type=best.generation_type,
        **best.config,
    )
