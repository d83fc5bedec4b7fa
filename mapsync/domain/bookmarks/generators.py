"""
Bookmark generation from field statistics.

Four strategies turn a field of the record set into a list of bookmarks:

* per-category: one bookmark per choice value
* per-range: numeric buckets, equal-width or quantile
* per-time: calendar periods between the first and last date
* per-item: one bookmark per record, sorted and limited

Generated bookmarks share a fixed overview camera centred on the current
location (zoom 16, pitch 60, bearing 0) and carry the ``control_values``
implied by their ``generated_from`` source. The functions here are pure;
``BookmarkManager.generate_bookmarks`` adds the results to its collection.
"""

from __future__ import annotations

import calendar
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from mapsync.core.models import (
    AppState,
    BookmarkGeneratorConfig,
    BookmarkTransition,
    CameraState,
    CategorySource,
    FieldMeta,
    GeneratedBookmarks,
    GenerationSummary,
    ItemSource,
    LayerState,
    RangeSource,
    SmartBookmark,
    TimePeriod,
    TimeSource,
)
from mapsync.core.models.generator import TimeGranularity
from mapsync.domain.analysis.field_analyzer import to_number
from mapsync.utils.ids import generate_bookmark_id

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]
Bounds = Tuple[Tuple[float, float], Tuple[float, float]]
FeatureBounds = Callable[[Record], Optional[Bounds]]
IdFactory = Callable[[], str]
Range = Tuple[float, float]

DEFAULT_RANGE_COUNT = 5
MAX_TIME_PERIODS = 100

GENERATED_ZOOM = 16
GENERATED_PITCH = 60
GENERATED_BEARING = 0

CATEGORY_ICONS = {
    "transport": "🚌",
    "education": "🎓",
    "santé": "🏥",
    "commerce": "🛒",
    "culture": "🎭",
    "sport": "⚽",
    "nature": "🌳",
    "industrie": "🏭",
}
RANGE_ICONS = ["1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣", "🔟"]
DEFAULT_ICON = "📍"
ITEM_ICON = "📌"
RANGE_FALLBACK_ICON = "📊"


# ============================================================================
# Formatting and icons
# ============================================================================


def format_number(n: float) -> str:
    """Compact label: ``1.5M``, ``2.3k``, ``42.0``."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1000:
        return f"{n / 1000:.1f}k"
    return f"{n:.1f}"


def format_period(moment: datetime, granularity: TimeGranularity) -> str:
    if granularity == "hour":
        return f"{moment.day} {moment:%b %H:%M}"
    if granularity == "day":
        return f"{moment.day} {moment:%b %Y}"
    if granularity == "week":
        return f"{moment.day} {moment:%b}"
    if granularity == "month":
        return f"{moment:%B %Y}"
    return f"{moment:%Y}"


def category_icon(category: str) -> str:
    lowered = category.lower()
    for key, icon in CATEGORY_ICONS.items():
        if key in lowered:
            return icon
    return DEFAULT_ICON


def range_icon(index: int) -> str:
    if 0 <= index < len(RANGE_ICONS):
        return RANGE_ICONS[index]
    return RANGE_FALLBACK_ICON


def time_icon(moment: datetime) -> str:
    hour = moment.hour
    if 6 <= hour < 12:
        return "🌅"
    if 12 <= hour < 18:
        return "☀️"
    if 18 <= hour < 21:
        return "🌆"
    return "🌙"


def _fill(template: str, **values: Any) -> str:
    result = template
    for key, value in values.items():
        result = result.replace("{" + key + "}", str(value))
    return result


# ============================================================================
# Bucketing
# ============================================================================


def equal_ranges(low: float, high: float, count: int) -> List[Range]:
    """``count`` contiguous buckets of equal width covering ``[low, high]``."""
    step = (high - low) / count
    ranges = [(low + i * step, low + (i + 1) * step) for i in range(count)]
    if ranges:
        # Keep the top edge exact despite float accumulation
        ranges[-1] = (ranges[-1][0], high)
    return ranges


def quantile_ranges(values: Sequence[float], count: int) -> List[Range]:
    """Buckets holding roughly ``len(values) / count`` sorted values each.

    Bucket ``i`` spans the sorted values from index ``floor(i/count * n)`` to
    ``floor((i+1)/count * n) - 1``. A value shared by two buckets belongs to
    the lower one (see ``bucket_index``); a bucket lying entirely at or
    below the previous bucket's upper bound adds nothing and is dropped, as
    are empty buckets when there are fewer values than buckets.
    """
    ordered = sorted(values)
    n = len(ordered)
    ranges: List[Range] = []
    for i in range(count):
        start_idx = math.floor(i / count * n)
        end_idx = math.floor((i + 1) / count * n) - 1
        if end_idx < start_idx:
            continue
        start, end = ordered[start_idx], ordered[end_idx]
        if ranges and end <= ranges[-1][1]:
            continue
        ranges.append((start, end))
    return ranges


def bucket_index(value: float, ranges: Sequence[Range]) -> Optional[int]:
    """Index of the bucket containing ``value``; the lower bucket wins on a shared boundary."""
    for idx, (start, end) in enumerate(ranges):
        if start <= value <= end:
            return idx
    return None


def numeric_values(records: Sequence[Record], field_name: str) -> List[float]:
    """Finite numbers of a field; booleans, blanks, NaN and infinities are skipped."""
    values: List[float] = []
    for record in records:
        raw = record.get(field_name)
        if isinstance(raw, bool):
            continue
        number = to_number(raw)
        if number is not None:
            values.append(number)
    return values


# ============================================================================
# Calendar periods
# ============================================================================


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_period_start(moment: datetime, granularity: TimeGranularity) -> datetime:
    if granularity == "hour":
        return moment + timedelta(hours=1)
    if granularity == "day":
        return moment + timedelta(days=1)
    if granularity == "week":
        return moment + timedelta(days=7)
    if granularity == "month":
        return add_months(moment, 1)
    return add_months(moment, 12)


def time_periods(
    start: datetime,
    end: datetime,
    granularity: TimeGranularity,
    limit: int = MAX_TIME_PERIODS,
) -> List[TimePeriod]:
    """Consecutive periods from ``start``; the last one is cut at ``end``. At most ``limit``."""
    periods: List[TimePeriod] = []
    current = start
    while current < end and len(periods) < limit:
        following = next_period_start(current, granularity)
        periods.append(TimePeriod(start=current, end=min(following, end)))
        current = following
    return periods


# ============================================================================
# Bookmark construction
# ============================================================================


def make_generated_bookmark(
    bookmark_id: str,
    name: str,
    current_state: AppState,
    transition: BookmarkTransition,
    **options: Any,
) -> SmartBookmark:
    """Bookmark at the overview camera over the current location.

    ``options`` are extra SmartBookmark fields (icon, description,
    generated_from...). Control values come from ``generated_from``.
    """
    source = options.get("generated_from")
    bookmark = SmartBookmark(
        id=bookmark_id,
        name=name,
        camera=CameraState(
            center=(current_state.location.lng, current_state.location.lat),
            zoom=GENERATED_ZOOM,
            pitch=GENERATED_PITCH,
            bearing=GENERATED_BEARING,
        ),
        ambiance=current_state.ambiance(),
        layer_states=[
            LayerState(layer_id=layer.id, visible=layer.visible)
            for layer in current_state.layers
        ],
        control_values=source.control_values() if source is not None else {},
        transition=transition.model_copy(deep=True),
        **options,
    )
    return bookmark


def _summary(config: BookmarkGeneratorConfig, count: int, **extra: Any) -> GenerationSummary:
    return GenerationSummary(
        total_generated=count,
        field_name=config.field_name,
        generation_type=config.generation_type,
        **extra,
    )


# ============================================================================
# Strategies
# ============================================================================


def generate_per_category(
    config: BookmarkGeneratorConfig,
    records: Sequence[Record],
    field_meta: FieldMeta,
    current_state: AppState,
    transition: BookmarkTransition,
    new_id: IdFactory,
    get_feature_bounds: Optional[FeatureBounds] = None,
) -> GeneratedBookmarks:
    choices = field_meta.choices or []
    bookmarks = []
    for category in choices:
        description = None
        if config.description_template:
            description = _fill(config.description_template, value=category)
        bookmarks.append(make_generated_bookmark(
            new_id(),
            _fill(config.name_template, value=category),
            current_state,
            transition,
            description=description,
            icon=category_icon(category),
            generated_from=CategorySource(field_name=config.field_name, value=category),
        ))
    return GeneratedBookmarks(
        bookmarks=bookmarks,
        summary=_summary(config, len(bookmarks), unique_values=len(choices)),
    )


def generate_per_range(
    config: BookmarkGeneratorConfig,
    records: Sequence[Record],
    field_meta: FieldMeta,
    current_state: AppState,
    transition: BookmarkTransition,
    new_id: IdFactory,
    get_feature_bounds: Optional[FeatureBounds] = None,
) -> GeneratedBookmarks:
    if field_meta.numeric_range is None:
        return GeneratedBookmarks(summary=_summary(config, 0))

    low, high = field_meta.numeric_range
    if not (math.isfinite(low) and math.isfinite(high)):
        return GeneratedBookmarks(summary=_summary(config, 0))
    count = config.range_count or DEFAULT_RANGE_COUNT

    ranges: List[Range] = []
    if config.range_method == "quantile":
        values = numeric_values(records, config.field_name)
        if values:
            ranges = quantile_ranges(values, count)
    if not ranges:
        if config.range_method == "jenks":
            logger.debug("Natural breaks not available; using equal-width ranges")
        ranges = equal_ranges(low, high, count)

    bookmarks = []
    for idx, (start, end) in enumerate(ranges):
        labels = {"start": format_number(start), "end": format_number(end), "index": idx + 1}
        description = None
        if config.description_template:
            description = _fill(config.description_template, **labels)
        bookmarks.append(make_generated_bookmark(
            new_id(),
            _fill(config.name_template, **labels),
            current_state,
            transition,
            description=description,
            icon=range_icon(idx),
            generated_from=RangeSource(field_name=config.field_name, value=(start, end)),
        ))
    return GeneratedBookmarks(
        bookmarks=bookmarks,
        summary=_summary(config, len(bookmarks), ranges=ranges),
    )


def generate_per_time(
    config: BookmarkGeneratorConfig,
    records: Sequence[Record],
    field_meta: FieldMeta,
    current_state: AppState,
    transition: BookmarkTransition,
    new_id: IdFactory,
    get_feature_bounds: Optional[FeatureBounds] = None,
) -> GeneratedBookmarks:
    if field_meta.date_range is None:
        return GeneratedBookmarks(summary=_summary(config, 0))

    start, end = field_meta.date_range
    granularity = config.time_granularity or "day"

    bookmarks = []
    for period in time_periods(start, end, granularity):
        label = format_period(period.start, granularity)
        description = None
        if config.description_template:
            description = _fill(config.description_template, value=label)
        bookmark = make_generated_bookmark(
            new_id(),
            _fill(config.name_template, value=label),
            current_state,
            transition,
            description=description,
            icon=time_icon(period.start),
            generated_from=TimeSource(field_name=config.field_name, value=period),
        )
        bookmark.ambiance.date = period.start.date().isoformat()
        if granularity == "hour":
            bookmark.ambiance.time_of_day = period.start.hour * 60 + period.start.minute
        bookmarks.append(bookmark)

    return GeneratedBookmarks(bookmarks=bookmarks, summary=_summary(config, len(bookmarks)))


def _sort_key(value: Any) -> Tuple[int, Any]:
    # Numbers first, then everything else by its text; None sorts last
    if value is None:
        return (2, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))


def generate_per_item(
    config: BookmarkGeneratorConfig,
    records: Sequence[Record],
    field_meta: FieldMeta,
    current_state: AppState,
    transition: BookmarkTransition,
    new_id: IdFactory,
    get_feature_bounds: Optional[FeatureBounds] = None,
) -> GeneratedBookmarks:
    selected = list(records)
    if config.sort_field:
        present = [r for r in selected if r.get(config.sort_field) is not None]
        missing = [r for r in selected if r.get(config.sort_field) is None]
        present.sort(
            key=lambda r: _sort_key(r.get(config.sort_field)),
            reverse=config.sort_order == "desc",
        )
        selected = present + missing
    if config.max_items:
        selected = selected[:config.max_items]

    center_on_feature = config.fly_to_feature or config.camera_mode != "current"

    bookmarks = []
    for position, record in enumerate(selected):
        item_id = record.get("id", position + 1)
        label = record.get(config.field_name) or f"Item {item_id}"
        description = None
        if config.description_template:
            description = _fill(config.description_template, value=label)
        bookmark = make_generated_bookmark(
            new_id(),
            _fill(config.name_template, value=label),
            current_state,
            transition,
            description=description,
            icon=ITEM_ICON,
            generated_from=ItemSource(field_name=config.field_name, value=item_id),
        )
        if center_on_feature and get_feature_bounds is not None:
            bounds = get_feature_bounds(record)
            if bounds:
                (west, south), (east, north) = bounds
                bookmark.camera.center = ((west + east) / 2, (south + north) / 2)
        bookmarks.append(bookmark)

    return GeneratedBookmarks(bookmarks=bookmarks, summary=_summary(config, len(bookmarks)))


GENERATORS: Dict[str, Callable[..., GeneratedBookmarks]] = {
    "per-category": generate_per_category,
    "per-range": generate_per_range,
    "per-time": generate_per_time,
    "per-item": generate_per_item,
}


def generate(
    config: BookmarkGeneratorConfig,
    records: Sequence[Record],
    field_meta: FieldMeta,
    current_state: AppState,
    default_transition: BookmarkTransition,
    new_id: IdFactory = generate_bookmark_id,
    get_feature_bounds: Optional[FeatureBounds] = None,
) -> GeneratedBookmarks:
    """Run the strategy named by ``config.generation_type``.

    ``custom`` (and anything unrecognised) yields an empty result.
    """
    generator = GENERATORS.get(config.generation_type)
    if generator is None:
        return GeneratedBookmarks(summary=_summary(config, 0))
    transition = config.default_transition or default_transition
    return generator(
        config,
        records,
        field_meta,
        current_state,
        transition,
        new_id,
        get_feature_bounds,
    )
