"""Bookmark generation strategy tests."""

import json
import math
from datetime import datetime
from itertools import count

import pytest

from mapsync.core.models import (
    AppState,
    BookmarkGeneratorConfig,
    BookmarkTransition,
    FieldMeta,
    LayerInfo,
    Location,
)
from mapsync.domain.bookmarks import generators
from mapsync.domain.bookmarks.manager import default_transition

STATE = AppState(location=Location(lng=4.83, lat=45.76), layers=[LayerInfo(id="parks")])


def sequential_ids():
    counter = count(1)
    return lambda: f"bm-{next(counter)}"


def run(config, records=(), meta=None, **kwargs):
    meta = meta or FieldMeta(name=config.field_name)
    return generators.generate(
        config,
        list(records),
        meta,
        STATE,
        default_transition(),
        new_id=kwargs.pop("new_id", sequential_ids()),
        **kwargs,
    )


# ============================================================================
# per-category
# ============================================================================


def test_per_category_one_bookmark_per_choice():
    meta = FieldMeta(name="Kind", type="choice", choices=["A", "B", "C"])
    config = BookmarkGeneratorConfig(
        field_name="Kind",
        generation_type="per-category",
        name_template="View: {value}",
    )
    result = run(config, meta=meta, new_id=generators.generate_bookmark_id)

    assert [b.name for b in result.bookmarks] == ["View: A", "View: B", "View: C"]
    assert len({b.id for b in result.bookmarks}) == 3
    assert result.bookmarks[1].control_values == {"Kind": "B"}
    assert result.bookmarks[1].generated_from.value == "B"
    assert result.summary.total_generated == 3
    assert result.summary.unique_values == 3


def test_generated_camera_and_state():
    meta = FieldMeta(name="Kind", type="choice", choices=["Transport urbain"])
    result = run(BookmarkGeneratorConfig(field_name="Kind", generation_type="per-category"), meta=meta)
    bookmark = result.bookmarks[0]

    assert bookmark.camera.center == (4.83, 45.76)
    assert (bookmark.camera.zoom, bookmark.camera.pitch, bookmark.camera.bearing) == (16, 60, 0)
    assert bookmark.icon == "🚌"
    assert [layer.layer_id for layer in bookmark.layer_states] == ["parks"]
    assert bookmark.transition == default_transition()


def test_config_transition_overrides_default():
    meta = FieldMeta(name="Kind", type="choice", choices=["A", "B"])
    config = BookmarkGeneratorConfig(
        field_name="Kind",
        generation_type="per-category",
        default_transition=BookmarkTransition(type="ease", duration_ms=500),
    )
    result = run(config, meta=meta)

    assert all(b.transition.type == "ease" for b in result.bookmarks)
    assert result.bookmarks[0].transition is not result.bookmarks[1].transition


# ============================================================================
# per-range
# ============================================================================


def test_equal_ranges_partition_interval():
    ranges = generators.equal_ranges(0, 100, 5)
    assert ranges == [(0, 20), (20, 40), (40, 60), (60, 80), (80, 100)]


def test_per_range_equal():
    meta = FieldMeta(name="Height", type="numeric", numeric_range=(0, 100))
    config = BookmarkGeneratorConfig(
        field_name="Height",
        generation_type="per-range",
        name_template="{start} - {end} (#{index})",
    )
    result = run(config, meta=meta)

    assert len(result.bookmarks) == 5
    assert result.bookmarks[0].name == "0.0 - 20.0 (#1)"
    assert result.bookmarks[0].control_values == {"Height_min": 0, "Height_max": 20}
    assert result.bookmarks[4].icon == "5️⃣"
    assert result.summary.ranges[-1] == (80, 100)


def test_per_range_without_numeric_range_is_empty():
    result = run(BookmarkGeneratorConfig(field_name="Height", generation_type="per-range"))
    assert result.bookmarks == []


def test_quantile_ranges_drop_duplicates():
    assert generators.quantile_ranges([5, 5, 5, 5], 4) == [(5, 5)]
    assert generators.quantile_ranges([1, 2, 3, 4, 5, 6, 7, 8], 4) == [(1, 2), (3, 4), (5, 6), (7, 8)]
    assert generators.quantile_ranges([1, 2], 5) == [(1, 1), (2, 2)]


def test_bucket_boundary_goes_to_lower_bucket():
    ranges = generators.quantile_ranges([1, 1, 1, 1, 2], 2)
    assert ranges == [(1, 1), (1, 2)]
    assert generators.bucket_index(1, ranges) == 0
    assert generators.bucket_index(2, ranges) == 1
    assert generators.bucket_index(3, ranges) is None


def test_per_range_quantile_uses_record_values():
    records = [{"Pop": v} for v in (10, 20, 30, 40, "n/a", None)]
    meta = FieldMeta(name="Pop", type="integer", numeric_range=(10, 40))
    config = BookmarkGeneratorConfig(
        field_name="Pop",
        generation_type="per-range",
        range_count=2,
        range_method="quantile",
    )
    result = run(config, records, meta)
    assert result.summary.ranges == [(10, 20), (30, 40)]


def test_per_range_quantile_skips_non_finite_cells():
    records = [{"Pop": v} for v in (1, 2, "nan", 4, 5, 6, 7, 8, 9, 10, "inf", float("-inf"), True)]
    meta = FieldMeta(name="Pop", type="numeric", numeric_range=(1, 10))
    config = BookmarkGeneratorConfig(
        field_name="Pop",
        generation_type="per-range",
        range_count=5,
        range_method="quantile",
    )
    result = run(config, records, meta)

    assert result.summary.ranges == [(1, 1), (2, 4), (5, 6), (7, 8), (9, 10)]
    for bookmark in result.bookmarks:
        assert all(math.isfinite(v) for v in bookmark.control_values.values())
        json.loads(bookmark.model_dump_json())


def test_per_range_rejects_non_finite_numeric_range():
    meta = FieldMeta(name="Pop", type="numeric", numeric_range=(0, float("nan")))
    config = BookmarkGeneratorConfig(field_name="Pop", generation_type="per-range")
    assert run(config, meta=meta).bookmarks == []


def test_per_range_jenks_falls_back_to_equal():
    meta = FieldMeta(name="Pop", type="numeric", numeric_range=(0, 10))
    config = BookmarkGeneratorConfig(field_name="Pop", generation_type="per-range", range_count=2, range_method="jenks")
    assert run(config, meta=meta).summary.ranges == [(0, 5), (5, 10)]


def test_format_number():
    assert generators.format_number(1_500_000) == "1.5M"
    assert generators.format_number(2300) == "2.3k"
    assert generators.format_number(42) == "42.0"


# ============================================================================
# per-time
# ============================================================================


def test_per_time_days():
    meta = FieldMeta(
        name="When",
        type="date",
        date_range=(datetime(2024, 3, 1), datetime(2024, 3, 4)),
    )
    result = run(BookmarkGeneratorConfig(field_name="When", generation_type="per-time"), meta=meta)

    assert [b.name for b in result.bookmarks] == ["1 Mar 2024", "2 Mar 2024", "3 Mar 2024"]
    assert result.bookmarks[0].ambiance.date == "2024-03-01"
    assert result.bookmarks[0].control_values == {
        "When": {"start": "2024-03-01T00:00:00", "end": "2024-03-02T00:00:00"}
    }


def test_per_time_capped():
    meta = FieldMeta(name="When", type="date", date_range=(datetime(2024, 1, 1), datetime(2025, 1, 1)))
    result = run(BookmarkGeneratorConfig(field_name="When", generation_type="per-time"), meta=meta)
    assert len(result.bookmarks) == generators.MAX_TIME_PERIODS


def test_per_time_hours_set_time_of_day():
    meta = FieldMeta(
        name="When",
        type="datetime",
        date_range=(datetime(2024, 3, 1, 8, 30), datetime(2024, 3, 1, 10, 0)),
    )
    config = BookmarkGeneratorConfig(field_name="When", generation_type="per-time", time_granularity="hour")
    result = run(config, meta=meta)

    assert [b.ambiance.time_of_day for b in result.bookmarks] == [510, 570]
    assert result.bookmarks[0].icon == "🌅"
    # The last period is cut at the end of the range
    assert result.bookmarks[-1].generated_from.value.end == datetime(2024, 3, 1, 10, 0)


def test_add_months_clamps_day():
    assert generators.add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert generators.add_months(datetime(2024, 11, 15), 3) == datetime(2025, 2, 15)


def test_time_periods_month_and_year():
    months = generators.time_periods(datetime(2024, 1, 1), datetime(2024, 4, 1), "month")
    assert [p.start.month for p in months] == [1, 2, 3]

    years = generators.time_periods(datetime(2020, 6, 1), datetime(2022, 1, 1), "year")
    assert [p.start.year for p in years] == [2020, 2021]


# ============================================================================
# per-item
# ============================================================================


RECORDS = [
    {"id": 1, "Name": "Bakery", "Rating": 3},
    {"id": 2, "Name": "Museum", "Rating": None},
    {"id": 3, "Name": "Park", "Rating": 5},
    {"id": 4, "Name": None, "Rating": 4},
]


def test_per_item_sorted_and_limited():
    config = BookmarkGeneratorConfig(
        field_name="Name",
        generation_type="per-item",
        sort_field="Rating",
        sort_order="desc",
        max_items=3,
    )
    result = run(config, RECORDS)

    assert [b.name for b in result.bookmarks] == ["Park", "Item 4", "Bakery"]
    assert result.bookmarks[0].control_values == {"selectedId": 3}
    assert result.bookmarks[0].icon == "📌"


def test_per_item_missing_sort_values_last():
    config = BookmarkGeneratorConfig(field_name="Name", generation_type="per-item", sort_field="Rating")
    result = run(config, RECORDS)
    assert [b.generated_from.value for b in result.bookmarks] == [1, 4, 3, 2]


def test_per_item_centers_on_feature_bounds():
    config = BookmarkGeneratorConfig(field_name="Name", generation_type="per-item", fly_to_feature=True)

    def bounds(record):
        if record["id"] == 1:
            return ((0.0, 10.0), (2.0, 12.0))
        return None

    result = run(config, RECORDS, get_feature_bounds=bounds)

    assert result.bookmarks[0].camera.center == pytest.approx((1.0, 11.0))
    assert result.bookmarks[1].camera.center == (4.83, 45.76)


# ============================================================================
# Dispatch
# ============================================================================


def test_custom_generation_is_empty():
    result = run(BookmarkGeneratorConfig(field_name="x", generation_type="custom"))
    assert result.bookmarks == []
    assert result.summary.total_generated == 0
