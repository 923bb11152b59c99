"""
Tests for the analysis core: durations, date ranges, filtering, aggregation
and the journal helpers.
"""

from datetime import date, datetime, time

import pytest

from conftest import make_shift
from domain import AttributeFilters, DistributionItem, Settings, ShiftCode
from services import (
    INVALID_RANGE_LABEL,
    NO_DATE_GROUP,
    ShiftAnalyzer,
    aggregate,
    calculate_duration,
    code_for,
    exceeds_code_hours,
    filter_shifts,
    group_by_month,
    resolve_range,
    shift_reference,
    sort_for_journal,
)


# =============================================================================
# DURATION
# =============================================================================


class TestCalculateDuration:
    def test_same_day(self):
        assert calculate_duration("07:00", "19:00") == 12.0

    def test_minutes(self):
        assert calculate_duration("07:15", "08:00") == 0.75

    def test_overnight_wraps_midnight(self):
        assert calculate_duration("22:54", "07:06") == 8.2

    def test_equal_times_are_zero_not_24(self):
        assert calculate_duration("08:00", "08:00") == 0

    @pytest.mark.parametrize("start,end", [
        (None, "08:00"),
        ("08:00", None),
        ("", "08:00"),
        ("8", "09:00"),
        ("ab:cd", "09:00"),
        ("25:00", "09:00"),
        ("08:61", "09:00"),
    ])
    def test_missing_or_malformed_is_zero(self, start, end):
        assert calculate_duration(start, end) == 0

    def test_accepts_time_objects(self):
        assert calculate_duration(time(20, 0), time(6, 30)) == 10.5


# =============================================================================
# DATE RANGES
# =============================================================================


class TestResolveRange:
    def test_month_in_leap_year(self):
        rng = resolve_range("month", date(2024, 2, 15))
        assert rng.start == datetime(2024, 2, 1)
        assert rng.end == datetime(2024, 2, 29, 23, 59, 59, 999000)
        assert rng.label == "Februar 2024"
        assert rng.target_hours == pytest.approx(29 / 7 * 7.8)
        assert rng.target_hours == pytest.approx(32.31, abs=0.01)
        assert not rng.invalid

    def test_month_accepts_date_string(self):
        rng = resolve_range("month", "2024-12-03")
        assert rng.start == datetime(2024, 12, 1)
        assert rng.end.date() == date(2024, 12, 31)
        assert rng.label == "Dezember 2024"

    def test_year_uses_fixed_annual_target(self):
        rng = resolve_range("year", date(2023, 6, 1))
        assert rng.start == datetime(2023, 1, 1)
        assert rng.end == datetime(2023, 12, 31, 23, 59, 59, 999000)
        assert rng.label == "2023"
        assert rng.target_hours == pytest.approx(52.14 * 7.8)

    def test_custom_range(self):
        rng = resolve_range("custom", date(2024, 3, 15), "2024-03-01", "2024-03-14")
        assert rng.start == datetime(2024, 3, 1)
        assert rng.end == datetime(2024, 3, 14, 23, 59, 59, 999000)
        assert rng.label == "01.03.24 - 14.03.24"
        assert rng.target_hours == pytest.approx(14 / 7 * 7.8)
        assert not rng.invalid

    def test_custom_single_day_counts_one_day(self):
        rng = resolve_range("custom", None, date(2024, 3, 1), date(2024, 3, 1))
        assert rng.target_hours == pytest.approx(1 / 7 * 7.8)

    @pytest.mark.parametrize("start,end", [("", ""), ("2024-03-01", ""), (None, "2024-03-01"), ("2024-02-30", "2024-03-01")])
    def test_custom_invalid_falls_back_to_current_month(self, start, end):
        rng = resolve_range("custom", date(2020, 1, 1), start, end, today=date(2024, 5, 20))
        assert rng.invalid
        assert rng.target_hours == 0
        assert rng.label == INVALID_RANGE_LABEL
        assert rng.start == datetime(2024, 5, 1)
        assert rng.end == datetime(2024, 5, 31, 23, 59, 59, 999000)

    def test_custom_invalid_defaults_to_today(self):
        rng = resolve_range("custom", None, "", "")
        today = date.today()
        assert rng.invalid
        assert rng.start <= datetime(today.year, today.month, today.day) <= rng.end

    def test_unknown_mode_never_raises(self):
        rng = resolve_range("week", date(2024, 3, 1), today=date(2024, 3, 1))
        assert rng.invalid

    def test_custom_weekly_target_is_configurable(self):
        rng = resolve_range("month", date(2024, 3, 1), weekly_target_hours=10.0)
        assert rng.target_hours == pytest.approx(31 / 7 * 10.0)


class TestShiftReference:
    def test_month_steps_across_year_boundary(self):
        assert shift_reference(date(2024, 1, 31), "month", -1) == date(2023, 12, 1)
        assert shift_reference(date(2024, 12, 5), "month", 1) == date(2025, 1, 1)

    def test_year_steps(self):
        assert shift_reference(date(2024, 6, 1), "year", 1) == date(2025, 1, 1)


# =============================================================================
# FILTERING
# =============================================================================


class TestFilterShifts:
    def test_month_bounds_are_inclusive(self, mixed_shifts, reference_date):
        rng = resolve_range("month", reference_date)
        dates = sorted(s.date for s in filter_shifts(mixed_shifts, rng))
        assert dates == ["2024-03-01", "2024-03-05", "2024-03-05", "2024-03-31"]

    def test_unparseable_dates_are_dropped(self, mixed_shifts):
        rng = resolve_range("year", date(2024, 1, 1))
        ids = {s.id for s in filter_shifts(mixed_shifts, rng)}
        assert "broken-date" not in ids
        assert "empty-date" not in ids
        assert len(ids) == 6

    def test_or_within_criterion(self, mixed_shifts, reference_date):
        rng = resolve_range("month", reference_date)
        filters = AttributeFilters.of(stations=["Hauptwache", "Südwache"])
        stations = {s.station for s in filter_shifts(mixed_shifts, rng, filters)}
        assert stations == {"Hauptwache", "Südwache"}

    def test_and_across_criteria(self, mixed_shifts, reference_date):
        rng = resolve_range("month", reference_date)
        filters = AttributeFilters.of(types=["t1"], stations=["Nordwache"], vehicles=["R-RTW-1"])
        result = filter_shifts(mixed_shifts, rng, filters)
        assert [(s.date, s.start_time) for s in result] == [("2024-03-05", "07:00")]

    def test_empty_sets_do_not_restrict(self, mixed_shifts, reference_date):
        rng = resolve_range("month", reference_date)
        assert filter_shifts(mixed_shifts, rng, AttributeFilters()) == filter_shifts(mixed_shifts, rng)

    def test_idempotent(self, mixed_shifts, reference_date):
        rng = resolve_range("month", reference_date)
        filters = AttributeFilters.of(types=["t1", "t2"])
        first = filter_shifts(mixed_shifts, rng, filters)
        second = filter_shifts(mixed_shifts, rng, filters)
        assert {s.id for s in first} == {s.id for s in second}

    def test_invalid_custom_range_still_filters(self, mixed_shifts):
        rng = resolve_range("custom", None, "", "", today=date(2024, 3, 10))
        assert len(filter_shifts(mixed_shifts, rng)) == 4

    def test_none_is_a_programmer_error(self, reference_date):
        with pytest.raises(TypeError):
            filter_shifts(None, resolve_range("month", reference_date))


# =============================================================================
# AGGREGATION
# =============================================================================


class TestAggregate:
    def test_march_scenario(self, march_shifts, shift_types):
        rng = resolve_range("month", date(2024, 3, 1))
        filtered = filter_shifts(march_shifts, rng)
        stats = aggregate(filtered, shift_types, rng.target_hours)
        assert stats.actual_hours == 20.0
        assert stats.shift_count == 2
        assert stats.distribution_series == [DistributionItem("Tagdienst", 2)]
        assert stats.delta == pytest.approx(20.0 - 31 / 7 * 7.8)

    def test_chart_series_grouped_by_date_and_sorted(self, mixed_shifts, shift_types, reference_date):
        rng = resolve_range("month", reference_date)
        stats = aggregate(filter_shifts(mixed_shifts, rng), shift_types)
        assert [p.date for p in stats.chart_series] == ["2024-03-01", "2024-03-05", "2024-03-31"]
        assert [p.label for p in stats.chart_series] == ["01.", "05.", "31."]
        assert stats.chart_series[1].hours == 17.0

    def test_unknown_type_and_count_order(self, mixed_shifts, shift_types, reference_date):
        rng = resolve_range("month", reference_date)
        stats = aggregate(filter_shifts(mixed_shifts, rng), shift_types)
        assert stats.distribution_series == [
            DistributionItem("Tagdienst", 2),
            DistributionItem("Nachtdienst", 1),
            DistributionItem("Unbekannt", 1),
        ]
        assert sum(d.value for d in stats.distribution_series) == stats.shift_count

    def test_missing_type_id_is_unknown(self, shift_types):
        stats = aggregate([make_shift(type_id=None)], shift_types)
        assert stats.distribution_series == [DistributionItem("Unbekannt", 1)]

    def test_deterministic_regardless_of_input_order(self, mixed_shifts, shift_types):
        a = aggregate(mixed_shifts, shift_types)
        b = aggregate(list(reversed(mixed_shifts)), shift_types)
        assert a.chart_series == b.chart_series
        assert a.distribution_series == b.distribution_series

    def test_unparseable_date_gets_placeholder_label(self, shift_types):
        stats = aggregate([make_shift("kaputt")], shift_types)
        assert stats.chart_series[0].label == "??"

    def test_empty_input(self, shift_types):
        stats = aggregate([], shift_types, target_hours=10.0)
        assert stats.actual_hours == 0
        assert stats.shift_count == 0
        assert stats.chart_series == []
        assert stats.delta == -10.0

    def test_positive_delta_means_overtime(self, shift_types):
        stats = aggregate([make_shift(start="06:00", end="18:00")], shift_types, target_hours=7.8)
        assert stats.delta == pytest.approx(4.2)

    def test_none_is_a_programmer_error(self, shift_types):
        with pytest.raises(TypeError):
            aggregate(None, shift_types)


# =============================================================================
# PIPELINE
# =============================================================================


class TestShiftAnalyzer:
    def test_analyze_runs_the_whole_pipeline(self, march_shifts, settings):
        result = ShiftAnalyzer().analyze(march_shifts, settings, "month", date(2024, 3, 20))
        assert result.date_range.label == "März 2024"
        assert len(result.shifts) == 2
        assert result.stats.actual_hours == 20.0
        assert result.stats.target_hours == result.date_range.target_hours

    def test_recompute_on_new_list_is_idempotent(self, march_shifts, settings):
        analyzer = ShiftAnalyzer()
        first = analyzer.analyze(march_shifts, settings, "month", date(2024, 3, 1))
        again = analyzer.analyze(list(march_shifts), settings, "month", date(2024, 3, 1))
        assert first == again
        grown = analyzer.analyze(march_shifts + [make_shift("2024-03-10")], settings, "month", date(2024, 3, 1))
        assert grown.stats.shift_count == 3

    def test_weekly_target_override(self, march_shifts, settings):
        result = ShiftAnalyzer(weekly_target_hours=0).analyze(march_shifts, settings, "year", date(2024, 1, 1))
        assert result.stats.delta == 20.0


# =============================================================================
# JOURNAL
# =============================================================================


class TestJournal:
    def test_sorted_newest_first_by_date_then_start(self):
        shifts = [
            make_shift("2024-03-01", "06:00"),
            make_shift("2024-03-05", "07:00"),
            make_shift("2024-03-05", "19:00"),
        ]
        ordered = sort_for_journal(shifts)
        assert [(s.date, s.start_time) for s in ordered] == [
            ("2024-03-05", "19:00"), ("2024-03-05", "07:00"), ("2024-03-01", "06:00"),
        ]

    def test_grouped_by_month_with_undated_last(self, mixed_shifts):
        groups = group_by_month(mixed_shifts)
        names = [name for name, _ in groups]
        assert names == ["April 2024", "März 2024", "Februar 2024", NO_DATE_GROUP]
        assert len(dict(groups)["März 2024"]) == 4

    def test_code_lookup_and_badge(self):
        settings = Settings(shift_codes=[ShiftCode("c1", "T", 12.0)])
        long_day = make_shift(start="06:00", end="19:00", code_id="c1")
        short_day = make_shift(start="07:00", end="19:00", code_id="c1")
        assert code_for(long_day, settings).code == "T"
        assert exceeds_code_hours(long_day, settings)
        assert not exceeds_code_hours(short_day, settings)

    def test_deleted_code_resolves_to_none(self, settings):
        assert code_for(make_shift(code_id="weg"), settings) is None
