"""Tests for schedule parsing and break insertion (schoolface/schedule.py)."""

from __future__ import annotations

from datetime import UTC, date, time, timedelta, timezone

import pytest
from schoolface.schedule import (
    BREAK_COLOR,
    BREAK_NAME,
    LUNCH_UNAVAILABLE,
    ClassInterval,
    LunchMenu,
    SchedulePayloadError,
    SchoolDay,
    build_school_day,
    insert_breaks,
    parse_lunch_payload,
    parse_schedule_payload,
)

DEFAULT_END = time(15, 15)


def _entry(name: str, start: str, end: str, color: str = "#112233") -> dict:
    return {"class": {"name": name, "color": color}, "start": start, "end": end}


# ---------------------------------------------------------------------------
# ClassInterval
# ---------------------------------------------------------------------------


class TestClassInterval:
    def test_rejects_end_before_start(self):
        with pytest.raises(ValueError, match="before it starts"):
            ClassInterval("Math", time(9, 0), time(8, 0), (0, 0, 0))

    def test_zero_length_is_allowed(self):
        interval = ClassInterval("Assembly", time(9, 0), time(9, 0), (0, 0, 0))
        assert interval.start == interval.end

    def test_from_json_parses_color_and_times(self):
        interval = ClassInterval.from_json(_entry("Math", "2025-01-15T08:00:00", "2025-01-15T08:45:00", "#FF8000"))
        assert interval.name == "Math"
        assert interval.start == time(8, 0)
        assert interval.end == time(8, 45)
        assert interval.color == (255, 128, 0)

    def test_from_json_converts_to_target_timezone(self):
        central = timezone(timedelta(hours=-6))
        interval = ClassInterval.from_json(
            _entry("Math", "2025-01-15T14:00:00Z", "2025-01-15T14:50:00+00:00"),
            central,
        )
        assert interval.start == time(8, 0)
        assert interval.end == time(8, 50)

    @pytest.mark.parametrize(
        "entry",
        [
            {"start": "2025-01-15T08:00:00", "end": "2025-01-15T09:00:00"},
            {"class": {"name": "Math"}, "start": "2025-01-15T08:00:00", "end": "2025-01-15T09:00:00"},
            _entry("Math", "not a date", "2025-01-15T09:00:00"),
            _entry("Math", "2025-01-15T08:00:00", "2025-01-15T09:00:00", color="chartreuse-ish"),
            {"class": {"name": 42, "color": "#000000"}, "start": "2025-01-15T08:00:00", "end": "2025-01-15T09:00:00"},
        ],
    )
    def test_from_json_rejects_malformed_entries(self, entry):
        with pytest.raises(SchedulePayloadError):
            ClassInterval.from_json(entry)


# ---------------------------------------------------------------------------
# insert_breaks / build_school_day
# ---------------------------------------------------------------------------


class TestInsertBreaks:
    def test_empty_input(self):
        assert insert_breaks([]) == []

    def test_single_class_unchanged(self, make_class):
        only = make_class("A", "8:00", "8:50")
        assert insert_breaks([only]) == [only]

    def test_gap_is_filled_with_break(self, make_class):
        a = make_class("A", "8:00", "8:50")
        b = make_class("B", "9:00", "9:50")
        result = insert_breaks([a, b])
        assert [item.name for item in result] == ["A", BREAK_NAME, "B"]
        assert result[1].start == time(8, 50)
        assert result[1].end == time(9, 0)
        assert result[1].color == BREAK_COLOR

    def test_back_to_back_classes_get_no_break(self, make_class):
        a = make_class("A", "8:00", "8:50")
        b = make_class("B", "8:50", "9:40")
        assert insert_breaks([a, b]) == [a, b]

    def test_every_class_emitted_once(self, make_class):
        classes = [
            make_class("A", "8:00", "8:50"),
            make_class("B", "9:00", "9:50"),
            make_class("C", "9:50", "10:40"),
            make_class("D", "11:00", "11:45"),
        ]
        result = insert_breaks(classes)
        assert [item.name for item in result if not item.is_break] == ["A", "B", "C", "D"]

    def test_output_is_gap_free(self, make_class):
        classes = [
            make_class("A", "8:00", "8:50"),
            make_class("B", "9:00", "9:50"),
            make_class("C", "10:05", "10:55"),
            make_class("D", "10:55", "11:45"),
            make_class("E", "13:00", "13:30"),
        ]
        result = insert_breaks(classes)
        for current, following in zip(result, result[1:]):
            assert current.end == following.start

    def test_no_break_before_first_or_after_last(self, make_class):
        result = insert_breaks([make_class("A", "8:00", "8:50"), make_class("B", "9:00", "9:50")])
        assert not result[0].is_break
        assert not result[-1].is_break

    def test_overlapping_neighbours_get_no_break(self, make_class):
        a = make_class("A", "8:00", "9:00")
        b = make_class("B", "8:30", "9:30")
        assert insert_breaks([a, b]) == [a, b]


class TestBuildSchoolDay:
    def test_scenario_two_classes_with_gap(self, make_class):
        day = build_school_day(
            [make_class("A", "8:00", "8:50"), make_class("B", "9:00", "9:50")],
            "Day 1",
            DEFAULT_END,
        )
        assert [item.name for item in day.classes] == ["A", BREAK_NAME, "B"]
        assert day.effective_end == time(9, 50)
        assert day.in_session is True

    def test_effective_end_capped_by_default(self, make_class):
        day = build_school_day([make_class("Late", "14:00", "16:00")], 1, DEFAULT_END)
        assert day.effective_end == DEFAULT_END

    def test_no_day_means_not_in_session(self, make_class):
        day = build_school_day([make_class("A", "8:00", "8:50")], None, DEFAULT_END)
        assert day.in_session is False
        assert len(day.classes) == 1

    def test_empty_classes_in_session(self):
        day = build_school_day([], "Day 3", DEFAULT_END)
        assert day.in_session is True
        assert day.classes == ()
        assert day.effective_end == DEFAULT_END
        assert day.first_start is None


# ---------------------------------------------------------------------------
# parse_schedule_payload
# ---------------------------------------------------------------------------


class TestParseSchedulePayload:
    def test_full_payload(self):
        payload = {
            "schedule": {
                "day": 2,
                "classes": [
                    _entry("A", "2025-01-15T08:00:00", "2025-01-15T08:50:00"),
                    _entry("B", "2025-01-15T09:00:00", "2025-01-15T09:50:00"),
                ],
            }
        }
        day = parse_schedule_payload(payload, DEFAULT_END)
        assert day.in_session is True
        assert [item.name for item in day.classes] == ["A", BREAK_NAME, "B"]
        assert day.effective_end == time(9, 50)

    def test_null_day_with_classes(self):
        payload = {"schedule": {"day": None, "classes": [_entry("A", "2025-01-15T08:00:00", "2025-01-15T08:50:00")]}}
        day = parse_schedule_payload(payload, DEFAULT_END)
        assert day.in_session is False

    def test_empty_classes(self):
        day = parse_schedule_payload({"schedule": {"day": "A", "classes": []}}, DEFAULT_END)
        assert day.in_session is True
        assert day.effective_end == DEFAULT_END

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            {},
            {"schedule": None},
            {"schedule": {"day": 1}},
            {"schedule": {"day": 1, "classes": "nope"}},
            {"schedule": {"day": 1, "classes": [{"class": {}}]}},
            {"schedule": {"day": 1, "classes": [_entry("A", "2025-01-15T09:00:00", "2025-01-15T08:00:00")]}},
        ],
    )
    def test_malformed_payload_yields_empty_day(self, payload, mock_logger):
        day = parse_schedule_payload(payload, DEFAULT_END, logger=mock_logger)
        assert day == SchoolDay.empty(DEFAULT_END)
        mock_logger.warning.assert_called_once()

    def test_timezone_is_applied(self):
        payload = {
            "schedule": {
                "day": 1,
                "classes": [_entry("A", "2025-01-15T13:00:00Z", "2025-01-15T13:50:00Z")],
            }
        }
        day = parse_schedule_payload(payload, DEFAULT_END, UTC)
        assert day.classes[0].start == time(13, 0)


# ---------------------------------------------------------------------------
# Lunch
# ---------------------------------------------------------------------------


class TestParseLunchPayload:
    TODAY = date(2025, 1, 15)

    def test_today_main_dishes(self):
        payload = {
            "lunch": {
                "2025-01-15": {"upperschool": {"categories": {"Main Dish": ["Tacos", " Pasta "], "Sides": ["Rice"]}}},
                "2025-01-16": {"upperschool": {"categories": {"Main Dish": ["Pizza"]}}},
            }
        }
        menu = parse_lunch_payload(payload, self.TODAY)
        assert menu.dishes == ("Tacos", "Pasta")
        assert menu.available

    def test_missing_day_is_unavailable(self):
        payload = {"lunch": {"2025-01-16": {"upperschool": {"categories": {"Main Dish": ["Pizza"]}}}}}
        menu = parse_lunch_payload(payload, self.TODAY)
        assert menu == LunchMenu.unavailable()
        assert menu.dishes == (LUNCH_UNAVAILABLE,)
        assert not menu.available

    def test_empty_dish_list_is_unavailable(self):
        payload = {"lunch": {"2025-01-15": {"upperschool": {"categories": {"Main Dish": []}}}}}
        assert parse_lunch_payload(payload, self.TODAY) == LunchMenu.unavailable()

    def test_wrong_shape_is_unavailable(self):
        assert parse_lunch_payload({"lunch": []}, self.TODAY) == LunchMenu.unavailable()
        assert parse_lunch_payload(None, self.TODAY) == LunchMenu.unavailable()
