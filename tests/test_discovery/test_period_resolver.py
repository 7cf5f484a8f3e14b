"""Tests for report period resolution."""

from datetime import date

from attrition_brain.discovery.period_resolver import (
    month_bounds,
    month_name_to_num,
    resolve_period,
    spanish_month_name,
)

TODAY = date(2024, 7, 10)


class TestMonthHelpers:
    def test_month_name_to_num(self):
        assert month_name_to_num("Marzo") == 3
        assert month_name_to_num("setiembre") == 9
        assert month_name_to_num("SEPTIEMBRE") == 9
        assert month_name_to_num("march") is None
        assert month_name_to_num(None) is None

    def test_month_bounds_leap_year(self):
        assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds(2023, 2) == (date(2023, 2, 1), date(2023, 2, 28))

    def test_spanish_month_name(self):
        assert spanish_month_name(12) == "Diciembre"
        assert spanish_month_name(13) == ""


class TestResolvePeriod:
    def test_filename_month_wins(self):
        records = [{"fecha_baja": date(2023, 11, 3)}]
        period = resolve_period("marzo", records, today=TODAY)
        assert period.start == date(2024, 3, 1)
        assert period.end == date(2024, 3, 31)
        assert period.source == "filename"
        assert period.label == "Marzo 2024"

    def test_latest_separation_month(self):
        records = [
            {"fecha_baja": date(2023, 11, 3)},
            {"fecha_baja": date(2024, 2, 14)},
            {"fecha_baja": None},
        ]
        period = resolve_period(None, records, today=TODAY)
        assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))
        assert period.source == "data"

    def test_unknown_token_falls_through(self):
        period = resolve_period("q3", [{"fecha_baja": date(2024, 5, 2)}], today=TODAY)
        assert period.start == date(2024, 5, 1)
        assert period.source == "data"

    def test_current_month_fallback(self):
        period = resolve_period(None, [], today=TODAY)
        assert (period.start, period.end) == (date(2024, 7, 1), date(2024, 7, 31))
        assert period.source == "today"
