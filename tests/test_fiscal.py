"""
Tests for fiscal module
Tests fiscal-year labels, month ordering and fiscal-month date ranges
"""

from datetime import date, timedelta

import pytest

from boxworks_dashboard.fiscal import (
    all_fiscal_month_names,
    all_fiscal_years,
    current_fiscal_year,
    date_range_of,
    fiscal_label,
    fiscal_month_number,
    fiscal_month_of,
    fiscal_year_of,
    is_date_in_fiscal_month,
    parse_fiscal_label,
)


class TestFiscalLabels:
    """Test label formatting and parsing"""

    def test_label_format(self):
        assert fiscal_label(2025) == "2025/26"
        assert fiscal_label(1999) == "1999/00"

    def test_parse_round_trip(self):
        assert parse_fiscal_label("2025/26") == 2025

    @pytest.mark.parametrize("label", ["2025", "2025/27", "FY25/26", "", "2025-26"])
    def test_parse_rejects_malformed(self, label):
        with pytest.raises(ValueError):
            parse_fiscal_label(label)


class TestFiscalYearOf:
    """Test assigning dates to fiscal years"""

    def test_start_month_belongs_to_new_year(self):
        fy = fiscal_year_of(date(2025, 7, 1))
        assert fy.label == "2025/26"
        assert fy.start == date(2025, 7, 1)
        assert fy.end == date(2026, 6, 30)

    def test_month_before_start_belongs_to_previous_year(self):
        assert fiscal_year_of(date(2026, 6, 30)).label == "2025/26"

    def test_custom_start_month(self):
        fy = fiscal_year_of(date(2026, 3, 31), start_month=4)
        assert fy.label == "2025/26"
        assert fy.end == date(2026, 3, 31)

    def test_january_start_matches_calendar_year(self):
        fy = fiscal_year_of(date(2025, 12, 31), start_month=1)
        assert fy.start == date(2025, 1, 1)
        assert fy.end == date(2025, 12, 31)

    def test_invalid_start_month(self):
        with pytest.raises(ValueError):
            fiscal_year_of(date(2025, 1, 1), start_month=13)

    def test_current_fiscal_year_uses_injected_today(self):
        assert current_fiscal_year(today=date(2025, 10, 19)).label == "2025/26"
        assert current_fiscal_year(today=date(2025, 6, 1)).label == "2024/25"


class TestFiscalMonths:
    """Test fiscal month names and ordering"""

    def test_default_order_starts_in_july(self):
        names = all_fiscal_month_names()
        assert names[0] == "Jul"
        assert names[-1] == "Jun"
        assert len(names) == 12

    def test_order_rotates_with_start_month(self):
        assert all_fiscal_month_names(4)[:2] == ["Apr", "May"]
        assert all_fiscal_month_names(1)[0] == "Jan"

    def test_month_of_date(self):
        assert fiscal_month_of(date(2025, 10, 19)) == "Oct"

    def test_month_number(self):
        assert fiscal_month_number("Jul") == 1
        assert fiscal_month_number("Jun") == 12
        assert fiscal_month_number("Apr", start_month=4) == 1

    def test_month_number_rejects_unknown(self):
        with pytest.raises(ValueError):
            fiscal_month_number("July")


class TestDateRange:
    """Test resolving (fiscal year, month) to calendar dates"""

    def test_month_in_start_year(self):
        assert date_range_of("2025/26", "Oct") == (date(2025, 10, 1), date(2025, 10, 31))

    def test_month_in_following_year(self):
        assert date_range_of("2025/26", "Jan") == (date(2026, 1, 1), date(2026, 1, 31))

    def test_leap_february(self):
        assert date_range_of("2023/24", "Feb") == (date(2024, 2, 1), date(2024, 2, 29))
        assert date_range_of("2024/25", "Feb") == (date(2025, 2, 1), date(2025, 2, 28))

    def test_custom_start_month(self):
        # April start: March is the last month and falls in the next calendar year
        assert date_range_of("2025/26", "Mar", start_month=4) == (date(2026, 3, 1), date(2026, 3, 31))
        assert date_range_of("2025/26", "Apr", start_month=4) == (date(2025, 4, 1), date(2025, 4, 30))

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            date_range_of("2025/26", "Foo")

    def test_invalid_label(self):
        with pytest.raises(ValueError):
            date_range_of("2025", "Oct")

    @pytest.mark.parametrize("start_month", [1, 4, 7, 10])
    def test_months_tile_the_fiscal_year(self, start_month):
        """The twelve ranges are contiguous and cover the fiscal year exactly"""
        for start_year in (2023, 2024, 2025):
            label = fiscal_label(start_year)
            ranges = [date_range_of(label, m, start_month) for m in all_fiscal_month_names(start_month)]
            fy = fiscal_year_of(ranges[0][0], start_month)

            assert fy.label == label
            assert ranges[0][0] == fy.start
            assert ranges[-1][1] == fy.end
            for (_, prev_end), (next_start, _) in zip(ranges, ranges[1:]):
                assert next_start == prev_end + timedelta(days=1)

    def test_every_date_lands_in_its_own_month(self):
        d = date(2024, 7, 1)
        while d <= date(2025, 6, 30):
            fy = fiscal_year_of(d)
            assert is_date_in_fiscal_month(d, fy.label, fiscal_month_of(d))
            d += timedelta(days=1)


class TestAllFiscalYears:
    """Test the fiscal year picker options"""

    def test_oldest_first_ending_at_current(self):
        assert all_fiscal_years(2, today=date(2025, 10, 19)) == ["2023/24", "2024/25", "2025/26"]

    def test_zero_years_back(self):
        assert all_fiscal_years(0, today=date(2025, 10, 19)) == ["2025/26"]
