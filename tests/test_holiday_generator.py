from datetime import date

import pytest

from engine.holiday_generator import HolidayGenerator, compute_easter


def by_title(holidays):
    return {h.title: h.day for h in holidays}


class TestEaster:
    def test_known_dates(self):
        assert compute_easter(2024) == date(2024, 3, 31)
        assert compute_easter(2025) == date(2025, 4, 20)

    @pytest.mark.parametrize("year", [1000, 1582, 4100])
    def test_outside_gregorian_range(self, year):
        assert compute_easter(year) is None


class TestHolidayGenerator:
    def test_easter_relative_holidays(self):
        titles = by_title(HolidayGenerator().generate(2024))
        assert titles["Ash Wednesday"] == date(2024, 2, 14)
        assert titles["Palm Sunday"] == date(2024, 3, 24)
        assert titles["Good Friday"] == date(2024, 3, 29)
        assert titles["Easter Sunday"] == date(2024, 3, 31)

    def test_civil_holidays_included(self):
        titles = by_title(HolidayGenerator().generate(2024))
        assert titles["Independence Day"] == date(2024, 7, 4)
        assert titles["Christmas Day"] == date(2024, 12, 25)

    @pytest.mark.parametrize("year", [1999, 2024, 2025, 2038, 2100])
    def test_unique_dates(self, year):
        holidays = HolidayGenerator().generate(year)
        days = [h.day for h in holidays]
        assert len(days) == len(set(days))

    def test_all_entries_are_all_day_holidays(self):
        for holiday in HolidayGenerator().generate(2024):
            assert holiday.all_day is True
            assert holiday.is_holiday is True
            assert holiday.start == holiday.end
            assert holiday.start.date() == holiday.day

    def test_denylisted_names_removed(self):
        holidays = HolidayGenerator(denylist=["Thanksgiving Day", "Good Friday"]).generate(2024)
        titles = {h.title for h in holidays}
        assert "Thanksgiving Day" not in titles
        assert "Good Friday" not in titles
        assert "Easter Sunday" in titles

    def test_default_denylist_removes_day_after_thanksgiving(self):
        titles = by_title(HolidayGenerator(subdivision="CA").generate(2024))
        assert "Day After Thanksgiving" not in titles
        assert titles["Thanksgiving Day"] == date(2024, 11, 28)

    def test_day_after_thanksgiving_listed_without_denylist(self):
        titles = by_title(HolidayGenerator(subdivision="CA", denylist=[]).generate(2024))
        assert titles["Day After Thanksgiving"] == date(2024, 11, 29)

    def test_denylist_ignores_case(self):
        titles = by_title(HolidayGenerator(denylist=["GOOD FRIDAY"]).generate(2024))
        assert "Good Friday" not in titles

    def test_duplicate_date_first_seen_wins(self):
        class FoundersDay(HolidayGenerator):
            def _civil_holidays(self, year):
                yield "Founders Day", date(year, 3, 31)

        titles = by_title(FoundersDay().generate(2024))
        assert titles["Founders Day"] == date(2024, 3, 31)
        assert "Easter Sunday" not in titles

    def test_denylist_applies_after_dedup(self):
        class FoundersDay(HolidayGenerator):
            def _civil_holidays(self, year):
                yield "Founders Day", date(year, 3, 31)

        titles = by_title(FoundersDay(denylist=["Founders Day"]).generate(2024))
        # The denylisted entry already claimed the date
        assert "Founders Day" not in titles
        assert "Easter Sunday" not in titles

    def test_no_easter_means_no_holidays(self):
        assert HolidayGenerator().generate(1500) == []

    def test_memoised_per_year(self):
        generator = HolidayGenerator()
        first = generator.generate(2024)
        assert generator.generate(2024) == first
        assert 2024 in generator._cache
