from achievements import (
    academic_year, calendar_year, export_row, filter_options, filter_own,
    filter_wall, parse_date, sort_newest_first,
)


def test_academic_year_before_june_ends_in_that_year():
    assert academic_year("2024-03-15") == "2023-2024"
    assert academic_year("2024-05-31") == "2023-2024"


def test_academic_year_from_june_starts_in_that_year():
    assert academic_year("2024-07-01") == "2024-2025"
    assert academic_year("2024-06-01") == "2024-2025"
    assert academic_year("2024-12-31") == "2024-2025"


def test_academic_year_unparseable():
    assert academic_year("") == "N/A"
    assert academic_year(None) == "N/A"
    assert academic_year("15/03/2024") == "N/A"


def test_parse_date_accepts_timestamps():
    assert parse_date("2024-03-15T10:30:00Z").day == 15
    assert parse_date("not a date") is None
    assert calendar_year("2023-11-02") == "2023"


def test_sort_puts_missing_and_malformed_dates_last():
    docs = [
        {"title": "old", "date": "2021-01-01"},
        {"title": "broken", "date": "yesterday"},
        {"title": "new", "date": "2024-02-02"},
        {"title": "none"},
    ]
    ordered = [d["title"] for d in sort_newest_first(docs)]
    assert ordered[:2] == ["new", "old"]
    assert set(ordered[2:]) == {"broken", "none"}


def test_filter_wall_by_type_without_matches_is_empty():
    docs = [{"type": "Workshop", "date": "2024-01-01"}]
    assert filter_wall(docs, type_="Publication") == []


def test_filter_wall_by_year_and_department():
    docs = [
        {"title": "a", "date": "2023-08-01", "department": "CSE"},
        {"title": "b", "date": "2024-02-01", "department": "CSE"},
        {"title": "c", "date": "2024-09-01", "department": "ECE"},
    ]
    assert [d["title"] for d in filter_wall(docs, year="2024")] == ["c", "b"]
    assert [d["title"] for d in filter_wall(docs, year="2024", department="CSE")] == ["b"]


def test_filter_own_status_is_case_insensitive():
    docs = [{"status": "pending", "date": "2024-01-01"}, {"status": "approved", "date": "2024-01-02"}]
    assert len(filter_own(docs, status="Pending")) == 1
    assert filter_own(docs, date="2024-01-02")[0]["status"] == "approved"


def test_filter_options():
    docs = [
        {"type": "Workshop", "date": "2023-01-01", "department": "CSE"},
        {"type": "Hackathon", "date": "2024-01-01"},
        {"type": "Workshop", "date": "bad"},
    ]
    opts = filter_options(docs)
    assert opts["types"] == ["Hackathon", "Workshop"]
    assert opts["years"] == ["2024", "2023"]
    assert opts["departments"] == ["CSE"]


def test_export_row_blanks_roll_number_for_faculty():
    row = export_row({"name": "Ravi", "roll_no": "X1", "date": "2024-07-01", "submitted_by": "faculty"})
    assert row["RollNo"] == ""
    assert row["AcademicYear"] == "2024-2025"
    assert row["AchievementType"] == "N/A"


def test_export_row_reads_legacy_field_names():
    row = export_row({"studentName": "Asha", "rollNo": "21A91A0501", "achievementType": "Sports",
                      "date": "2024-03-15", "submitted_by": "student"})
    assert row["Name"] == "Asha"
    assert row["RollNo"] == "21A91A0501"
    assert row["AchievementType"] == "Sports"
    assert row["CertificateIssuedDate"] == "2024-03-15"
