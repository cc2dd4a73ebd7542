"""
Business logic over achievement records.

Everything here works on plain Mongo documents (dicts) and never touches the
database, so the public wall, the submitter dashboards and the export
renderers share one notion of dates, academic years and display names.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

EPOCH = datetime(1970, 1, 1)

EXPORT_COLUMNS = [
    "Name",
    "RollNo",
    "AchievementType",
    "Title",
    "Description",
    "AcademicYear",
    "CertificateIssuedDate",
    "SubmittedBy",
]


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a stored achievement date ('YYYY-MM-DD' or a full ISO timestamp)."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d")
    except ValueError:
        return None


def sort_key(doc: Dict[str, Any]) -> datetime:
    # Malformed or missing dates sort as the oldest
    return parse_date(doc.get("date")) or EPOCH


def sort_newest_first(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(docs, key=sort_key, reverse=True)


def calendar_year(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    return str(parsed.year) if parsed else None


def academic_year(value: Any) -> str:
    """
    Academic years run June to April.

    January-May belong to the year pair ending in that calendar year,
    June-December to the pair starting in it:

        2024-03-15 -> "2023-2024"
        2024-07-01 -> "2024-2025"
    """
    parsed = parse_date(value)
    if parsed is None:
        return "N/A"
    year = parsed.year
    if parsed.month <= 5:
        return f"{year - 1}-{year}"
    return f"{year}-{year + 1}"


def filter_wall(docs: Iterable[Dict[str, Any]], type_: Optional[str] = None, year: Optional[str] = None,
                department: Optional[str] = None) -> List[Dict[str, Any]]:
    out = []
    for d in docs:
        if type_ and d.get("type") != type_:
            continue
        if year and calendar_year(d.get("date")) != str(year):
            continue
        if department and d.get("department") != department:
            continue
        out.append(d)
    return sort_newest_first(out)


def filter_own(docs: Iterable[Dict[str, Any]], type_: Optional[str] = None, status: Optional[str] = None,
               date: Optional[str] = None) -> List[Dict[str, Any]]:
    out = []
    for d in docs:
        if type_ and d.get("type") != type_:
            continue
        if status and (d.get("status") or "").lower() != status.lower():
            continue
        if date and d.get("date") != date:
            continue
        out.append(d)
    return sort_newest_first(out)


def filter_options(docs: Iterable[Dict[str, Any]]) -> Dict[str, List[str]]:
    docs = list(docs)
    types = {d.get("type") for d in docs if d.get("type")}
    years = {calendar_year(d.get("date")) for d in docs}
    departments = {d.get("department") for d in docs if d.get("department")}
    return {
        "types": sorted(types),
        "years": sorted((y for y in years if y), reverse=True),
        "departments": sorted(departments),
    }


def display_name(doc: Dict[str, Any]) -> str:
    return doc.get("name") or doc.get("studentName") or doc.get("facultyName") or "N/A"


def roll_number(doc: Dict[str, Any]) -> str:
    return doc.get("roll_no") or doc.get("rollNo") or ""


def achievement_type(doc: Dict[str, Any]) -> str:
    return doc.get("type") or doc.get("achievementType") or "N/A"


def export_row(doc: Dict[str, Any]) -> Dict[str, str]:
    """One spreadsheet row; roll numbers only make sense for students."""
    submitted_by = doc.get("submitted_by") or ""
    return {
        "Name": display_name(doc),
        "RollNo": roll_number(doc) if submitted_by == "student" else "",
        "AchievementType": achievement_type(doc),
        "Title": doc.get("title") or "",
        "Description": doc.get("description") or "",
        "AcademicYear": academic_year(doc.get("date")),
        "CertificateIssuedDate": doc.get("date") or "",
        "SubmittedBy": submitted_by,
    }
