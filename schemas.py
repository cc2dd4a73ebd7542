"""
Database Schemas for the College Achievements Portal

Each Pydantic model below maps to a MongoDB collection. User records live in
one of three role collections keyed by email; achievements live in one
collection per submitter category.
"""

import base64
import binascii
import re
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

import config

# Role groups, in resolution priority order
ROLE_COLLECTIONS = {
    "Admin": "admins",
    "Faculty": "faculty",
    "Student": "students",
}
ROLE_HOME = {"Admin": "/admin", "Faculty": "/faculty", "Student": "/student"}

ACHIEVEMENT_COLLECTIONS = {
    "student": "student_achievements",
    "faculty": "faculty_achievements",
    "college": "college_achievements",
}
AUDIT_COLLECTION = "audit_logs"

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
DATA_URL = re.compile(r"^data:image/[\w.+-]+;base64,(?P<payload>.+)$", re.DOTALL)

RoleName = Literal["Admin", "Faculty", "Student"]


class Category(str, Enum):
    student = "student"
    faculty = "faculty"
    college = "college"


class SubmitterCategory(str, Enum):
    student = "student"
    faculty = "faculty"


def role_key(role: str) -> str:
    """'Admin' -> 'admin', the form carried in tokens."""
    return role.lower()


# Users
class UserRecord(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: RoleName


class Admin(UserRecord):
    role: Literal["Admin"] = "Admin"


class Faculty(UserRecord):
    role: Literal["Faculty"] = "Faculty"


class Student(UserRecord):
    role: Literal["Student"] = "Student"


class RoleChange(BaseModel):
    role: RoleName


# Achievements
class _SubmittedFields(BaseModel):
    @field_validator("date", check_fields=False)
    @classmethod
    def _calendar_date(cls, v: str):
        try:
            datetime.strptime(v, "%Y-%m-%d")
        except ValueError:
            raise ValueError("date is not a real calendar date")
        return v

    @field_validator("image", check_fields=False)
    @classmethod
    def _inline_image(cls, v: Optional[str]):
        if v is None:
            return v
        m = DATA_URL.match(v)
        if not m:
            raise ValueError("image must be an inline data URL (data:image/...;base64,...)")
        try:
            raw = base64.b64decode(m.group("payload"), validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("image payload is not valid base64")
        if len(raw) > config.MAX_IMAGE_BYTES:
            raise ValueError(f"image exceeds {config.MAX_IMAGE_BYTES} bytes")
        return v


class AchievementSubmission(_SubmittedFields):
    """What a student or faculty member sends; identity comes from the token."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    date: str = Field(..., pattern=DATE_PATTERN, description="YYYY-MM-DD")
    type: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    department: Optional[str] = None
    roll_no: Optional[str] = None


class StudentAchievement(BaseModel):
    title: str
    description: Optional[str] = None
    date: str
    type: str
    image: str
    status: str = STATUS_PENDING
    email: str
    name: Optional[str] = None
    roll_no: Optional[str] = None
    department: Optional[str] = None


class FacultyAchievement(BaseModel):
    title: str
    description: Optional[str] = None
    date: str
    type: str
    image: str
    status: str = STATUS_PENDING
    email: str
    name: Optional[str] = None
    department: Optional[str] = None


class CollegeAchievement(_SubmittedFields):
    """College-level entries carry no status: they are always public."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    date: str = Field(..., pattern=DATE_PATTERN)
    type: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)


class Decision(BaseModel):
    status: Literal["approved", "rejected"]


# Audit trail
class AuditLog(BaseModel):
    action: str = Field(..., description="user_created | role_update | user_deleted | achievement_approved | achievement_rejected")
    user: str
    updated_by: str
    new_role: Optional[str] = None
    timestamp: datetime
