"""
Database Schemas for the School Portal

Each Pydantic model corresponds to a MongoDB collection. The collection name is the lowercase
of the class name (e.g., Student -> "student"). Stored keys are the camelCase aliases the
frontend consumes; references to other documents are stored as string ids.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

FeeStatus = Literal["Paid", "Unpaid", "Pending"]
AttendanceStatus = Literal["Present", "Absent"]


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class FeePayment(ApiModel):
    month: int = Field(..., ge=1, le=12)
    year: int
    status: FeeStatus
    amount: Optional[float] = None
    paid_at: Optional[datetime] = Field(None, alias="paidAt")
    reason: Optional[str] = Field(None, description="Audit note for changes away from Paid/Unpaid")


class Admin(ApiModel):
    admin_id: str = Field(..., alias="adminId")
    name: str = "Admin"
    password_hash: str = Field(..., alias="passwordHash")
    role: Literal["Admin"] = "Admin"


class Student(ApiModel):
    name: str
    father_name: Optional[str] = Field(None, alias="fatherName")
    address: Optional[str] = None
    class_name: str = Field(..., alias="class")
    roll_no: str = Field(..., alias="rollNo", description="Unique within a class")
    mobile_no: Optional[str] = Field(None, alias="mobileNo", description="Unique when present")
    password_hash: str = Field(..., alias="passwordHash")
    approved: bool = Field(False, description="Gates login; set by an administrator")
    subjects: List[str] = Field(default_factory=list)
    fee_payments: List[FeePayment] = Field(default_factory=list, alias="feePayments")
    result: Optional[str] = None


class Faculty(ApiModel):
    name: str
    faculty_id: str = Field(..., alias="facultyId")
    password_hash: str = Field(..., alias="passwordHash")
    email: str = ""
    phone: str = ""
    address: str = ""
    role: Literal["Faculty"] = "Faculty"


class Subject(ApiModel):
    name: str
    code: str = Field(..., description="Unique together with className")
    class_name: str = Field(..., alias="className")
    faculty: Optional[str] = None
    is_class_teacher: bool = Field(False, alias="isClassTeacher")
    # Legacy embedded copy of the subject's announcements
    announcements: List[dict] = Field(default_factory=list)


class Announcement(ApiModel):
    subject: str
    faculty: str
    content: str


class Comment(ApiModel):
    content: str
    announcement_id: str = Field(..., alias="announcementId")
    student_id: Optional[str] = Field(None, alias="studentId")
    faculty_id: Optional[str] = Field(None, alias="facultyId")
    replies: List[dict] = Field(default_factory=list)


class Result(ApiModel):
    student_id: str = Field(..., alias="studentId")
    subject_id: str = Field(..., alias="subjectId")
    marks_obtained: float = Field(..., alias="marksObtained")
    total_marks: float = Field(..., alias="totalMarks")
    result_date: Optional[datetime] = Field(None, alias="resultDate")


class Fees(ApiModel):
    title: str
    amount: float
    class_name: str = Field(..., alias="className")


class Banner(ApiModel):
    title: str
    description: str
    image_url: str = Field(..., alias="imageUrl")


class Attendance(ApiModel):
    subject: str
    faculty: str
    date: str = Field(..., description="YYYY-MM-DD")
    student: str
    status: AttendanceStatus
    marked_at: Optional[datetime] = Field(None, alias="markedAt")
