import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import EmailStr, Field

from database import create_document, get_db
from schemas import ApiModel, Announcement as AnnouncementSchema, Attendance as AttendanceSchema
from security import FACULTY, Principal, require_roles
from utils import oid, serialize_doc, utcnow
from routes.auth import change_own_password
from routes.comments import CommentBody, post_comment
from routes.subjects import serialize_subject

logger = logging.getLogger(__name__)

router = APIRouter()

faculty_only = require_roles(FACULTY)


class AnnouncementCreate(ApiModel):
    subject_id: str = Field(..., alias="subjectId")
    content: str = Field(..., min_length=1)


class AnnouncementRef(ApiModel):
    subject_id: str = Field(..., alias="subjectId")
    announcement_id: str = Field(..., alias="announcementId")


class AnnouncementEdit(AnnouncementRef):
    content: str = Field(..., min_length=1)


class ProfileUpdate(ApiModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class PasswordChange(ApiModel):
    old_password: str = Field(..., alias="oldPassword")
    new_password: str = Field(..., alias="newPassword", min_length=1)


class AttendanceEntry(ApiModel):
    student_id: str = Field(..., alias="studentId")
    status: Optional[Literal["Present", "Absent"]] = None


class AttendanceMark(ApiModel):
    date: str
    attendance: List[AttendanceEntry] = Field(default_factory=list)


# ----------------------
# Attendance helpers
# ----------------------

def validate_date(value: str) -> str:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="date must be in YYYY-MM-DD format")
    return value


def monthly_attendance(db, student_id: str, month: int, year: int,
                       subject_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"student": student_id, "date": {"$regex": f"^{year:04d}-{month:02d}-\\d{{2}}$"}}
    if subject_ids is not None:
        query["subject"] = {"$in": subject_ids}
    records = db["attendance"].find(query).sort("date", 1)
    return [{"date": r["date"], "status": r["status"], "subject": r["subject"]} for r in records]


# ----------------------
# Subject helpers
# ----------------------

def own_subject_or_404(db, principal: Principal, subject_id: str) -> Dict[str, Any]:
    subject = db["subject"].find_one({"_id": oid(subject_id), "faculty": principal.id})
    if not subject:
        raise HTTPException(status_code=404, detail="Subject not found or not assigned to you")
    return subject


def enrolled_students(db, subject_id: str) -> List[Dict[str, Any]]:
    students = db["student"].find({"subjects": subject_id}, {"name": 1, "rollNo": 1, "class": 1}).sort("rollNo", 1)
    return [serialize_doc(s) for s in students]


def serialize_announcement(db, announcement: Dict[str, Any]) -> Dict[str, Any]:
    d = serialize_doc(announcement)
    faculty = db["faculty"].find_one({"_id": oid(announcement["faculty"])}, {"name": 1})
    subject = db["subject"].find_one({"_id": oid(announcement["subject"])}, {"name": 1})
    d["faculty"] = {"id": announcement["faculty"], "name": faculty.get("name") if faculty else None}
    d["subject"] = {"id": announcement["subject"], "name": subject.get("name") if subject else None}
    return d


def _sync_legacy_announcements(db, subject: Dict[str, Any], announcement_id: str, content: Optional[str]):
    """Mirror an edit (content) or a removal (content=None) onto the subject's embedded list."""
    legacy = []
    for item in subject.get("announcements", []):
        if item.get("id") == announcement_id:
            if content is None:
                continue
            item = {**item, "content": content}
        legacy.append(item)
    db["subject"].update_one({"_id": subject["_id"]}, {"$set": {"announcements": legacy}})


# ----------------------
# Subjects
# ----------------------
@router.get("/subjects")
def assigned_subjects(db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    return [serialize_subject(db, s) for s in db["subject"].find({"faculty": principal.id})]


@router.get("/subjects/{subject_id}")
def assigned_subject_details(subject_id: str, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    subject = own_subject_or_404(db, principal, subject_id)
    students = enrolled_students(db, subject_id)
    return {"subject": serialize_subject(db, subject), "studentCount": len(students), "students": students}


@router.get("/subjects/{subject_id}/students")
def students_of_subject(subject_id: str, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    own_subject_or_404(db, principal, subject_id)
    return enrolled_students(db, subject_id)


# ----------------------
# Announcements
# ----------------------
@router.post("/announcements", status_code=201)
def add_announcement(body: AnnouncementCreate, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    subject = own_subject_or_404(db, principal, body.subject_id)
    announcement_id = create_document(db, "announcement", AnnouncementSchema(
        subject=body.subject_id, faculty=principal.id, content=body.content,
    ))
    announcement = db["announcement"].find_one({"_id": oid(announcement_id)})
    db["subject"].update_one({"_id": subject["_id"]}, {"$push": {"announcements": {
        "id": announcement_id,
        "content": body.content,
        "faculty": principal.id,
        "createdAt": announcement["createdAt"],
    }}})
    return {"message": "Announcement added successfully", "announcement": serialize_announcement(db, announcement)}


@router.put("/announcements")
def edit_announcement(body: AnnouncementEdit, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    query = {"_id": oid(body.announcement_id), "subject": body.subject_id, "faculty": principal.id}
    if not db["announcement"].find_one(query):
        raise HTTPException(status_code=404, detail="Announcement not found")
    db["announcement"].update_one(query, {"$set": {"content": body.content, "updatedAt": utcnow()}})
    subject = db["subject"].find_one({"_id": oid(body.subject_id), "faculty": principal.id})
    if subject:
        _sync_legacy_announcements(db, subject, body.announcement_id, body.content)
    announcement = db["announcement"].find_one(query)
    return {"message": "Announcement updated successfully", "announcement": serialize_announcement(db, announcement)}


@router.delete("/announcements")
def delete_announcement(body: AnnouncementRef, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    query = {"_id": oid(body.announcement_id), "subject": body.subject_id, "faculty": principal.id}
    if db["announcement"].delete_one(query).deleted_count == 0:
        raise HTTPException(status_code=404, detail="Announcement not found")
    db["comment"].delete_many({"announcementId": body.announcement_id})
    subject = db["subject"].find_one({"_id": oid(body.subject_id), "faculty": principal.id})
    if subject:
        _sync_legacy_announcements(db, subject, body.announcement_id, None)
    return {"message": "Announcement deleted successfully"}


@router.get("/announcements/{subject_id}")
def subject_announcements(subject_id: str, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    own_subject_or_404(db, principal, subject_id)
    announcements = db["announcement"].find({"subject": subject_id}).sort("createdAt", -1)
    return [serialize_announcement(db, a) for a in announcements]


@router.get("/announcements/{subject_id}/{announcement_id}")
def announcement_details(subject_id: str, announcement_id: str, db=Depends(get_db),
                         principal: Principal = Depends(faculty_only)):
    announcement = db["announcement"].find_one(
        {"_id": oid(announcement_id), "subject": subject_id, "faculty": principal.id}
    )
    if not announcement:
        raise HTTPException(status_code=404, detail="Announcement not found or not assigned to you")
    return serialize_announcement(db, announcement)


@router.post("/announcements/{announcement_id}/comments", status_code=201)
def comment_as_faculty(announcement_id: str, body: CommentBody, db=Depends(get_db),
                       principal: Principal = Depends(faculty_only)):
    return {"message": "Comment posted successfully", "comment": post_comment(db, principal, announcement_id, body.content)}


# ----------------------
# Profile
# ----------------------
@router.get("/profile")
def view_profile(db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    faculty = db["faculty"].find_one({"_id": oid(principal.id)})
    if not faculty:
        raise HTTPException(status_code=404, detail="Faculty not found")
    return serialize_doc(faculty)


@router.put("/profile")
def update_profile(body: ProfileUpdate, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    data = {k: v for k, v in body.model_dump().items() if v is not None}
    if data:
        data["updatedAt"] = utcnow()
        db["faculty"].update_one({"_id": oid(principal.id)}, {"$set": data})
    faculty = db["faculty"].find_one({"_id": oid(principal.id)})
    if not faculty:
        raise HTTPException(status_code=404, detail="Faculty not found")
    return {"message": "Profile updated", "faculty": serialize_doc(faculty)}


@router.put("/profile/change-password")
def change_password(body: PasswordChange, db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    change_own_password(db, principal, body.old_password, body.new_password)
    return {"message": "Password changed successfully"}


# ----------------------
# Attendance
# ----------------------
@router.post("/subjects/{subject_id}/attendance")
def mark_attendance(subject_id: str, body: AttendanceMark, db=Depends(get_db),
                    principal: Principal = Depends(faculty_only)):
    own_subject_or_404(db, principal, subject_id)
    day = validate_date(body.date)
    enrolled = {s["id"] for s in enrolled_students(db, subject_id)}
    saved = 0
    for entry in body.attendance:
        if entry.status is None:
            continue
        if entry.student_id not in enrolled:
            raise HTTPException(status_code=400, detail=f"Student {entry.student_id} is not enrolled in this subject")
        record = AttendanceSchema(
            subject=subject_id, faculty=principal.id, date=day,
            student=entry.student_id, status=entry.status, marked_at=utcnow(),
        ).model_dump(by_alias=True)
        db["attendance"].update_one(
            {"subject": subject_id, "date": day, "student": entry.student_id},
            {"$set": record},
            upsert=True,
        )
        saved += 1
    logger.info(f"Faculty {principal.id} marked {saved} attendance records for {subject_id} on {day}")
    return {"message": "Attendance saved", "saved": saved}


@router.get("/subjects/{subject_id}/attendance")
def attendance_for_date(subject_id: str, date: str = Query(...), db=Depends(get_db),
                        principal: Principal = Depends(faculty_only)):
    own_subject_or_404(db, principal, subject_id)
    day = validate_date(date)
    names = {s["id"]: s for s in enrolled_students(db, subject_id)}
    records = []
    for r in db["attendance"].find({"subject": subject_id, "date": day}):
        d = serialize_doc(r)
        student = names.get(r["student"], {})
        d["studentName"] = student.get("name")
        d["rollNo"] = student.get("rollNo")
        records.append(d)
    return records


@router.get("/student/{student_id}/attendance")
def student_attendance(student_id: str, month: int = Query(..., ge=1, le=12), year: int = Query(...),
                       subject_id: Optional[str] = Query(None, alias="subjectId"),
                       db=Depends(get_db), principal: Principal = Depends(faculty_only)):
    if subject_id:
        own_subject_or_404(db, principal, subject_id)
        subject_ids = [subject_id]
    else:
        subject_ids = [str(s["_id"]) for s in db["subject"].find({"faculty": principal.id}, {"_id": 1})]
    return monthly_attendance(db, student_id, month, year, subject_ids)
