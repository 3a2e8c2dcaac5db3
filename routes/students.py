from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field

from database import get_db
from fees import fee_status_view, latest_class_fee
from schemas import ApiModel
from security import STUDENT, Principal, require_roles
from utils import oid, serialize_doc, utcnow
from routes.auth import change_own_password
from routes.comments import (
    CommentBody, delete_comment, get_announcement_or_404, get_comment_or_404, list_comments,
    post_comment, serialize_comment,
)
from routes.faculty import PasswordChange, enrolled_students, monthly_attendance, serialize_announcement
from routes.subjects import serialize_subject

router = APIRouter()

student_only = require_roles(STUDENT)


class ProfileUpdate(ApiModel):
    name: Optional[str] = None
    father_name: Optional[str] = Field(None, alias="fatherName")
    address: Optional[str] = None


class EnrollRequest(ApiModel):
    subject_code: str = Field(..., alias="subjectCode")


def current_student(db, principal: Principal) -> Dict[str, Any]:
    student = db["student"].find_one({"_id": oid(principal.id)})
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


def find_subject_by_code(db, code: str, class_name: Optional[str]) -> Dict[str, Any]:
    subject = db["subject"].find_one({"code": code, "className": class_name}) or db["subject"].find_one({"code": code})
    if not subject:
        raise HTTPException(status_code=404, detail="Subject not found")
    return subject


def require_enrolled(student: Dict[str, Any], subject_id: str):
    if subject_id not in (student.get("subjects") or []):
        raise HTTPException(status_code=403, detail="You are not enrolled in this subject")


# ----------------------
# Profile
# ----------------------
@router.get("/profile")
def get_profile(db=Depends(get_db), principal: Principal = Depends(student_only)):
    student = current_student(db, principal)
    profile = serialize_doc(student)
    profile["subjects"] = [
        serialize_subject(db, s) for s in db["subject"].find({"_id": {"$in": [oid(i) for i in student.get("subjects", [])]}})
    ]
    return profile


@router.put("/profile")
def edit_profile(body: ProfileUpdate, db=Depends(get_db), principal: Principal = Depends(student_only)):
    student = current_student(db, principal)
    data = {k: v for k, v in body.model_dump(by_alias=True).items() if v is not None}
    if data:
        data["updatedAt"] = utcnow()
        db["student"].update_one({"_id": student["_id"]}, {"$set": data})
    return {"message": "Profile updated", "student": serialize_doc(db["student"].find_one({"_id": student["_id"]}))}


@router.put("/profile/password")
def change_password(body: PasswordChange, db=Depends(get_db), principal: Principal = Depends(student_only)):
    change_own_password(db, principal, body.old_password, body.new_password)
    return {"message": "Password updated successfully"}


# ----------------------
# Subjects
# ----------------------
@router.post("/enroll")
def enroll(body: EnrollRequest, db=Depends(get_db), principal: Principal = Depends(student_only)):
    student = current_student(db, principal)
    subject = find_subject_by_code(db, body.subject_code, student.get("class"))
    subject_id = str(subject["_id"])
    if subject_id in (student.get("subjects") or []):
        raise HTTPException(status_code=400, detail="Already enrolled in this subject")
    db["student"].update_one({"_id": student["_id"]}, {"$addToSet": {"subjects": subject_id}})
    return {"message": "Successfully enrolled in subject"}


@router.post("/unenroll")
def unenroll(body: EnrollRequest, db=Depends(get_db), principal: Principal = Depends(student_only)):
    student = current_student(db, principal)
    subject = find_subject_by_code(db, body.subject_code, student.get("class"))
    subject_id = str(subject["_id"])
    if subject_id not in (student.get("subjects") or []):
        raise HTTPException(status_code=400, detail="Student is not enrolled in this subject")
    db["student"].update_one({"_id": student["_id"]}, {"$pull": {"subjects": subject_id}})
    return {"message": "Successfully unenrolled from subject"}


@router.get("/subjects")
def enrolled_subjects(db=Depends(get_db), principal: Principal = Depends(student_only)):
    student = current_student(db, principal)
    ids = [oid(i) for i in student.get("subjects") or []]
    return [serialize_subject(db, s) for s in db["subject"].find({"_id": {"$in": ids}})]


@router.get("/subjects/{subject_id}/announcements")
def subject_announcements(subject_id: str, db=Depends(get_db), principal: Principal = Depends(student_only)):
    require_enrolled(current_student(db, principal), subject_id)
    announcements = db["announcement"].find({"subject": subject_id}).sort("createdAt", -1)
    return [serialize_announcement(db, a) for a in announcements]


@router.get("/subjects/{subject_id}/students")
def classmates(subject_id: str, db=Depends(get_db), principal: Principal = Depends(student_only)):
    require_enrolled(current_student(db, principal), subject_id)
    return [{"id": s["id"], "name": s.get("name"), "rollNo": s.get("rollNo")} for s in enrolled_students(db, subject_id)]


# ----------------------
# Announcements & comments
# ----------------------
@router.get("/announcements/{announcement_id}")
def announcement_details(announcement_id: str, db=Depends(get_db), principal: Principal = Depends(student_only)):
    return serialize_announcement(db, get_announcement_or_404(db, announcement_id))


@router.post("/announcements/{announcement_id}/comments", status_code=201)
def comment_on_announcement(announcement_id: str, body: CommentBody, db=Depends(get_db),
                            principal: Principal = Depends(student_only)):
    return {"message": "Comment posted successfully", "comment": post_comment(db, principal, announcement_id, body.content)}


@router.get("/comments/{announcement_id}")
def view_comments(announcement_id: str, db=Depends(get_db), principal: Principal = Depends(student_only)):
    return list_comments(db, announcement_id)


@router.put("/comments/{comment_id}")
def edit_comment(comment_id: str, body: CommentBody, db=Depends(get_db), principal: Principal = Depends(student_only)):
    comment = get_comment_or_404(db, comment_id)
    if comment.get("studentId") != principal.id:
        raise HTTPException(status_code=403, detail="Not authorized to edit this comment")
    db["comment"].update_one({"_id": comment["_id"]}, {"$set": {"content": body.content, "updatedAt": utcnow()}})
    return {"message": "Comment updated successfully",
            "comment": serialize_comment(db, db["comment"].find_one({"_id": comment["_id"]}))}


@router.delete("/comments/{comment_id}")
def remove_comment(comment_id: str, db=Depends(get_db), principal: Principal = Depends(student_only)):
    delete_comment(db, principal, comment_id)
    return {"message": "Comment deleted successfully"}


# ----------------------
# Fees
# ----------------------
@router.get("/fees/monthly-amount")
def monthly_fee_amount(db=Depends(get_db), principal: Principal = Depends(student_only)):
    student = current_student(db, principal)
    fee = latest_class_fee(db, student.get("class"))
    if not fee:
        raise HTTPException(status_code=404, detail="No fee set for your class")
    return {"className": fee["className"], "title": fee["title"], "amount": fee["amount"],
            "createdAt": serialize_doc(fee)["createdAt"]}


@router.get("/fees/monthly-status")
def monthly_fee_status(year: Optional[int] = Query(None), db=Depends(get_db),
                       principal: Principal = Depends(student_only)):
    student = current_student(db, principal)
    year = year or datetime.now(timezone.utc).year
    return [serialize_doc(entry) for entry in fee_status_view(db, student, year)]


# ----------------------
# Attendance
# ----------------------
@router.get("/attendance/monthly")
def my_monthly_attendance(month: int = Query(..., ge=1, le=12), year: int = Query(...),
                          subject_id: Optional[str] = Query(None, alias="subjectId"),
                          db=Depends(get_db), principal: Principal = Depends(student_only)):
    return monthly_attendance(db, principal.id, month, year, [subject_id] if subject_id else None)
