import logging
import re
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from pydantic import EmailStr, Field

from database import create_document, get_db, get_documents
from fees import FeeStatusError, apply_fee_status, fee_status_view
from schemas import (
    ApiModel, Banner as BannerSchema, Faculty as FacultySchema, Fees as FeesSchema, Student as StudentSchema,
)
from security import ADMIN, hash_password, require_roles
from uploads import remove_banner_image, save_banner_image
from utils import oid, serialize_doc, utcnow
from routes.comments import list_comments
from routes.faculty import enrolled_students, monthly_attendance, serialize_announcement
from routes.results import ResultUpdate, ResultUpload, serialize_result, update_result, upload_result
from routes.subjects import (
    SubjectCreate, SubjectUpdate, assign_faculty, create_subject, delete_subject, get_subject_or_404,
    serialize_subject, update_subject,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_roles(ADMIN))])


# ----------------------
# Request models
# ----------------------
class StudentCreate(ApiModel):
    name: str = Field(..., min_length=1)
    class_name: str = Field(..., alias="class", min_length=1)
    roll_no: str = Field(..., alias="rollNo", min_length=1)
    mobile_no: Optional[str] = Field(None, alias="mobileNo")
    father_name: Optional[str] = Field(None, alias="fatherName")
    address: Optional[str] = None
    password: Optional[str] = None


class StudentUpdate(ApiModel):
    name: Optional[str] = None
    class_name: Optional[str] = Field(None, alias="class")
    roll_no: Optional[str] = Field(None, alias="rollNo")
    mobile_no: Optional[str] = Field(None, alias="mobileNo")
    father_name: Optional[str] = Field(None, alias="fatherName")
    address: Optional[str] = None


class TeacherCreate(ApiModel):
    name: str = Field(..., min_length=1)
    faculty_id: str = Field(..., alias="facultyId", min_length=1)
    password: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone: str = ""
    address: str = ""


class TeacherUpdate(ApiModel):
    name: Optional[str] = None
    faculty_id: Optional[str] = Field(None, alias="facultyId")
    password: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class AssignTeacherRequest(ApiModel):
    subject_id: str = Field(..., alias="subjectId")
    faculty_id: str = Field(..., alias="facultyId")


class FeeStatusUpdate(ApiModel):
    month: int
    year: int
    status: str
    amount: Optional[float] = Field(None, ge=0)
    paid_at: Optional[datetime] = Field(None, alias="paidAt")
    reason: Optional[str] = None


class FeesCreate(ApiModel):
    title: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    class_name: str = Field(..., alias="className", min_length=1)


class FeesUpdate(ApiModel):
    title: Optional[str] = None
    amount: Optional[float] = Field(None, gt=0)
    class_name: Optional[str] = Field(None, alias="className")


# ----------------------
# Helpers
# ----------------------

def search_filter(query: Optional[str], *fields: str) -> Dict[str, Any]:
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="Search query is required.")
    pattern = re.escape(query.strip())
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def get_student_or_404(db, student_id: str) -> Dict[str, Any]:
    student = db["student"].find_one({"_id": oid(student_id)})
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


def get_faculty_or_404(db, faculty_id: str) -> Dict[str, Any]:
    faculty = db["faculty"].find_one({"_id": oid(faculty_id)})
    if not faculty:
        raise HTTPException(status_code=404, detail="Faculty not found")
    return faculty


def check_student_unique(db, class_name: str, roll_no: str, mobile_no: Optional[str], exclude=None):
    base = {"_id": {"$ne": exclude}} if exclude is not None else {}
    if db["student"].find_one({**base, "rollNo": roll_no, "class": class_name}):
        raise HTTPException(status_code=409, detail="Student with this roll number already exists in this class.")
    if mobile_no and db["student"].find_one({**base, "mobileNo": mobile_no}):
        raise HTTPException(status_code=409, detail="Student with this mobile number already exists.")


def purge_student(db, student_id: str) -> None:
    db["comment"].delete_many({"studentId": student_id})
    db["result"].delete_many({"studentId": student_id})
    db["attendance"].delete_many({"student": student_id})


# ----------------------
# Dashboard
# ----------------------
@router.get("/dashboard-counts")
def dashboard_counts(db=Depends(get_db)):
    return {
        "approvedStudentsCount": db["student"].count_documents({"approved": True}),
        "pendingStudentsCount": db["student"].count_documents({"approved": False}),
        "facultyCount": db["faculty"].count_documents({}),
        "subjectCount": db["subject"].count_documents({}),
        "bannerCount": db["banner"].count_documents({}),
    }


# ----------------------
# Students
# ----------------------
@router.get("/students")
def list_students(db=Depends(get_db)):
    return [serialize_doc(s) for s in get_documents(db, "student")]


@router.get("/students/pending")
def pending_students(db=Depends(get_db)):
    return [serialize_doc(s) for s in get_documents(db, "student", {"approved": False})]


@router.get("/students/search")
def search_students(query: Optional[str] = Query(None), db=Depends(get_db)):
    return [serialize_doc(s) for s in db["student"].find(search_filter(query, "name", "rollNo"))]


@router.post("/students", status_code=201)
def create_student(body: StudentCreate, db=Depends(get_db)):
    check_student_unique(db, body.class_name, body.roll_no, body.mobile_no)
    student_id = create_document(db, "student", StudentSchema(
        name=body.name,
        class_name=body.class_name,
        roll_no=body.roll_no,
        mobile_no=body.mobile_no or None,
        father_name=body.father_name,
        address=body.address,
        password_hash=hash_password(body.password or secrets.token_urlsafe(6)),
        approved=True,
    ))
    logger.info(f"Admin created student {student_id}")
    return {"message": "Student created successfully", "student": serialize_doc(get_student_or_404(db, student_id))}


@router.get("/students/{student_id}")
def get_student(student_id: str, db=Depends(get_db)):
    student = get_student_or_404(db, student_id)
    d = serialize_doc(student)
    ids = [oid(i) for i in student.get("subjects") or []]
    d["subjects"] = [serialize_subject(db, s) for s in db["subject"].find({"_id": {"$in": ids}})]
    return d


@router.put("/students/{student_id}")
def edit_student(student_id: str, body: StudentUpdate, db=Depends(get_db)):
    student = get_student_or_404(db, student_id)
    class_name = body.class_name if body.class_name is not None else student.get("class")
    roll_no = body.roll_no if body.roll_no is not None else student.get("rollNo")
    if (class_name, roll_no) != (student.get("class"), student.get("rollNo")):
        check_student_unique(db, class_name, roll_no, None, exclude=student["_id"])
    if body.mobile_no and body.mobile_no != student.get("mobileNo"):
        check_student_unique(db, "", "", body.mobile_no, exclude=student["_id"])
    data = {k: v for k, v in body.model_dump(by_alias=True).items() if v is not None}
    data["updatedAt"] = utcnow()
    update = {"$set": data}
    # blank mobile numbers are dropped so the sparse unique index skips them
    if body.mobile_no is not None and not body.mobile_no.strip():
        data.pop("mobileNo")
        update["$unset"] = {"mobileNo": ""}
    db["student"].update_one({"_id": student["_id"]}, update)
    return {"message": "Student updated successfully", "student": serialize_doc(get_student_or_404(db, student_id))}


@router.delete("/students/{student_id}")
def delete_student(student_id: str, db=Depends(get_db)):
    if db["student"].delete_one({"_id": oid(student_id)}).deleted_count == 0:
        raise HTTPException(status_code=404, detail="Student not found")
    purge_student(db, student_id)
    return {"message": "Student deleted successfully"}


@router.post("/students/approve/{student_id}")
def approve_student(student_id: str, db=Depends(get_db)):
    student = get_student_or_404(db, student_id)
    db["student"].update_one({"_id": student["_id"]}, {"$set": {"approved": True, "updatedAt": utcnow()}})
    logger.info(f"Approved student {student_id}")
    return {"message": "Student approved", "student": serialize_doc(get_student_or_404(db, student_id))}


@router.delete("/students/disapprove/{student_id}")
def disapprove_student(student_id: str, db=Depends(get_db)):
    if db["student"].delete_one({"_id": oid(student_id), "approved": False}).deleted_count == 0:
        raise HTTPException(status_code=404, detail="Pending registration not found")
    logger.info(f"Disapproved and removed registration {student_id}")
    return {"message": "Student registration disapproved and deleted."}


@router.get("/students/{student_id}/fee-status")
def student_fee_status(student_id: str, year: Optional[int] = Query(None), db=Depends(get_db)):
    student = get_student_or_404(db, student_id)
    year = year or datetime.now(timezone.utc).year
    return [serialize_doc(entry) for entry in fee_status_view(db, student, year)]


FEE_WRITE_ATTEMPTS = 5


def save_fee_status(db, student_id: str, body: FeeStatusUpdate) -> List[Dict[str, Any]]:
    """Apply one month's change, writing only if the ledger is unchanged since it was read."""
    for _ in range(FEE_WRITE_ATTEMPTS):
        student = get_student_or_404(db, student_id)
        try:
            ledger = apply_fee_status(
                student.get("feePayments"), body.month, body.year, body.status,
                amount=body.amount, paid_at=body.paid_at, reason=body.reason,
            )
        except FeeStatusError as e:
            raise HTTPException(status_code=400, detail=str(e))
        snapshot = {"feePayments": student["feePayments"]} if "feePayments" in student \
            else {"feePayments": {"$exists": False}}
        res = db["student"].update_one(
            {"_id": student["_id"], **snapshot},
            {"$set": {"feePayments": ledger, "updatedAt": utcnow()}},
        )
        if res.matched_count:
            return ledger
        logger.info(f"Fee ledger for student {student_id} changed concurrently; retrying")
    raise HTTPException(status_code=409, detail="Fee records changed while saving. Please try again.")


@router.put("/students/{student_id}/fee-status")
def update_student_fee_status(student_id: str, body: FeeStatusUpdate, db=Depends(get_db)):
    ledger = save_fee_status(db, student_id, body)
    logger.info(f"Fee status for student {student_id} {body.month}/{body.year} set to {body.status}")
    return {"message": "Fee status updated successfully", "feePayments": [serialize_doc(p) for p in ledger]}


@router.get("/students/{student_id}/attendance")
def student_attendance(student_id: str, month: int = Query(..., ge=1, le=12), year: int = Query(...),
                       subject_id: Optional[str] = Query(None, alias="subjectId"), db=Depends(get_db)):
    get_student_or_404(db, student_id)
    return monthly_attendance(db, student_id, month, year, [subject_id] if subject_id else None)


# ----------------------
# Teachers
# ----------------------
@router.get("/teachers")
def list_teachers(db=Depends(get_db)):
    return [serialize_doc(f) for f in get_documents(db, "faculty")]


@router.get("/teachers/search")
def search_teachers(query: Optional[str] = Query(None), db=Depends(get_db)):
    return [serialize_doc(f) for f in db["faculty"].find(search_filter(query, "name", "facultyId"))]


@router.post("/teachers", status_code=201)
def create_teacher(body: TeacherCreate, db=Depends(get_db)):
    if db["faculty"].find_one({"facultyId": body.faculty_id}):
        raise HTTPException(status_code=409, detail="Faculty with this facultyId already exists.")
    faculty_id = create_document(db, "faculty", FacultySchema(
        name=body.name,
        faculty_id=body.faculty_id,
        password_hash=hash_password(body.password),
        email=body.email or "",
        phone=body.phone,
        address=body.address,
    ))
    logger.info(f"Admin created faculty {faculty_id}")
    return {"message": "Faculty created successfully", "faculty": serialize_doc(get_faculty_or_404(db, faculty_id))}


@router.put("/teachers/{faculty_id}")
def update_teacher(faculty_id: str, body: TeacherUpdate, db=Depends(get_db)):
    faculty = get_faculty_or_404(db, faculty_id)
    data = {k: v for k, v in body.model_dump(by_alias=True).items() if v is not None and k != "password"}
    if body.faculty_id and body.faculty_id != faculty.get("facultyId"):
        if db["faculty"].find_one({"_id": {"$ne": faculty["_id"]}, "facultyId": body.faculty_id}):
            raise HTTPException(status_code=409, detail="Faculty with this facultyId already exists.")
    if body.password:
        data["passwordHash"] = hash_password(body.password)
    data["updatedAt"] = utcnow()
    db["faculty"].update_one({"_id": faculty["_id"]}, {"$set": data})
    return serialize_doc(get_faculty_or_404(db, faculty_id))


@router.delete("/teachers/{faculty_id}")
def delete_teacher(faculty_id: str, db=Depends(get_db)):
    if db["faculty"].delete_one({"_id": oid(faculty_id)}).deleted_count == 0:
        raise HTTPException(status_code=404, detail="Faculty not found")
    db["subject"].update_many({"faculty": faculty_id}, {"$set": {"faculty": None, "isClassTeacher": False}})
    return {"message": "Faculty deleted successfully"}


# ----------------------
# Subjects
# ----------------------
@router.post("/subjects", status_code=201)
def create_subject_endpoint(body: SubjectCreate, db=Depends(get_db)):
    return create_subject(db, body)


@router.get("/subjects")
def list_subjects(db=Depends(get_db)):
    return [serialize_subject(db, s) for s in db["subject"].find().sort("createdAt", -1)]


@router.get("/subjects/search")
def search_subjects(query: Optional[str] = Query(None), db=Depends(get_db)):
    return [serialize_subject(db, s) for s in db["subject"].find(search_filter(query, "name", "code"))]


@router.post("/subjects/assign-teacher")
def assign_teacher(body: AssignTeacherRequest, db=Depends(get_db)):
    subject = assign_faculty(db, body.subject_id, body.faculty_id)
    return {"message": "Teacher assigned to subject successfully", "subject": subject}


@router.put("/subjects/{subject_id}")
def update_subject_endpoint(subject_id: str, body: SubjectUpdate, db=Depends(get_db)):
    return {"message": "Subject updated", "subject": update_subject(db, subject_id, body)}


@router.delete("/subjects/{subject_id}")
def delete_subject_endpoint(subject_id: str, db=Depends(get_db)):
    delete_subject(db, subject_id)
    return {"message": "Subject deleted successfully"}


@router.get("/subjects/{subject_id}/details")
def subject_details(subject_id: str, db=Depends(get_db)):
    subject = serialize_subject(db, get_subject_or_404(db, subject_id))
    students = enrolled_students(db, subject_id)
    return {"subject": subject, "faculty": subject["faculty"], "studentCount": len(students), "students": students}


@router.get("/subjects/{subject_id}/announcements")
def subject_announcements(subject_id: str, db=Depends(get_db)):
    announcements = db["announcement"].find({"subject": subject_id}).sort("createdAt", -1)
    return [serialize_announcement(db, a) for a in announcements]


@router.get("/announcements/{announcement_id}/comments")
def announcement_comments(announcement_id: str, db=Depends(get_db)):
    return list_comments(db, announcement_id)


# ----------------------
# Results
# ----------------------
@router.post("/results")
def upload_results(body: ResultUpload, response: Response, db=Depends(get_db)):
    result, created = upload_result(db, body)
    response.status_code = 201 if created else 200
    return {"message": "Result uploaded successfully" if created else "Result updated successfully", "result": result}


@router.get("/results")
def list_results(db=Depends(get_db)):
    results = []
    for r in db["result"].find():
        d = serialize_result(db, r)
        student = db["student"].find_one({"_id": oid(r["studentId"])}, {"name": 1, "rollNo": 1})
        d["student"] = serialize_doc(student) if student else None
        results.append(d)
    return results


@router.put("/results/{result_id}")
def edit_result(result_id: str, body: ResultUpdate, db=Depends(get_db)):
    return {"message": "Result updated successfully", "result": update_result(db, result_id, body)}


# ----------------------
# Class fee schedule
# ----------------------
@router.post("/fees", status_code=201)
def add_fees(body: FeesCreate, db=Depends(get_db)):
    fees_id = create_document(db, "fees", FeesSchema(title=body.title, amount=body.amount, class_name=body.class_name))
    return {"message": "Fees created successfully", "fees": serialize_doc(db["fees"].find_one({"_id": oid(fees_id)}))}


@router.get("/fees")
def list_fees(db=Depends(get_db)):
    return [serialize_doc(f) for f in get_documents(db, "fees")]


@router.put("/fees/{fees_id}")
def edit_fees(fees_id: str, body: FeesUpdate, db=Depends(get_db)):
    data = {k: v for k, v in body.model_dump(by_alias=True).items() if v is not None}
    data["updatedAt"] = utcnow()
    if db["fees"].update_one({"_id": oid(fees_id)}, {"$set": data}).matched_count == 0:
        raise HTTPException(status_code=404, detail="Fees not found")
    return {"message": "Fees updated successfully", "fees": serialize_doc(db["fees"].find_one({"_id": oid(fees_id)}))}


@router.delete("/fees/{fees_id}")
def delete_fees(fees_id: str, db=Depends(get_db)):
    if db["fees"].delete_one({"_id": oid(fees_id)}).deleted_count == 0:
        raise HTTPException(status_code=404, detail="Fees not found")
    return {"message": "Fees deleted successfully"}


# ----------------------
# Banners
# ----------------------
def get_banner_or_404(db, banner_id: str) -> Dict[str, Any]:
    banner = db["banner"].find_one({"_id": oid(banner_id)})
    if not banner:
        raise HTTPException(status_code=404, detail="Banner not found")
    return banner


@router.post("/banners", status_code=201)
def create_banner(title: Optional[str] = Form(None), description: Optional[str] = Form(None),
                  image: Optional[UploadFile] = File(None), db=Depends(get_db)):
    if not title or not description:
        raise HTTPException(status_code=400, detail="Title and description are required")
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="Banner image is required")
    image_url = save_banner_image(image)
    banner_id = create_document(db, "banner", BannerSchema(title=title, description=description, image_url=image_url))
    return {"message": "Banner created", "banner": serialize_doc(get_banner_or_404(db, banner_id))}


@router.get("/banners")
def list_banners(db=Depends(get_db)):
    return {"banners": [serialize_doc(b) for b in get_documents(db, "banner")]}


@router.get("/banners/{banner_id}")
def get_banner(banner_id: str, db=Depends(get_db)):
    return {"banner": serialize_doc(get_banner_or_404(db, banner_id))}


@router.put("/banners/{banner_id}")
def edit_banner(banner_id: str, title: Optional[str] = Form(None), description: Optional[str] = Form(None),
                image: Optional[UploadFile] = File(None), db=Depends(get_db)):
    banner = get_banner_or_404(db, banner_id)
    data: Dict[str, Any] = {"updatedAt": utcnow()}
    if title:
        data["title"] = title
    if description:
        data["description"] = description
    if image is not None and image.filename:
        data["imageUrl"] = save_banner_image(image)
        remove_banner_image(banner.get("imageUrl"))
    db["banner"].update_one({"_id": banner["_id"]}, {"$set": data})
    return {"message": "Banner updated", "banner": serialize_doc(get_banner_or_404(db, banner_id))}


@router.delete("/banners/{banner_id}")
def delete_banner(banner_id: str, db=Depends(get_db)):
    banner = get_banner_or_404(db, banner_id)
    remove_banner_image(banner.get("imageUrl"))
    db["banner"].delete_one({"_id": banner["_id"]})
    return {"message": "Banner deleted"}
