from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from database import create_document, get_db
from schemas import ApiModel, Subject as SubjectSchema
from security import ADMIN, require_roles
from utils import oid, serialize_doc, utcnow

router = APIRouter()


class SubjectCreate(ApiModel):
    name: str
    code: str
    class_name: str = Field(..., alias="className")
    teacher_name: Optional[str] = Field(None, alias="teacherName")
    is_class_teacher: bool = Field(False, alias="isClassTeacher")


class SubjectUpdate(ApiModel):
    name: Optional[str] = None
    code: Optional[str] = None
    class_name: Optional[str] = Field(None, alias="className")
    teacher_name: Optional[str] = Field(None, alias="teacherName")
    is_class_teacher: bool = Field(False, alias="isClassTeacher")


class FacultyAssignment(ApiModel):
    faculty_id: str = Field(..., alias="facultyId")


# ----------------------
# Subject helpers
# ----------------------

def faculty_summary(db, faculty_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not faculty_id:
        return None
    faculty = db["faculty"].find_one({"_id": oid(faculty_id)}, {"name": 1})
    if not faculty:
        return None
    return {"id": str(faculty["_id"]), "name": faculty.get("name")}


def serialize_subject(db, subject: Dict[str, Any]) -> Dict[str, Any]:
    d = serialize_doc(subject)
    d["faculty"] = faculty_summary(db, subject.get("faculty"))
    d.setdefault("isClassTeacher", False)
    return d


def resolve_teacher(db, teacher_name: str) -> str:
    # first match wins; faculty names are not unique
    faculty = db["faculty"].find_one({"name": teacher_name})
    if not faculty:
        raise HTTPException(status_code=404, detail="Teacher not found")
    return str(faculty["_id"])


def get_subject_or_404(db, subject_id: str) -> Dict[str, Any]:
    subject = db["subject"].find_one({"_id": oid(subject_id)})
    if not subject:
        raise HTTPException(status_code=404, detail="Subject not found")
    return subject


def create_subject(db, body: SubjectCreate) -> Dict[str, Any]:
    faculty_id = resolve_teacher(db, body.teacher_name) if body.teacher_name else None
    if db["subject"].find_one({"code": body.code, "className": body.class_name}):
        raise HTTPException(status_code=409, detail="A subject with this code and class already exists.")
    subject_id = create_document(db, "subject", SubjectSchema(
        name=body.name,
        code=body.code,
        class_name=body.class_name,
        faculty=faculty_id,
        is_class_teacher=bool(faculty_id and body.is_class_teacher),
    ))
    return serialize_subject(db, db["subject"].find_one({"_id": oid(subject_id)}))


def update_subject(db, subject_id: str, body: SubjectUpdate) -> Dict[str, Any]:
    subject = get_subject_or_404(db, subject_id)
    update: Dict[str, Any] = {"updatedAt": utcnow()}
    if body.teacher_name:
        update["faculty"] = resolve_teacher(db, body.teacher_name)
        update["isClassTeacher"] = body.is_class_teacher
    else:
        update["faculty"] = None
        update["isClassTeacher"] = False
    if body.name is not None:
        update["name"] = body.name
    code = body.code if body.code is not None else subject.get("code")
    class_name = body.class_name if body.class_name is not None else subject.get("className")
    if (code, class_name) != (subject.get("code"), subject.get("className")):
        clash = db["subject"].find_one({"_id": {"$ne": subject["_id"]}, "code": code, "className": class_name})
        if clash:
            raise HTTPException(status_code=409, detail="A subject with this code and class already exists.")
    update["code"] = code
    update["className"] = class_name
    db["subject"].update_one({"_id": subject["_id"]}, {"$set": update})
    return serialize_subject(db, db["subject"].find_one({"_id": subject["_id"]}))


def delete_subject(db, subject_id: str) -> None:
    subject = get_subject_or_404(db, subject_id)
    db["subject"].delete_one({"_id": subject["_id"]})
    db["student"].update_many({"subjects": subject_id}, {"$pull": {"subjects": subject_id}})


def assign_faculty(db, subject_id: str, faculty_id: str) -> Dict[str, Any]:
    subject = get_subject_or_404(db, subject_id)
    if not db["faculty"].find_one({"_id": oid(faculty_id)}):
        raise HTTPException(status_code=404, detail="Faculty not found")
    db["subject"].update_one({"_id": subject["_id"]}, {"$set": {"faculty": faculty_id, "updatedAt": utcnow()}})
    return serialize_subject(db, db["subject"].find_one({"_id": subject["_id"]}))


# ----------------------
# Endpoints
# ----------------------
@router.post("", status_code=201, dependencies=[Depends(require_roles(ADMIN))])
def create_subject_endpoint(body: SubjectCreate, db=Depends(get_db)):
    return create_subject(db, body)


@router.get("")
def list_subjects(db=Depends(get_db)):
    return [serialize_subject(db, s) for s in db["subject"].find().sort("createdAt", -1)]


@router.get("/{subject_id}")
def get_subject(subject_id: str, db=Depends(get_db)):
    return serialize_subject(db, get_subject_or_404(db, subject_id))


@router.put("/{subject_id}", dependencies=[Depends(require_roles(ADMIN))])
def update_subject_endpoint(subject_id: str, body: SubjectUpdate, db=Depends(get_db)):
    return update_subject(db, subject_id, body)


@router.delete("/{subject_id}", dependencies=[Depends(require_roles(ADMIN))])
def delete_subject_endpoint(subject_id: str, db=Depends(get_db)):
    delete_subject(db, subject_id)
    return {"message": "Subject deleted successfully"}


@router.post("/{subject_id}/faculty", dependencies=[Depends(require_roles(ADMIN))])
def assign_faculty_endpoint(subject_id: str, body: FacultyAssignment, db=Depends(get_db)):
    return {"message": "Faculty assigned successfully", "subject": assign_faculty(db, subject_id, body.faculty_id)}
