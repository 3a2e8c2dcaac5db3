from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import Field

from database import create_document, get_db
from schemas import ApiModel, Result as ResultSchema
from security import ADMIN, FACULTY, STUDENT, Principal, require_roles
from utils import oid, serialize_doc, utcnow

router = APIRouter()


class ResultUpload(ApiModel):
    student_id: str = Field(..., alias="studentId")
    subject_id: str = Field(..., alias="subjectId")
    marks_obtained: float = Field(..., alias="marksObtained", ge=0)
    total_marks: float = Field(..., alias="totalMarks", gt=0)


class ResultUpdate(ApiModel):
    marks_obtained: Optional[float] = Field(None, alias="marksObtained", ge=0)
    total_marks: Optional[float] = Field(None, alias="totalMarks", gt=0)


def serialize_result(db, result: Dict[str, Any]) -> Dict[str, Any]:
    d = serialize_doc(result)
    subject = db["subject"].find_one({"_id": oid(result["subjectId"])}, {"name": 1, "code": 1})
    d["subject"] = {"id": result["subjectId"], "name": subject.get("name"), "code": subject.get("code")} if subject else None
    return d


def upload_result(db, body: ResultUpload):
    """Create or replace the single result for a (student, subject) pair. Returns (result, created)."""
    if body.marks_obtained > body.total_marks:
        raise HTTPException(status_code=400, detail="marksObtained cannot exceed totalMarks")
    student = db["student"].find_one({"_id": oid(body.student_id)})
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    if not db["subject"].find_one({"_id": oid(body.subject_id)}):
        raise HTTPException(status_code=404, detail="Subject not found")

    existing = db["result"].find_one({"studentId": body.student_id, "subjectId": body.subject_id})
    if existing:
        db["result"].update_one({"_id": existing["_id"]}, {"$set": {
            "marksObtained": body.marks_obtained,
            "totalMarks": body.total_marks,
            "resultDate": utcnow(),
            "updatedAt": utcnow(),
        }})
        result_id, created = str(existing["_id"]), False
    else:
        result_id = create_document(db, "result", ResultSchema(
            student_id=body.student_id,
            subject_id=body.subject_id,
            marks_obtained=body.marks_obtained,
            total_marks=body.total_marks,
            result_date=utcnow(),
        ))
        created = True
    db["student"].update_one({"_id": student["_id"]}, {"$set": {"result": result_id}})
    return serialize_result(db, db["result"].find_one({"_id": oid(result_id)})), created


def update_result(db, result_id: str, body: ResultUpdate) -> Dict[str, Any]:
    result = db["result"].find_one({"_id": oid(result_id)})
    if not result:
        raise HTTPException(status_code=404, detail="Result not found")
    marks = body.marks_obtained if body.marks_obtained is not None else result.get("marksObtained")
    total = body.total_marks if body.total_marks is not None else result.get("totalMarks")
    if marks > total:
        raise HTTPException(status_code=400, detail="marksObtained cannot exceed totalMarks")
    db["result"].update_one({"_id": result["_id"]}, {"$set": {
        "marksObtained": marks, "totalMarks": total, "updatedAt": utcnow(),
    }})
    return serialize_result(db, db["result"].find_one({"_id": result["_id"]}))


# ----------------------
# Endpoints
# ----------------------
@router.post("", dependencies=[Depends(require_roles(ADMIN, FACULTY))])
def upload(body: ResultUpload, response: Response, db=Depends(get_db)):
    result, created = upload_result(db, body)
    response.status_code = 201 if created else 200
    message = "Result uploaded successfully" if created else "Result updated successfully"
    return {"message": message, "result": result}


@router.get("/{student_id}")
def results_for_student(student_id: str, db=Depends(get_db),
                        principal: Principal = Depends(require_roles(ADMIN, FACULTY, STUDENT))):
    if principal.is_student and principal.id != student_id:
        raise HTTPException(status_code=403, detail="You can only view your own results")
    return [serialize_result(db, r) for r in db["result"].find({"studentId": student_id})]


@router.put("/{result_id}", dependencies=[Depends(require_roles(ADMIN, FACULTY))])
def edit_result(result_id: str, body: ResultUpdate, db=Depends(get_db)):
    return {"message": "Result updated successfully", "result": update_result(db, result_id, body)}


@router.delete("/{result_id}", dependencies=[Depends(require_roles(ADMIN, FACULTY))])
def delete_result(result_id: str, db=Depends(get_db)):
    result = db["result"].find_one({"_id": oid(result_id)})
    if not result:
        raise HTTPException(status_code=404, detail="Result not found")
    db["result"].delete_one({"_id": result["_id"]})
    db["student"].update_many({"result": result_id}, {"$unset": {"result": ""}})
    return {"message": "Result deleted successfully"}
