import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from config import Config
from database import create_document, get_db
from otp import OtpStore, get_otp_store
from schemas import ApiModel, Student as StudentSchema
from security import (
    ADMIN, FACULTY, STUDENT, Principal, create_token, get_current_principal,
    hash_password, normalize_role, verify_password,
)
from utils import oid, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

# role -> (collection, login identifier field)
ACCOUNTS = {
    ADMIN: ("admin", "adminId"),
    FACULTY: ("faculty", "facultyId"),
    STUDENT: ("student", "mobileNo"),
}


# ----------------------
# Request models
# ----------------------
class MobileRequest(ApiModel):
    mobile_no: Optional[str] = Field(None, alias="mobileNo")


class RegisterRequest(ApiModel):
    name: str
    father_name: Optional[str] = Field(None, alias="fatherName")
    address: Optional[str] = None
    class_name: str = Field(..., alias="class")
    roll_no: str = Field(..., alias="rollNo")
    mobile_no: str = Field(..., alias="mobileNo")
    password: str = Field(..., min_length=1)
    otp: Optional[str] = None


class LoginRequest(ApiModel):
    role: str
    admin_id: Optional[str] = Field(None, alias="adminId")
    faculty_id: Optional[str] = Field(None, alias="facultyId")
    mobile_no: Optional[str] = Field(None, alias="mobileNo")
    password: Optional[str] = None
    otp: Optional[str] = None


class ChangePasswordRequest(ApiModel):
    role: str
    identifier: str
    old_password: Optional[str] = Field(None, alias="oldPassword")
    new_password: str = Field(..., alias="newPassword", min_length=1)


# ----------------------
# Helpers shared with the role routers
# ----------------------

def student_profile(student: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(student["_id"]),
        "name": student.get("name"),
        "role": STUDENT,
        "fatherName": student.get("fatherName") or "",
        "address": student.get("address") or "",
        "class": student.get("class"),
        "rollNo": student.get("rollNo"),
        "mobileNo": student.get("mobileNo"),
        "approved": student.get("approved", False),
    }


def set_password(database, collection: str, doc_id, new_password: str) -> None:
    database[collection].update_one(
        {"_id": doc_id},
        {"$set": {"passwordHash": hash_password(new_password), "updatedAt": utcnow()}},
    )


def change_own_password(database, principal: Principal, old_password: Optional[str], new_password: str) -> None:
    collection, _ = ACCOUNTS[principal.role]
    account = database[collection].find_one({"_id": oid(principal.id)})
    if not account:
        raise HTTPException(status_code=404, detail=f"{principal.role} not found")
    if not verify_password(old_password, account.get("passwordHash")):
        raise HTTPException(status_code=400, detail="Old password is incorrect")
    set_password(database, collection, account["_id"], new_password)
    logger.info(f"{principal.role} {principal.id} changed their password")


def _issue_otp(body: MobileRequest, store: OtpStore, verb: str) -> Dict[str, Any]:
    if not body.mobile_no:
        raise HTTPException(status_code=400, detail="Mobile number is required")
    code = store.issue(body.mobile_no)
    response = {"message": f"OTP {verb} successfully"}
    if Config.OTP_ECHO:
        logger.info(f"OTP for {body.mobile_no}: {code}")
        response["otp"] = code
    else:
        logger.info(f"OTP issued for {body.mobile_no}")
    return response


# ----------------------
# Endpoints
# ----------------------
@router.post("/send-otp")
def send_otp(body: MobileRequest, store: OtpStore = Depends(get_otp_store)):
    return _issue_otp(body, store, "sent")


@router.post("/resend-otp")
def resend_otp(body: MobileRequest, store: OtpStore = Depends(get_otp_store)):
    return _issue_otp(body, store, "resent")


@router.post("/register", status_code=201)
def register(body: RegisterRequest, db=Depends(get_db), store: OtpStore = Depends(get_otp_store)):
    if not store.consume(body.mobile_no, body.otp):
        raise HTTPException(status_code=400, detail="Invalid or missing OTP")
    if db["student"].find_one({"rollNo": body.roll_no, "class": body.class_name}):
        raise HTTPException(status_code=409, detail="Student with this roll number already exists in this class.")
    if db["student"].find_one({"mobileNo": body.mobile_no}):
        raise HTTPException(status_code=409, detail="Student with this mobile number already exists.")
    student_id = create_document(db, "student", StudentSchema(
        name=body.name,
        father_name=body.father_name,
        address=body.address,
        class_name=body.class_name,
        roll_no=body.roll_no,
        mobile_no=body.mobile_no,
        password_hash=hash_password(body.password),
        approved=False,
    ))
    logger.info(f"Student registration {student_id} awaiting approval")
    return {"message": "Registration successful. Awaiting admin approval.", "studentId": student_id}


@router.post("/login")
def login(body: LoginRequest, db=Depends(get_db), store: OtpStore = Depends(get_otp_store)):
    role = normalize_role(body.role)
    if role is None:
        raise HTTPException(status_code=400, detail="Invalid role")

    if role == ADMIN:
        admin = db["admin"].find_one({"adminId": body.admin_id}) if body.admin_id else None
        if not admin or not verify_password(body.password, admin.get("passwordHash")):
            logger.info("Failed admin login")
            raise HTTPException(status_code=401, detail="Invalid credentials")
        token = create_token(admin["_id"], ADMIN)
        return {"token": token, "user": {"id": str(admin["_id"]), "name": admin.get("name", "Admin"),
                                         "role": ADMIN, "adminId": admin["adminId"]}}

    if role == FACULTY:
        faculty = db["faculty"].find_one({"facultyId": body.faculty_id}) if body.faculty_id else None
        if not faculty or not verify_password(body.password, faculty.get("passwordHash")):
            logger.info("Failed faculty login")
            raise HTTPException(status_code=401, detail="Invalid credentials")
        token = create_token(faculty["_id"], FACULTY)
        return {"token": token, "user": {"id": str(faculty["_id"]), "name": faculty.get("name"),
                                         "role": FACULTY, "facultyId": faculty["facultyId"]}}

    # Student: possession of the phone is proven by the one-time code
    if not store.consume(body.mobile_no, body.otp):
        raise HTTPException(status_code=400, detail="Invalid or missing OTP")
    student = db["student"].find_one({"mobileNo": body.mobile_no})
    if not student:
        logger.info("Failed student login")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not student.get("approved", False):
        raise HTTPException(status_code=403, detail="Account not approved by admin")
    token = create_token(student["_id"], STUDENT)
    return {"token": token, "user": student_profile(student)}


@router.post("/change-password")
def change_password(body: ChangePasswordRequest, db=Depends(get_db),
                    principal: Principal = Depends(get_current_principal)):
    role = normalize_role(body.role)
    if role is None:
        raise HTTPException(status_code=400, detail="Invalid role")
    collection, field = ACCOUNTS[role]
    account = db[collection].find_one({field: body.identifier})
    if not account:
        raise HTTPException(status_code=404, detail=f"{role} not found")

    if not principal.is_admin:
        if principal.role != role or str(account["_id"]) != principal.id:
            raise HTTPException(status_code=403, detail="You can only change your own password")
        if not verify_password(body.old_password, account.get("passwordHash")):
            raise HTTPException(status_code=400, detail="Old password is incorrect")

    set_password(db, collection, account["_id"], body.new_password)
    logger.info(f"Password changed for {role} {account['_id']} by {principal.role} {principal.id}")
    return {"message": "Password changed successfully"}
