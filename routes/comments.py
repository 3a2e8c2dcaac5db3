from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from database import create_document, get_db
from schemas import ApiModel, Comment as CommentSchema
from security import STUDENT, Principal, get_current_principal, require_roles
from utils import oid, serialize_doc

router = APIRouter()


class CommentBody(ApiModel):
    content: str = Field(..., min_length=1)


def can_delete_comment(principal: Principal, comment: Dict[str, Any]) -> bool:
    """Authors may delete their own comments; faculty and admins may delete any."""
    if comment.get("studentId") and comment["studentId"] == principal.id:
        return True
    if comment.get("facultyId") and comment["facultyId"] == principal.id:
        return True
    return principal.is_admin or principal.is_faculty


def _author(db, collection: str, author_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not author_id:
        return None
    doc = db[collection].find_one({"_id": oid(author_id)}, {"name": 1})
    return {"id": author_id, "name": doc.get("name") if doc else None}


def serialize_comment(db, comment: Dict[str, Any]) -> Dict[str, Any]:
    d = serialize_doc(comment)
    d["student"] = _author(db, "student", comment.get("studentId"))
    d["faculty"] = _author(db, "faculty", comment.get("facultyId"))
    return d


def get_announcement_or_404(db, announcement_id: str) -> Dict[str, Any]:
    announcement = db["announcement"].find_one({"_id": oid(announcement_id)})
    if not announcement:
        raise HTTPException(status_code=404, detail="Announcement not found")
    return announcement


def get_comment_or_404(db, comment_id: str) -> Dict[str, Any]:
    comment = db["comment"].find_one({"_id": oid(comment_id)})
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


def post_comment(db, principal: Principal, announcement_id: str, content: str) -> Dict[str, Any]:
    get_announcement_or_404(db, announcement_id)
    author = {"student_id": principal.id} if principal.is_student else {"faculty_id": principal.id}
    comment_id = create_document(db, "comment", CommentSchema(
        content=content,
        announcement_id=announcement_id,
        **author,
    ))
    return serialize_comment(db, db["comment"].find_one({"_id": oid(comment_id)}))


def list_comments(db, announcement_id: str) -> List[Dict[str, Any]]:
    comments = db["comment"].find({"announcementId": announcement_id}).sort("createdAt", -1)
    return [serialize_comment(db, c) for c in comments]


def delete_comment(db, principal: Principal, comment_id: str) -> None:
    comment = get_comment_or_404(db, comment_id)
    if not can_delete_comment(principal, comment):
        raise HTTPException(status_code=403, detail="You do not have permission to delete this comment")
    db["comment"].delete_one({"_id": comment["_id"]})


# ----------------------
# Endpoints
# ----------------------
@router.post("/{announcement_id}", status_code=201)
def create_comment(announcement_id: str, body: CommentBody, db=Depends(get_db),
                   principal: Principal = Depends(require_roles(STUDENT))):
    return {"message": "Comment posted successfully", "comment": post_comment(db, principal, announcement_id, body.content)}


@router.get("/{announcement_id}")
def get_comments(announcement_id: str, db=Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return list_comments(db, announcement_id)


@router.delete("/{comment_id}")
def remove_comment(comment_id: str, db=Depends(get_db), principal: Principal = Depends(get_current_principal)):
    delete_comment(db, principal, comment_id)
    return {"message": "Comment deleted successfully"}
