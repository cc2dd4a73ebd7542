import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from jose import JWTError, jwt
from pydantic import BaseModel
from pymongo.errors import PyMongoError

import config
from achievements import filter_options, filter_own, filter_wall, sort_newest_first
from database import DatabaseUnavailable, create_document, get_documents, require_db, utcnow
from exports import PDF_MEDIA_TYPE, XLSX_MEDIA_TYPE, export_filename, render_pdf, render_xlsx
from importer import ImportFileError, clean_row, detect_file_type, read_rows
from schemas import (
    ACHIEVEMENT_COLLECTIONS, AUDIT_COLLECTION, ROLE_COLLECTIONS, ROLE_HOME,
    STATUS_APPROVED, STATUS_PENDING,
    AchievementSubmission, Admin, AuditLog, Category, CollegeAchievement,
    Decision, Faculty, FacultyAchievement, RoleChange, Student,
    StudentAchievement, SubmitterCategory, UserRecord, role_key,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("achievements_portal")

app = FastAPI(title="College Achievements Portal API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------- Serialization -------------------- #

def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if hasattr(v, 'isoformat'):
            d[k] = v.isoformat()
    return d


def serialize_list(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_doc(d) for d in docs]


def _timestamp(value: Any) -> float:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return 0.0


# -------------------- Error handling -------------------- #

@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Database error"})


@app.exception_handler(DatabaseUnavailable)
async def database_unavailable_handler(request: Request, exc: DatabaseUnavailable):
    return JSONResponse(status_code=500, content={"detail": "Database not available"})


# -------------------- Request logging -------------------- #

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# -------------------- Role resolution -------------------- #

def find_user(email: str) -> Optional[Dict[str, Any]]:
    """The user's record from the first role group holding it, tagged with that role."""
    database = require_db()
    for role, coll in ROLE_COLLECTIONS.items():
        doc = database[coll].find_one({"_id": email})
        if doc:
            return {**doc, "role": role}
    return None


def resolve_role(email: str) -> Optional[str]:
    """admin, faculty or student; admins win over faculty, faculty over students."""
    user = find_user(email)
    return role_key(user["role"]) if user else None


# -------------------- Auth & Security -------------------- #

class LoginPayload(BaseModel):
    email: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    redirect: str


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


async def get_current_user(request: Request) -> Optional[Dict[str, Any]]:
    """Return decoded JWT claims if a valid bearer token is present, else None."""
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        return None


def require_roles(*roles: str, revalidate: bool = False):
    """
    Dependency enforcing one of `roles` (admin/faculty/student).

    The role inside the token was resolved at login time (claim `rct`). It is
    looked up again once older than ROLE_CACHE_TTL_SECONDS, and on every call
    when `revalidate` is set, so an admin's role change takes effect without
    waiting for the user to sign in again.
    """
    async def _dep(claims: Optional[Dict[str, Any]] = Depends(get_current_user)):
        if claims is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        email = claims.get("sub")
        role = claims.get("role")
        age = time.time() - float(claims.get("rct", 0))
        if revalidate or age > config.ROLE_CACHE_TTL_SECONDS:
            fresh = resolve_role(email)
            if fresh is None:
                raise HTTPException(status_code=401, detail="Access revoked, please sign in again")
            if fresh != role:
                logger.info("Role of %s changed from %s to %s since login", email, role, fresh)
            role = fresh
        if roles and role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden for role")
        return {"email": email, "role": role}
    return _dep


require_admin = require_roles("admin", revalidate=True)


# -------------------- Meta endpoints -------------------- #

@app.get("/")
def read_root():
    return {"message": "College Achievements Portal backend is running"}


@app.get("/schema")
def get_schema():
    models = [
        Admin, Faculty, Student, StudentAchievement, FacultyAchievement,
        CollegeAchievement, AuditLog,
    ]
    return {m.__name__: m.model_json_schema() for m in models}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        db = require_db()
    except DatabaseUnavailable:
        return response
    response["database"] = "✅ Available"
    response["connection_status"] = "Connected"
    try:
        response["collections"] = db.list_collection_names()[:50]
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


# -------------------- Auth endpoints -------------------- #

@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginPayload):
    """
    Exchange the email asserted by the identity provider for a portal token.

    Emails found in no role group are refused and get no token.
    """
    email = payload.email.strip()
    user = find_user(email) if email else None
    if user is None:
        logger.info("Login refused for %s: not in any role group", email)
        raise HTTPException(status_code=403, detail="Access Denied: Email not found in system.")
    role = role_key(user["role"])
    token = create_access_token({"sub": email, "role": role, "rct": int(time.time())})
    return TokenResponse(access_token=token, role=role, redirect=ROLE_HOME[user["role"]])


@app.get("/auth/me")
def me(user=Depends(require_roles("admin", "faculty", "student", revalidate=True))):
    record = find_user(user["email"]) or {}
    return {"email": user["email"], "role": user["role"], "name": record.get("name")}


# -------------------- Public wall -------------------- #

def public_achievements(category: Category) -> List[Dict[str, Any]]:
    coll = ACHIEVEMENT_COLLECTIONS[category.value]
    if category == Category.college:
        return get_documents(coll)
    return get_documents(coll, filter_dict={"status": STATUS_APPROVED})


@app.get("/achievements")
def public_wall(category: Category = Category.student, type: Optional[str] = None,
                year: Optional[str] = None, department: Optional[str] = None):
    docs = filter_wall(public_achievements(category), type_=type, year=year, department=department)
    return {
        "category": category.value,
        "count": len(docs),
        "achievements": serialize_list(docs),
        "message": None if docs else "No achievements found",
    }


@app.get("/achievements/filters")
def public_wall_filters(category: Category = Category.student):
    return filter_options(public_achievements(category))


# -------------------- Submissions (student / faculty) -------------------- #

def submit_achievement(category: SubmitterCategory, payload: AchievementSubmission, email: str) -> str:
    record = find_user(email) or {}
    common = dict(
        title=payload.title,
        description=payload.description,
        date=payload.date,
        type=payload.type,
        image=payload.image,
        status=STATUS_PENDING,
        email=email,
        name=record.get("name"),
        department=payload.department,
    )
    if category == SubmitterCategory.student:
        doc = StudentAchievement(roll_no=payload.roll_no, **common)
    else:
        doc = FacultyAchievement(**common)
    aid = create_document(ACHIEVEMENT_COLLECTIONS[category.value], doc)
    logger.info("%s achievement %s submitted by %s", category.value, aid, email)
    return aid


def own_achievements(category: SubmitterCategory, email: str, type: Optional[str],
                     status: Optional[str], date: Optional[str]):
    docs = get_documents(ACHIEVEMENT_COLLECTIONS[category.value], filter_dict={"email": email})
    return serialize_list(filter_own(docs, type_=type, status=status, date=date))


@app.post("/student/achievements", status_code=201)
def student_submit(payload: AchievementSubmission, user=Depends(require_roles("student"))):
    aid = submit_achievement(SubmitterCategory.student, payload, user["email"])
    return {"id": aid, "status": STATUS_PENDING}


@app.get("/student/achievements")
def student_submissions(type: Optional[str] = None, status: Optional[str] = None, date: Optional[str] = None,
                        user=Depends(require_roles("student"))):
    return own_achievements(SubmitterCategory.student, user["email"], type, status, date)


@app.post("/faculty/achievements", status_code=201)
def faculty_submit(payload: AchievementSubmission, user=Depends(require_roles("faculty"))):
    aid = submit_achievement(SubmitterCategory.faculty, payload, user["email"])
    return {"id": aid, "status": STATUS_PENDING}


@app.get("/faculty/achievements")
def faculty_submissions(type: Optional[str] = None, status: Optional[str] = None, date: Optional[str] = None,
                        user=Depends(require_roles("faculty"))):
    return own_achievements(SubmitterCategory.faculty, user["email"], type, status, date)


# -------------------- Admin: dashboard & college achievements -------------------- #

@app.get("/admin/dashboard")
def admin_dashboard(user=Depends(require_admin)):
    database = require_db()
    record = find_user(user["email"]) or {}
    return {
        "name": record.get("name") or "Admin",
        "pending": {
            cat.value: database[ACHIEVEMENT_COLLECTIONS[cat.value]].count_documents({"status": STATUS_PENDING})
            for cat in SubmitterCategory
        },
        "users": {role: database[coll].count_documents({}) for role, coll in ROLE_COLLECTIONS.items()},
    }


@app.post("/admin/college-achievements", status_code=201)
def add_college_achievement(payload: CollegeAchievement, user=Depends(require_admin)):
    cid = create_document(ACHIEVEMENT_COLLECTIONS["college"], payload)
    logger.info("College achievement %s added by %s", cid, user["email"])
    return {"id": cid}


# -------------------- Admin: moderation -------------------- #

def pending_queue() -> List[Dict[str, Any]]:
    queue = []
    for cat in SubmitterCategory:
        docs = get_documents(ACHIEVEMENT_COLLECTIONS[cat.value], filter_dict={"status": STATUS_PENDING})
        queue.extend({**d, "category": cat.value} for d in docs)
    return queue


@app.get("/admin/verify")
def verification_queue(user=Depends(require_admin)):
    return serialize_list(pending_queue())


@app.post("/admin/verify/{category}/{achievement_id}")
def decide_achievement(category: SubmitterCategory, achievement_id: str, payload: Decision,
                       user=Depends(require_admin)):
    database = require_db()
    try:
        oid = ObjectId(achievement_id)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid achievement id")
    coll = database[ACHIEVEMENT_COLLECTIONS[category.value]]
    now = utcnow()
    # Only a pending record can be decided; a concurrent second decision loses
    res = coll.update_one(
        {"_id": oid, "status": STATUS_PENDING},
        {"$set": {"status": payload.status, "reviewed_by": user["email"], "reviewed_at": now, "updated_at": now}},
    )
    if res.matched_count == 0:
        existing = coll.find_one({"_id": oid}, {"status": 1})
        if existing is None:
            raise HTTPException(status_code=404, detail="Achievement not found")
        raise HTTPException(status_code=409, detail=f"Achievement already {existing.get('status')}")
    submitter = (coll.find_one({"_id": oid}, {"email": 1}) or {}).get("email") or ""
    database[AUDIT_COLLECTION].insert_one(
        AuditLog(action=f"achievement_{payload.status}", user=submitter,
                 updated_by=user["email"], timestamp=now).model_dump()
    )
    logger.info("%s achievement %s %s by %s", category.value, achievement_id, payload.status, user["email"])
    return {"status": payload.status, "updated": res.modified_count}


# -------------------- Admin: users -------------------- #

def assign_role(name: str, email: str, role: str, actor: str) -> Optional[str]:
    """
    Put `email` in exactly one role group and record the change.

    Writes the user into its new group, removes it from every other group and
    appends one audit entry as a unit: inside a transaction when
    MONGO_TRANSACTIONS is on, otherwise insert-first so the user is never
    missing from all groups. Returns the audit action written, or None when
    the user already sat in that group.
    """
    database = require_db()
    target = ROLE_COLLECTIONS[role]
    previous = find_user(email)
    if previous is None:
        action = "user_created"
    elif previous["role"] != role:
        action = "role_update"
    else:
        action = None
    now = utcnow()
    created_at = (previous or {}).get("created_at", now)

    def _write(session=None):
        database[target].replace_one(
            {"_id": email},
            {"_id": email, "name": name, "email": email, "role": role, "created_at": created_at, "updated_at": now},
            upsert=True, session=session,
        )
        for other_role, coll in ROLE_COLLECTIONS.items():
            if other_role != role:
                database[coll].delete_one({"_id": email}, session=session)
        if action:
            database[AUDIT_COLLECTION].insert_one(
                AuditLog(action=action, user=email, updated_by=actor, new_role=role, timestamp=now).model_dump(),
                session=session,
            )

    if config.MONGO_TRANSACTIONS:
        with database.client.start_session() as session:
            session.with_transaction(_write)
    else:
        _write()
    return action


@app.get("/admin/users")
def list_users(user=Depends(require_admin)):
    users = []
    for role, coll in ROLE_COLLECTIONS.items():
        for d in get_documents(coll):
            users.append({"name": d.get("name"), "email": d.get("email") or d.get("_id"), "role": role})
    return users


@app.post("/admin/users", status_code=201)
def add_user(payload: UserRecord, user=Depends(require_admin)):
    action = assign_role(payload.name, payload.email, payload.role, user["email"])
    return {"email": payload.email, "role": payload.role, "action": action}


@app.put("/admin/users/{email}/role")
def change_role(email: str, payload: RoleChange, user=Depends(require_admin)):
    existing = find_user(email)
    if existing is None:
        raise HTTPException(status_code=404, detail="User not found")
    action = assign_role(existing.get("name") or "", email, payload.role, user["email"])
    return {"email": email, "role": payload.role, "action": action}


@app.delete("/admin/users/{email}")
def remove_user(email: str, user=Depends(require_admin)):
    database = require_db()
    removed = 0
    for coll in ROLE_COLLECTIONS.values():
        removed += database[coll].delete_one({"_id": email}).deleted_count
    if removed == 0:
        raise HTTPException(status_code=404, detail="User not found")
    database[AUDIT_COLLECTION].insert_one(
        AuditLog(action="user_deleted", user=email, updated_by=user["email"], timestamp=utcnow()).model_dump()
    )
    return {"email": email, "removed": removed}


@app.post("/admin/users/import")
async def import_users(file: UploadFile = File(...), file_type: Optional[str] = Form(None),
                       user=Depends(require_admin)):
    require_db()
    try:
        kind = detect_file_type(file.filename, file_type)
        rows = read_rows(await file.read(), kind)
    except ImportFileError as e:
        raise HTTPException(status_code=400, detail=str(e))

    succeeded = failed = 0
    for n, row in enumerate(rows, start=1):
        values = clean_row(row)
        if values is None or values["role"] not in ROLE_COLLECTIONS:
            failed += 1
            continue
        try:
            assign_role(values["name"], values["email"], values["role"], user["email"])
            succeeded += 1
        except PyMongoError as e:
            logger.debug("Import row %d failed: %s", n, e)
            failed += 1
    logger.info("User import by %s: %d succeeded, %d failed", user["email"], succeeded, failed)
    return {"succeeded": succeeded, "failed": failed, "total": succeeded + failed}


# -------------------- Admin: export -------------------- #

def approved_for_export(date: Optional[str] = None) -> List[Dict[str, Any]]:
    docs = []
    for cat in SubmitterCategory:
        for d in get_documents(ACHIEVEMENT_COLLECTIONS[cat.value], filter_dict={"status": STATUS_APPROVED}):
            docs.append({**d, "submitted_by": cat.value})
    if date:
        docs = [d for d in docs if d.get("date") == date]
    return sort_newest_first(docs)


def _export_or_404(date: Optional[str]) -> List[Dict[str, Any]]:
    docs = approved_for_export(date)
    if not docs:
        raise HTTPException(status_code=404, detail="No approved achievements to export")
    return docs


@app.get("/admin/export")
def export_preview(date: Optional[str] = None, user=Depends(require_admin)):
    return serialize_list(approved_for_export(date))


@app.get("/admin/export/pdf")
def export_pdf(date: Optional[str] = None, user=Depends(require_admin)):
    content = render_pdf(_export_or_404(date))
    return Response(
        content,
        media_type=PDF_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={export_filename('pdf')}"},
    )


@app.get("/admin/export/xlsx")
def export_xlsx(date: Optional[str] = None, user=Depends(require_admin)):
    content = render_xlsx(_export_or_404(date))
    return Response(
        content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={export_filename('xlsx')}"},
    )


# -------------------- Admin: audit trail -------------------- #

@app.get("/admin/audit")
def audit_logs(show_all: bool = False, user=Depends(require_admin)):
    filt = None if show_all else {"updated_by": user["email"]}
    logs = get_documents(AUDIT_COLLECTION, filter_dict=filt)
    logs.sort(key=lambda d: _timestamp(d.get("timestamp")), reverse=True)
    return serialize_list(logs)


# -------------------- Run -------------------- #

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
