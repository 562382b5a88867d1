import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database as MongoDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import lifecycle
from auth import Identity, create_access_token, ensure_same_email, get_identity, is_admin, require_admin, require_self
from database import (
    BOOKINGS, GUIDE_APPLICATIONS, PACKAGES, STORIES, USERS,
    create_document, database, ensure_indexes, get_db, get_document, get_documents, now, parse_object_id, serialize,
)
from errors import ApiError, Forbidden, Internal, InvalidArgument, NotFound, kind_for_status
from schemas import (
    Booking, BookingCreate, BookingDecision, GuideApplication, GuideApplicationCreate, Package, PackageCreate,
    PackageUpdate, ProfileUpdate, Story, StoryCreate, StoryUpdate, TokenRequest, User, UserCreate,
)

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = database.connect()
    ensure_indexes(db)
    yield
    database.close()


# App setup
app = FastAPI(title="Travel Marketplace API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error rendering: {"message": ..., "error": <kind>}
def error_response(status_code: int, message: str, kind: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "error": kind}, headers=headers)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return error_response(exc.status_code, exc.message, exc.kind, getattr(exc, "headers", None))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), kind_for_status(exc.status_code),
                          getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        problems.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid"))
    return error_response(400, "; ".join(problems) or "Invalid request", InvalidArgument.kind)


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return error_response(500, Internal.default_message, Internal.kind)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, Internal.default_message, Internal.kind)


# Routes
@app.get("/")
def root():
    return {"message": "Travel Marketplace Backend Running"}


@app.get("/test")
def test_database(_admin: dict = Depends(require_admin), db: MongoDatabase = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": db.name,
        "connection_status": "Connected",
        "collections": []
    }
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        logger.warning("Database health check failed: %s", e)
        response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


@app.get("/schema")
def get_schema(_admin: dict = Depends(require_admin)):
    return {
        "users": User.model_json_schema(),
        "guideApplications": GuideApplication.model_json_schema(),
        "packages": Package.model_json_schema(),
        "bookings": Booking.model_json_schema(),
        "stories": Story.model_json_schema(),
    }


# Auth endpoints
@app.post("/jwt")
def issue_token(payload: TokenRequest):
    token = create_access_token(payload.model_dump(mode="json"))
    return {"token": token}


# User endpoints
@app.post("/users", status_code=201)
def create_user(payload: UserCreate, response: Response, db: MongoDatabase = Depends(get_db)):
    existing = db[USERS].find_one({"email": payload.email})
    if existing:
        response.status_code = 200
        return {"message": "User already exists", "insertedId": None, "user": serialize(existing)}

    # role is never taken from the client
    user = User(email=payload.email, name=payload.name, photoURL=payload.photoURL, role=lifecycle.DEFAULT_ROLE)
    doc = user.model_dump()
    try:
        user_id = create_document(db, USERS, doc)
    except DuplicateKeyError:
        response.status_code = 200
        existing = db[USERS].find_one({"email": payload.email})
        return {"message": "User already exists", "insertedId": None, "user": serialize(existing)}

    doc["_id"] = user_id
    return {"message": "User created", "insertedId": user_id, "user": serialize(doc)}


@app.get("/users")
def list_users(_admin: dict = Depends(require_admin), db: MongoDatabase = Depends(get_db)):
    return get_documents(db, USERS)


@app.get("/users/role/{email}")
def get_user_role(email: str, _identity: Identity = Depends(require_self), db: MongoDatabase = Depends(get_db)):
    user = db[USERS].find_one({"email": email})
    if not user:
        raise NotFound("User not found")
    return {"role": user.get("role") or lifecycle.DEFAULT_ROLE}


@app.get("/users/admin/{email}")
def check_admin(email: str, _identity: Identity = Depends(require_self), db: MongoDatabase = Depends(get_db)):
    return {"admin": is_admin(db, email)}


@app.patch("/users/admin/{user_id}")
def make_admin(user_id: str, _admin: dict = Depends(require_admin), db: MongoDatabase = Depends(get_db)):
    lifecycle.make_admin(db, user_id)
    return {"message": "User promoted to admin."}


@app.put("/users/{email}")
def update_profile(email: str, payload: ProfileUpdate, _identity: Identity = Depends(require_self),
                   db: MongoDatabase = Depends(get_db)):
    update = {"$setOnInsert": {"role": lifecycle.DEFAULT_ROLE, "createdAt": now()}}
    fields = payload.model_dump(exclude_none=True)
    if fields:
        update["$set"] = fields
    db[USERS].update_one({"email": email}, update, upsert=True)
    return serialize(db[USERS].find_one({"email": email}))


# Package endpoints
@app.post("/packages", status_code=201)
def create_package(payload: PackageCreate, _admin: dict = Depends(require_admin),
                   db: MongoDatabase = Depends(get_db)):
    doc = payload.model_dump()
    doc.pop("_id", None)
    package_id = create_document(db, PACKAGES, doc)
    return {"insertedId": package_id}


@app.get("/packages")
def list_packages(limit: Optional[int] = None, db: MongoDatabase = Depends(get_db)):
    return get_documents(db, PACKAGES, limit=limit)


@app.get("/packages/random/3")
def random_packages(db: MongoDatabase = Depends(get_db)):
    return [serialize(d) for d in db[PACKAGES].aggregate([{"$sample": {"size": 3}}])]


@app.get("/packages/{package_id}")
def get_package(package_id: str, db: MongoDatabase = Depends(get_db)):
    return get_document(db, PACKAGES, package_id, "Package not found.")


@app.patch("/packages/{package_id}")
def update_package(package_id: str, payload: PackageUpdate, _admin: dict = Depends(require_admin),
                   db: MongoDatabase = Depends(get_db)):
    fields = payload.model_dump()
    fields.pop("_id", None)
    if not fields:
        raise InvalidArgument("Nothing to update")
    fields["updatedAt"] = now()
    result = db[PACKAGES].update_one({"_id": parse_object_id(package_id)}, {"$set": fields})
    if result.matched_count == 0:
        raise NotFound("Package not found.")
    return {"message": "Package updated."}


@app.delete("/packages/{package_id}")
def delete_package(package_id: str, _admin: dict = Depends(require_admin), db: MongoDatabase = Depends(get_db)):
    result = db[PACKAGES].delete_one({"_id": parse_object_id(package_id)})
    if result.deleted_count == 0:
        raise NotFound("Package not found.")
    return {"message": "Package deleted."}


# Booking endpoints
@app.post("/bookings", status_code=201)
def create_booking(payload: BookingCreate, identity: Identity = Depends(get_identity),
                   db: MongoDatabase = Depends(get_db)):
    booking_id = lifecycle.create_booking(db, identity.email, payload.model_dump(mode="json"))
    return {"insertedId": booking_id, "status": lifecycle.PENDING}


@app.get("/bookings/tourist/{email}")
def tourist_bookings(email: str, _identity: Identity = Depends(require_self), db: MongoDatabase = Depends(get_db)):
    return get_documents(db, BOOKINGS, {"touristEmail": email}, sort=[("createdAt", -1)])


@app.get("/bookings/guide/{email}")
def guide_bookings(email: str, _identity: Identity = Depends(require_self), db: MongoDatabase = Depends(get_db)):
    return get_documents(db, BOOKINGS, {"guideEmail": email}, sort=[("createdAt", -1)])


@app.get("/bookings/{booking_id}")
def get_booking(booking_id: str, identity: Identity = Depends(get_identity), db: MongoDatabase = Depends(get_db)):
    booking = get_document(db, BOOKINGS, booking_id, "Booking not found.")
    if identity.email not in (booking.get("touristEmail"), booking.get("guideEmail")) and not is_admin(db, identity.email):
        raise Forbidden("Forbidden access")
    return booking


@app.patch("/bookings/{booking_id}")
def decide_booking(booking_id: str, payload: BookingDecision, identity: Identity = Depends(get_identity),
                   db: MongoDatabase = Depends(get_db)):
    status = lifecycle.decide_booking(db, booking_id, identity.email, payload.action)
    return {"message": f"Booking {status}.", "status": status}


@app.delete("/bookings/{booking_id}")
def cancel_booking(booking_id: str, identity: Identity = Depends(get_identity), db: MongoDatabase = Depends(get_db)):
    lifecycle.cancel_booking(db, booking_id, identity.email)
    return {"message": "Booking cancelled."}


# Story endpoints
@app.post("/stories", status_code=201)
def create_story(payload: StoryCreate, identity: Identity = Depends(get_identity),
                 db: MongoDatabase = Depends(get_db)):
    doc = payload.model_dump()
    doc["email"] = identity.email
    doc["createdAt"] = now()
    story_id = create_document(db, STORIES, doc)
    return {"insertedId": story_id}


@app.get("/stories")
def list_stories(email: Optional[str] = None, limit: Optional[int] = None, db: MongoDatabase = Depends(get_db)):
    return get_documents(db, STORIES, {"email": email} if email else {}, limit=limit, sort=[("createdAt", -1)])


@app.get("/stories/{story_id}")
def get_story(story_id: str, db: MongoDatabase = Depends(get_db)):
    return get_document(db, STORIES, story_id, "Story not found.")


@app.patch("/stories/{story_id}")
def update_story(story_id: str, payload: StoryUpdate, identity: Identity = Depends(get_identity),
                 db: MongoDatabase = Depends(get_db)):
    story = get_document(db, STORIES, story_id, "Story not found.")
    ensure_same_email(identity, story.get("email"))

    images = [img for img in story.get("images", []) if img not in payload.removeImages]
    images += [img for img in payload.addImages if img not in images]
    if not images:
        raise InvalidArgument("A story needs at least one image")

    fields = {"images": images, "updatedAt": now()}
    if payload.title is not None:
        fields["title"] = payload.title
    if payload.text is not None:
        fields["text"] = payload.text
    result = db[STORIES].update_one({"_id": parse_object_id(story_id)}, {"$set": fields})
    if result.matched_count == 0:
        raise NotFound("Story not found.")
    return {"message": "Story updated.", "images": images}


@app.delete("/stories/{story_id}")
def delete_story(story_id: str, identity: Identity = Depends(get_identity), db: MongoDatabase = Depends(get_db)):
    story = get_document(db, STORIES, story_id, "Story not found.")
    if config.STORY_DELETE_REQUIRES_AUTHOR and story.get("email") != identity.email \
            and not is_admin(db, identity.email):
        raise Forbidden("Only the author can delete this story")
    result = db[STORIES].delete_one({"_id": parse_object_id(story_id)})
    if result.deleted_count == 0:
        raise NotFound("Story not found.")
    return {"message": "Story deleted."}


# Guide application endpoints
@app.post("/guideApplications", status_code=201)
def submit_guide_application(payload: GuideApplicationCreate, identity: Identity = Depends(get_identity),
                             db: MongoDatabase = Depends(get_db)):
    application_id = lifecycle.submit_application(db, identity.email, payload.model_dump(mode="json"))
    return {"insertedId": application_id, "status": lifecycle.PENDING}


@app.get("/guideApplications")
def list_guide_applications(status: Optional[str] = None, _admin: dict = Depends(require_admin),
                            db: MongoDatabase = Depends(get_db)):
    return get_documents(db, GUIDE_APPLICATIONS, {"status": status} if status else {})


@app.get("/guideApplications/status/{email}")
def guide_application_status(email: str, _identity: Identity = Depends(require_self),
                             db: MongoDatabase = Depends(get_db)):
    return {"status": lifecycle.application_status(db, email)}


@app.get("/guideApplications/{application_id}")
def get_guide_application(application_id: str, _admin: dict = Depends(require_admin),
                          db: MongoDatabase = Depends(get_db)):
    return get_document(db, GUIDE_APPLICATIONS, application_id, "Application not found.")


@app.delete("/guideApplications/{application_id}")
def reject_guide_application(application_id: str, _admin: dict = Depends(require_admin),
                             db: MongoDatabase = Depends(get_db)):
    lifecycle.reject_application(db, application_id)
    return {"message": "Application rejected successfully."}


@app.patch("/guideApplications/{application_id}")
def approve_guide_application(application_id: str, _admin: dict = Depends(require_admin),
                              db: MongoDatabase = Depends(get_db)):
    email = lifecycle.approve_application(db, application_id)
    return {"message": "Application approved and user role updated.", "email": email}


# Admin endpoints
@app.get("/admin/stats")
def admin_stats(_admin: dict = Depends(require_admin), db: MongoDatabase = Depends(get_db)):
    return {
        "users": db[USERS].count_documents({}),
        "usersByRole": {role: db[USERS].count_documents({"role": role}) for role in lifecycle.ROLES},
        "packages": db[PACKAGES].count_documents({}),
        "bookings": db[BOOKINGS].count_documents({}),
        "bookingsByStatus": {
            status: db[BOOKINGS].count_documents({"status": status})
            for status in (lifecycle.PENDING, lifecycle.CONFIRMED, lifecycle.REJECTED)
        },
        "stories": db[STORIES].count_documents({}),
        "pendingApplications": db[GUIDE_APPLICATIONS].count_documents({"status": lifecycle.PENDING}),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
