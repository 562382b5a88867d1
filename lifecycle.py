"""
Role and status lifecycles.

Guide applications:  pending -> rejected            (record kept)
                     pending -> approving -> gone    (applicant promoted to guide)
Bookings:            pending -> confirmed | rejected
                     pending -> gone                 (cancelled by the tourist)

A user's `role` field is the only source of truth for authorization.
"""

import logging
from typing import Optional

from pymongo import ReturnDocument
from pymongo.database import Database as MongoDatabase
from pymongo.errors import PyMongoError

from database import BOOKINGS, GUIDE_APPLICATIONS, USERS, create_document, now, parse_object_id
from errors import Forbidden, InvalidArgument, NotFound

logger = logging.getLogger(__name__)

ROLES = ("tourist", "guide", "admin")
DEFAULT_ROLE = "tourist"

PENDING = "pending"
APPROVING = "approving"
REJECTED = "rejected"
CONFIRMED = "confirmed"

# action token -> resulting booking status
BOOKING_ACTIONS = {"confirm": CONFIRMED, "reject": REJECTED}


# -------------------- Roles --------------------

def promote_user(db: MongoDatabase, email: Optional[str], role: str) -> None:
    """Set a user's role. Setting the role a user already holds is harmless."""
    if role not in ROLES:
        raise InvalidArgument(f"Unknown role: {role}")
    result = db[USERS].update_one({"email": email}, {"$set": {"role": role}})
    if result.matched_count == 0:
        raise NotFound("User not found.")
    logger.info("User %s now has role %s", email, role)


def make_admin(db: MongoDatabase, user_id: str) -> None:
    result = db[USERS].update_one({"_id": parse_object_id(user_id)}, {"$set": {"role": "admin"}})
    if result.matched_count == 0:
        raise NotFound("User not found.")
    logger.info("User %s promoted to admin", user_id)


# -------------------- Guide applications --------------------

def submit_application(db: MongoDatabase, email: str, payload: dict) -> str:
    application = dict(payload)
    application.pop("_id", None)
    application["email"] = email
    application["status"] = PENDING
    application["createdAt"] = now()
    return create_document(db, GUIDE_APPLICATIONS, application)


def application_status(db: MongoDatabase, email: str) -> str:
    application = db[GUIDE_APPLICATIONS].find_one({"email": email}, sort=[("createdAt", -1)])
    if not application:
        raise NotFound("No application found for this email.")
    return application.get("status", PENDING)


def reject_application(db: MongoDatabase, application_id: str) -> None:
    oid = parse_object_id(application_id)
    result = db[GUIDE_APPLICATIONS].update_one(
        {"_id": oid, "status": PENDING},
        {"$set": {"status": REJECTED, "updatedAt": now()}},
    )
    if result.matched_count == 0:
        _raise_undecidable(db, oid)
    logger.info("Guide application %s rejected", application_id)


def approve_application(db: MongoDatabase, application_id: str) -> str:
    """
    Promote the applicant to guide and remove the application.

    Runs as a saga over two collections: a pending application is first
    marked `approving`, then the user is promoted, then the application is
    deleted. If promotion fails the application goes back to `pending` so it
    can be decided again. A record found already `approving` (an earlier
    attempt died midway) is resumed. Rejected applications are final.

    Returns the applicant's email.
    """
    oid = parse_object_id(application_id)
    applications = db[GUIDE_APPLICATIONS]

    before = applications.find_one_and_update(
        {"_id": oid, "status": {"$in": [PENDING, APPROVING]}},
        {"$set": {"status": APPROVING, "updatedAt": now()}},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        _raise_undecidable(db, oid)
    email = before.get("email")

    try:
        promote_user(db, email, "guide")
    except NotFound:
        _reopen_application(db, oid)
        raise
    except Exception:
        logger.exception("Promotion failed while approving application %s", application_id)
        _reopen_application(db, oid)
        raise

    applications.delete_one({"_id": oid})
    logger.info("Guide application %s approved for %s", application_id, email)
    return email


def _raise_undecidable(db: MongoDatabase, oid) -> None:
    application = db[GUIDE_APPLICATIONS].find_one({"_id": oid})
    if application is None:
        raise NotFound("Application not found.")
    raise InvalidArgument(f"Application is {application.get('status')}, not pending.")


def _reopen_application(db: MongoDatabase, oid) -> None:
    try:
        db[GUIDE_APPLICATIONS].update_one(
            {"_id": oid, "status": APPROVING},
            {"$set": {"status": PENDING, "updatedAt": now()}},
        )
        logger.warning("Guide application %s reopened as pending", oid)
    except PyMongoError:
        # left as `approving`; approving it again resumes the saga
        logger.exception("Could not reopen guide application %s", oid)


# -------------------- Bookings --------------------

def create_booking(db: MongoDatabase, tourist_email: str, payload: dict) -> str:
    booking = dict(payload)
    booking.pop("_id", None)
    if not booking.get("guideEmail"):
        raise InvalidArgument("guideEmail is required")
    booking["touristEmail"] = tourist_email
    booking["status"] = PENDING
    booking["createdAt"] = now()
    return create_document(db, BOOKINGS, booking)


def decide_booking(db: MongoDatabase, booking_id: str, guide_email: str, action: str) -> str:
    """Guide confirms or rejects a booking. Last decision wins."""
    status = BOOKING_ACTIONS.get(action)
    if status is None:
        raise InvalidArgument("Action must be one of: " + ", ".join(BOOKING_ACTIONS))

    oid = parse_object_id(booking_id)
    booking = db[BOOKINGS].find_one({"_id": oid})
    if not booking:
        raise NotFound("Booking not found.")
    if booking.get("guideEmail") != guide_email:
        raise Forbidden("Only the assigned guide can decide this booking")

    result = db[BOOKINGS].update_one({"_id": oid}, {"$set": {"status": status, "updatedAt": now()}})
    if result.matched_count == 0:
        raise NotFound("Booking not found.")
    logger.info("Booking %s %s by %s", booking_id, status, guide_email)
    return status


def cancel_booking(db: MongoDatabase, booking_id: str, tourist_email: str) -> None:
    oid = parse_object_id(booking_id)
    booking = db[BOOKINGS].find_one({"_id": oid})
    if not booking:
        raise NotFound("Booking not found.")
    if booking.get("touristEmail") != tourist_email:
        raise Forbidden("Only the tourist who booked can cancel")

    result = db[BOOKINGS].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFound("Booking not found.")
    logger.info("Booking %s cancelled by %s", booking_id, tourist_email)
