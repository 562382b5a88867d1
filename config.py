"""
Environment configuration.

Values come from the process environment; a local .env file is loaded first
when present.
"""

import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "travelDb")

JWT_SECRET = os.getenv("JWT_SECRET", "supersecretkey")
JWT_ALG = "HS256"
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", str(60 * 24)))  # 24 hours

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))

# Only the author (or an admin) may delete a story unless this is turned off
STORY_DELETE_REQUIRES_AUTHOR = os.getenv("STORY_DELETE_REQUIRES_AUTHOR", "true").lower() == "true"
