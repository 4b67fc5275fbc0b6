"""Environment-driven settings for the BezaSpace service."""
import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "bezaspace")

# Server
PORT = int(os.getenv("PORT", 8000))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Behaviour
SEARCH_DEBOUNCE_SECONDS = float(os.getenv("SEARCH_DEBOUNCE_SECONDS", "0.3"))
USER_SEARCH_LIMIT = int(os.getenv("USER_SEARCH_LIMIT", "10"))
MAX_PROJECT_IMAGES = int(os.getenv("MAX_PROJECT_IMAGES", "5"))
MAX_WRITE_RETRIES = int(os.getenv("MAX_WRITE_RETRIES", "3"))

PROJECTS_COLLECTION = "projects"
USERS_COLLECTION = "users"
SESSIONS_COLLECTION = "session"
