import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# DEV ONLY: default secret. Set EDUFLEX_SECRET_KEY in any real deployment.
SECRET_KEY = os.getenv("EDUFLEX_SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE = timedelta(minutes=60)

DATABASE_URL = os.getenv("EDUFLEX_DATABASE_URL", f"sqlite:///{BASE_DIR}/eduflex.db")

# Uploaded files live under UPLOAD_DIR and are served from UPLOAD_URL_PREFIX
UPLOAD_DIR = Path(os.getenv("EDUFLEX_UPLOAD_DIR", BASE_DIR / "uploads"))
UPLOAD_URL_PREFIX = "/uploads"
MAX_UPLOAD_BYTES = int(os.getenv("EDUFLEX_MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
UPLOAD_CHUNK_SIZE = 1024 * 1024

ALLOWED_UPLOAD_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "image/jpeg",
    "image/png",
    "text/plain",
}

# Grading
GRADE_MIN = 0
GRADE_MAX = 100

# how many times a submit/grade unit of work is replayed after a concurrent write
MAX_WRITE_ATTEMPTS = 3
