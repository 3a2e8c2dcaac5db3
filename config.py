import os
from dotenv import load_dotenv

load_dotenv()

DEFAULT_SECRET_KEY = "dev-secret-key-change-me"


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL")
    DATABASE_NAME = os.getenv("DATABASE_NAME")

    # Token signing
    SECRET_KEY = os.getenv("SECRET_KEY", DEFAULT_SECRET_KEY)
    JWT_ALGORITHM = "HS256"
    JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "1440"))  # 24h

    PORT = int(os.getenv("PORT", "8000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # Seeded administrator account
    ADMIN_ID = os.getenv("ADMIN_ID", "ADMIN")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "1234")

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # One-time codes
    OTP_TTL_MIN = int(os.getenv("OTP_TTL_MIN", "10"))
    OTP_ECHO = os.getenv("OTP_ECHO", "true").lower() == "true"

    # Banner uploads
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", "uploads")
    MAX_BANNER_BYTES = int(os.getenv("MAX_BANNER_BYTES", str(5 * 1024 * 1024)))
    ALLOWED_IMAGE_EXTENSIONS = {"jpeg", "jpg", "png", "gif"}
