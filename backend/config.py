import os
from dotenv import load_dotenv

# load .env from backend folder
basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


class Config:

    # -------------------------
    # Flask core
    # -------------------------
    SECRET_KEY = os.getenv("SECRET_KEY", "fallback-secret")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # -------------------------
    # Database
    # -------------------------
    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST")
    DB_PORT = os.getenv("DB_PORT")
    DB_NAME = os.getenv("DB_NAME")

    SQLALCHEMY_DATABASE_URI = os.getenv("SQLALCHEMY_DATABASE_URI")
    if not SQLALCHEMY_DATABASE_URI:
        if all([DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME]):
            SQLALCHEMY_DATABASE_URI = (
                f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}"
                f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
            )
        else:
            SQLALCHEMY_DATABASE_URI = f"sqlite:///{os.path.join(basedir, 'ledgerflow.db')}"

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # -------------------------
    # JWT
    # -------------------------
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", SECRET_KEY)

    # -------------------------
    # Uploads / object storage
    # -------------------------
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(basedir, "uploads"))
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    SIGNED_URL_TTL_SECONDS = int(os.getenv("SIGNED_URL_TTL_SECONDS", 3600))

    # -------------------------
    # Statement pipeline
    # -------------------------
    STATEMENT_AUTO_PROCESS = _env_bool("STATEMENT_AUTO_PROCESS", True)
    STATEMENT_WORKERS = int(os.getenv("STATEMENT_WORKERS", 3))
    PDF_EXTRACTION_TIMEOUT_SECONDS = float(os.getenv("PDF_EXTRACTION_TIMEOUT_SECONDS", 120))
    PDF_MAX_PAGES = int(os.getenv("PDF_MAX_PAGES", 50))
    RECONCILE_BATCH_SIZE = int(os.getenv("RECONCILE_BATCH_SIZE", 50))
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

    # -------------------------
    # Classifier
    # -------------------------
    CLASSIFIER_REVIEW_THRESHOLD = float(os.getenv("CLASSIFIER_REVIEW_THRESHOLD", 0.7))
    CLASSIFIER_RULES_PATH = os.getenv("CLASSIFIER_RULES_PATH")
