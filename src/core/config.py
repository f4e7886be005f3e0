import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # go up to project root
env_path = BASE_DIR / ".env.development"

load_dotenv(env_path)


class Settings:
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB: str = os.getenv("MONGO_DB", "vod_db")
    VIDEOS_COLLECTION: str = os.getenv("VIDEOS_COLLECTION", "videos")

    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY")
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
    AWS_S3_BUCKET: str = os.getenv("AWS_S3_BUCKET")
    # CDN or custom domain in front of the bucket; defaults to the virtual-hosted S3 URL
    S3_PUBLIC_BASE_URL: str = os.getenv("S3_PUBLIC_BASE_URL")
    S3_KEY_PREFIX: str = os.getenv("S3_KEY_PREFIX", "uploads/")

    UPLOAD_STAGING_DIR: str = os.getenv("UPLOAD_STAGING_DIR", str(BASE_DIR / "tmp"))
    INGEST_TIMEOUT_SECONDS: float = float(os.getenv("INGEST_TIMEOUT_SECONDS", "900"))
    MAX_FIELD_BYTES: int = int(os.getenv("MAX_FIELD_BYTES", str(1024 * 1024)))

    CELERY_BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_RESULT_BACKEND: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
    CELERY_VIEWS_QUEUE: str = os.getenv("CELERY_VIEWS_QUEUE", "views")
    CELERY_PUBLISH_TIMEOUT_SECONDS: float = float(os.getenv("CELERY_PUBLISH_TIMEOUT_SECONDS", "2"))
    CELERY_PUBLISH_MAX_RETRIES: int = int(os.getenv("CELERY_PUBLISH_MAX_RETRIES", "2"))


settings = Settings()
