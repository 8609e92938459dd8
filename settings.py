import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT_DIR = Path(__file__).parent


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "listings"
    jwt_secret: str = "listings-secret-2024"
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    mail_host: Optional[str] = None
    mail_port: int = 587
    mail_user: Optional[str] = None
    mail_password: Optional[str] = None
    mail_from: Optional[str] = None
    mail_secure: bool = False
    enquiry_mail: Optional[str] = None

    recaptcha_secret: Optional[str] = None
    lead_api_url: Optional[str] = None

    spaces_endpoint: Optional[str] = None
    spaces_region: str = "blr1"
    spaces_key: Optional[str] = None
    spaces_secret: Optional[str] = None
    spaces_bucket: Optional[str] = None
    cdn_endpoint: Optional[str] = None

    featured_target: int = 4
    exclusive_amenity_min: int = 6
    default_search_city: str = "Gurgaon"
    prune_references_on_delete: bool = False

    @property
    def mail_enabled(self) -> bool:
        return bool(self.mail_host and self.mail_from)

    @property
    def storage_enabled(self) -> bool:
        return bool(self.spaces_endpoint and self.spaces_bucket and self.cdn_endpoint)


def load_settings() -> Settings:
    """Read settings from the environment, after loading ``.env`` next to the code."""
    load_dotenv(ROOT_DIR / '.env')
    env = os.environ
    return Settings(
        mongo_url=env.get('MONGO_URL', 'mongodb://localhost:27017'),
        db_name=env.get('DB_NAME', 'listings'),
        jwt_secret=env.get('JWT_SECRET', 'listings-secret-2024'),
        cors_origins=[o.strip() for o in env.get('CORS_ORIGINS', '*').split(',') if o.strip()],
        log_level=env.get('LOG_LEVEL', 'INFO').upper(),
        mail_host=env.get('MAIL_HOST') or None,
        mail_port=int(env.get('MAIL_PORT', '587')),
        mail_user=env.get('MAIL_USER') or None,
        mail_password=env.get('MAIL_PASSWORD') or None,
        mail_from=env.get('MAIL_FROM') or None,
        mail_secure=_flag(env.get('MAIL_SECURE_CONNECTION')),
        enquiry_mail=env.get('ENQUIRY_MAIL') or None,
        recaptcha_secret=env.get('RECAPTCHA_SECRET_KEY') or None,
        lead_api_url=env.get('LEAD_API_URL') or None,
        spaces_endpoint=env.get('SPACES_ENDPOINT') or None,
        spaces_region=env.get('SPACES_REGION', 'blr1'),
        spaces_key=env.get('SPACES_KEY') or None,
        spaces_secret=env.get('SPACES_SECRET') or None,
        spaces_bucket=env.get('SPACES_BUCKET') or None,
        cdn_endpoint=env.get('CDN_ENDPOINT') or None,
        featured_target=int(env.get('FEATURED_TARGET', '4')),
        exclusive_amenity_min=int(env.get('EXCLUSIVE_AMENITY_MIN', '6')),
        default_search_city=env.get('DEFAULT_SEARCH_CITY', 'Gurgaon'),
        prune_references_on_delete=_flag(env.get('PRUNE_REFERENCES_ON_DELETE')),
    )
