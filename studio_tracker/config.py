# studio_tracker/config.py
import os
from dataclasses import dataclass
from typing import Optional


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    storage_backend: str = "memory"

    # Supabase (set these in Railway for production)
    supabase_url: Optional[str] = None
    supabase_service_role: Optional[str] = None
    supabase_db_url: Optional[str] = None
    supabase_project_ref: Optional[str] = None
    supabase_anon_key: str = ""
    supabase_jwt_secret: str = ""

    # Receipt mailing
    mailer_backend: str = "http"
    receipt_function_url: str = "http://localhost:8000/notifications/send"
    function_secret: Optional[str] = None
    mailer_timeout: float = 10.0
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None

    # Printed on receipts and emails
    studio_name: str = "Studio Click"
    studio_address: str = "336 Kaduwela Road, Battaramulla"
    studio_phone: str = "077 731 1230"
    currency: str = "LKR"
    logo_path: Optional[str] = None

    # Ledger policy
    id_prefix: str = "SC"
    id_width: int = 4
    allocation_max_attempts: int = 10
    allow_completed_edits: bool = False

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            storage_backend=os.getenv("STUDIO_STORAGE_BACKEND", "memory").lower(),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_role=os.getenv("SUPABASE_SERVICE_ROLE"),
            supabase_db_url=os.getenv("SUPABASE_DB_URL"),
            supabase_project_ref=os.getenv("SUPABASE_PROJECT_REF"),
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
            supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET", ""),
            mailer_backend=os.getenv("STUDIO_MAILER", "http").lower(),
            receipt_function_url=os.getenv(
                "RECEIPT_FUNCTION_URL", "http://localhost:8000/notifications/send"
            ),
            function_secret=os.getenv("RECEIPT_FUNCTION_SECRET") or None,
            mailer_timeout=float(os.getenv("MAILER_TIMEOUT", "10")),
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.getenv("SMTP_PORT", "465")),
            smtp_user=os.getenv("GMAIL_USER"),
            smtp_password=os.getenv("GMAIL_APP_PASSWORD"),
            studio_name=os.getenv("STUDIO_NAME", "Studio Click"),
            studio_address=os.getenv("STUDIO_ADDRESS", "336 Kaduwela Road, Battaramulla"),
            studio_phone=os.getenv("STUDIO_PHONE", "077 731 1230"),
            currency=os.getenv("STUDIO_CURRENCY", "LKR"),
            logo_path=os.getenv("STUDIO_LOGO_PATH") or None,
            id_prefix=os.getenv("JOB_ID_PREFIX", "SC"),
            id_width=int(os.getenv("JOB_ID_WIDTH", "4")),
            allocation_max_attempts=int(os.getenv("ALLOCATION_MAX_ATTEMPTS", "10")),
            allow_completed_edits=_flag(os.getenv("ALLOW_COMPLETED_EDITS")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def jwt_issuer(self) -> Optional[str]:
        if not self.supabase_project_ref:
            return None
        return f"https://{self.supabase_project_ref}.supabase.co/auth/v1"
