from pydantic import BaseModel
import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "")
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    jwt_expires_min: int = int(os.getenv("JWT_EXPIRES_MIN", "120"))

    # Outbound mail. Delivery is off until both host and sender are set.
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "25"))
    smtp_from: str = os.getenv("SMTP_FROM", "")
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "")
    smtp_starttls: bool = _flag("SMTP_STARTTLS")
    # Empty list means any recipient domain.
    mail_allowed_domains: list[str] = [
        d.strip().lower()
        for d in os.getenv("MAIL_ALLOWED_DOMAINS", "").split(",")
        if d.strip()
    ]

    app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:3000")
    app_name: str = os.getenv("APP_NAME", "Operations Portal")

    @property
    def smtp_ready(self) -> bool:
        return bool(self.smtp_host and self.smtp_from)


settings = Settings()
