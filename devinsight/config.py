import os
from dotenv import load_dotenv


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""
    def __init__(self, load_env=True):
        if load_env:
            load_dotenv()
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///devinsight.db")
        self.github_api_url = os.getenv("GITHUB_API_URL", "https://api.github.com")
        self.github_timeout = int(os.getenv("GITHUB_TIMEOUT", "15"))
        self.metrics_max_age_minutes = int(os.getenv("METRICS_MAX_AGE_MINUTES", "60"))
        self.smtp_host = os.getenv("SMTP_HOST", "localhost")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER")
        self.smtp_password = os.getenv("SMTP_PASSWORD")
        self.smtp_use_tls = _as_bool(os.getenv("SMTP_USE_TLS", "true"))
        self.email_from = os.getenv("EMAIL_FROM", "DevInsight <reports@devinsight.local>")
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
        self.report_cadence = os.getenv("REPORT_CADENCE", "weekly")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

def get_config(load_env=True):
    return Config(load_env=load_env)

if __name__ == '__main__':
    config = get_config()
    print(f"Database URL: {config.database_url}")
    print(f"GitHub API URL: {config.github_api_url}")
    print(f"GitHub Timeout: {config.github_timeout}s")
    print(f"Metrics Max Age: {config.metrics_max_age_minutes} minutes")
    print(f"SMTP Host: {config.smtp_host}:{config.smtp_port}")
    print(f"Report Cadence: {config.report_cadence}")
