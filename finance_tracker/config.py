"""Configuration settings for the application."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""
    
    app_name: str = "Finance Tracker API"
    debug: bool = False
    log_level: str = "INFO"
    database_path: str = "finance_tracker.db"
    
    # Monthly buckets and budget windows are computed in this zone
    report_timezone: str = "UTC"
    recent_transactions_limit: int = 5
    
    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
