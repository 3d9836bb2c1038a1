"""
Configuration management for the lecturer allocation API.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Lecturer Assignment Allocator"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    reload: bool = False

    # Allocation
    active_terms: List[int] = [1, 3, 5, 7]
    tie_break: str = "lecturer_id"  # "lecturer_id" or "seeded_random"
    random_seed: int = 42
    exclude_standby: bool = True
    standby_tag: str = "standby"
    overload_threshold: int = 3

    # Persistence
    store_backend: str = "memory"  # "memory" or "json"
    store_path: str = "./data/allocation_store.json"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
