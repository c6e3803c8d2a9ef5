"""
Application configuration
"""
import os
from typing import List, Optional


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    """Application settings"""

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    APP_VERSION: str = os.getenv("APP_VERSION", "1.0.0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL", "")
    SUPABASE_SSLMODE: Optional[str] = os.getenv("SUPABASE_SSLMODE")
    DATABASE_AUTO_CREATE: bool = _env_bool("DATABASE_AUTO_CREATE", "true")

    # Key-value store: "memory" or "redis"
    CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "memory")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # JWT
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-me-access-secret")
    JWT_REFRESH_SECRET: str = os.getenv("JWT_REFRESH_SECRET", "change-me-refresh-secret")
    JWT_EXPIRES_IN: str = os.getenv("JWT_EXPIRES_IN", "15m")
    JWT_REFRESH_EXPIRES_IN: str = os.getenv("JWT_REFRESH_EXPIRES_IN", "7d")
    JWT_ISSUER: str = os.getenv("JWT_ISSUER", "nxg-fitness-api")
    JWT_AUDIENCE: str = os.getenv("JWT_AUDIENCE", "nxg-fitness-app")
    SESSION_TOKEN_SECRET: str = os.getenv("SESSION_TOKEN_SECRET", "change-me-session-secret")
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # CORS settings
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "")
    ADMIN_URL: str = os.getenv("ADMIN_URL", "")
    CORS_ORIGINS: List[str] = _env_list("CORS_ORIGINS")
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
    CORS_ALLOW_HEADERS: list = [
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Correlation-ID",
        "Accept",
        "Origin",
    ]
    CORS_EXPOSE_HEADERS: list = ["X-Correlation-ID"]
    CORS_MAX_AGE: int = 86400

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", "true")
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
    # memory:// or redis://host:port/db
    RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

    # External planning services
    WORKOUT_PLANNING_SERVICE_URL: str = os.getenv(
        "WORKOUT_PLANNING_SERVICE_URL", "https://mock-workout-service.herokuapp.com/api/v1"
    )
    WORKOUT_PLANNING_SERVICE_API_KEY: str = os.getenv("WORKOUT_PLANNING_SERVICE_API_KEY", "")
    DIET_PLANNING_SERVICE_URL: str = os.getenv(
        "DIET_PLANNING_SERVICE_URL", "https://mock-diet-service.herokuapp.com/api/v1"
    )
    DIET_PLANNING_SERVICE_API_KEY: str = os.getenv("DIET_PLANNING_SERVICE_API_KEY", "")
    PLANNING_SERVICE_TIMEOUT: float = float(os.getenv("PLANNING_SERVICE_TIMEOUT", "30"))
    PLANNING_MOCK_MODE: bool = _env_bool("PLANNING_MOCK_MODE", "true")
    PLAN_CACHE_TTL_SECONDS: int = int(os.getenv("PLAN_CACHE_TTL_SECONDS", "86400"))
    CIRCUIT_BREAKER_THRESHOLD: int = int(os.getenv("CIRCUIT_BREAKER_THRESHOLD", "5"))
    CIRCUIT_BREAKER_RESET_SECONDS: int = int(os.getenv("CIRCUIT_BREAKER_RESET_SECONDS", "120"))

    FIREBASE_SERVICE_ACCOUNT_JSON: Optional[str] = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")

    @property
    def cors_origins(self) -> List[str]:
        """Origins allowed by the CORS middleware"""
        origins = [
            "http://localhost:3000",
            "http://localhost:3001",
            "https://localhost:3000",
            "https://localhost:3001",
        ]
        for origin in [self.FRONTEND_URL, self.ADMIN_URL, *self.CORS_ORIGINS]:
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
