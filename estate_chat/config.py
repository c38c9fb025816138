"""Environment-driven settings for the chat service."""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Environment variable parsing
ENV = os.getenv("ENV")
ENV_IS_PROD = ENV == "prod"
COMMIT_HASH = os.getenv("COMMIT_HASH")
if not COMMIT_HASH and ENV_IS_PROD:
    raise ValueError("COMMIT_HASH is required for production environments")

APP_ADDR = os.getenv("HOST", "0.0.0.0")  # nosec B104
APP_PORT = int(os.getenv("PORT", "8000"))

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
SQL_DEBUG = os.getenv("SQL_DEBUG", "false").lower() == "true"
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))
AUTO_CREATE_SCHEMA = os.getenv("AUTO_CREATE_SCHEMA", "false").lower() == "true"

# Identity tokens
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    if ENV_IS_PROD:
        raise ValueError("JWT_SECRET is required for production environments")
    JWT_SECRET = "dev-secret-change-me"  # nosec B105
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Presence / broadcast backend
PRESENCE_BACKEND = os.getenv("PRESENCE_BACKEND", "memory").lower()
if PRESENCE_BACKEND not in ("memory", "redis"):
    raise ValueError("PRESENCE_BACKEND must be 'memory' or 'redis'")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_CHANNEL = os.getenv("REDIS_CHANNEL", "estate_chat:rooms")

# Messages
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "5000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
