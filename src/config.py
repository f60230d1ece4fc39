"""Configuration module for the Classio API.

This module provides centralized configuration management, including directory
paths, API server settings, authentication, invite token policy, and backend
connection settings. All configuration values can be overridden via
environment variables.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Directory Configuration ---

# Root directory of the project
ROOT_DIR = Path(__file__).parent.parent.resolve()

# Data directory name
DATA_DIR_NAME = "data"
DATA_DIR = ROOT_DIR / DATA_DIR_NAME

# --- Database Configuration ---

DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/classio.db")

# Upper bound (seconds) for any single call to an external store.
EXTERNAL_CALL_TIMEOUT_SECONDS: float = float(
    os.getenv("EXTERNAL_CALL_TIMEOUT_SECONDS", "10")
)

# --- API Server Configuration ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))

# CORS allowed origins (comma-separated list)
_CORS_ALLOWED_ORIGINS_STR: str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,"
    "http://127.0.0.1:3000",
)
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in _CORS_ALLOWED_ORIGINS_STR.split(",")
    if origin.strip()
]

# --- Logging Configuration ---

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Authentication Configuration ---

JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-in-production")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
    os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7))
)

# Bcrypt rounds for password hashing (higher = more secure but slower)
BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Password policy applied before any account is created
PASSWORD_MIN_LENGTH: int = int(os.getenv("PASSWORD_MIN_LENGTH", "12"))
PASSWORD_SPECIAL_CHARACTERS: str = os.getenv(
    "PASSWORD_SPECIAL_CHARACTERS", '!@#$%^&*(),.?":{}|<>'
)

# --- Invite Token Configuration ---

# Codes starting with this prefix live in the parent invite store
PARENT_INVITE_PREFIX: str = "P-"

INVITE_TOKEN_ALPHABET: str = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
)
INVITE_TOKEN_LENGTH: int = int(os.getenv("INVITE_TOKEN_LENGTH", "16"))

# Unique-collision retries when inserting a freshly generated token
INVITE_GENERATE_MAX_ATTEMPTS: int = int(os.getenv("INVITE_GENERATE_MAX_ATTEMPTS", "5"))

DEFAULT_INVITE_EXPIRES_IN_DAYS: int = int(
    os.getenv("DEFAULT_INVITE_EXPIRES_IN_DAYS", "30")
)

# --- Registration Configuration ---

# Wait before checking that the profile row materialized after sign-up.
# The Supabase trigger needs a moment; the SQL backend writes it inline.
PROFILE_CHECK_DELAY_SECONDS: float = float(
    os.getenv("PROFILE_CHECK_DELAY_SECONDS", "0")
)

# --- Rate Limiting Configuration ---

RATE_LIMIT_MAX_ATTEMPTS: int = int(os.getenv("RATE_LIMIT_MAX_ATTEMPTS", "5"))
RATE_LIMIT_WINDOW_MINUTES: int = int(os.getenv("RATE_LIMIT_WINDOW_MINUTES", "15"))
RATE_LIMIT_LOCKOUT_MINUTES: int = int(os.getenv("RATE_LIMIT_LOCKOUT_MINUTES", "30"))

# --- Supabase Configuration ---

SUPABASE_URL: Optional[str] = os.getenv("SUPABASE_URL")
SUPABASE_KEY: Optional[str] = os.getenv("SUPABASE_KEY")
