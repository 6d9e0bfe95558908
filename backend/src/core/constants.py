"""Application constants and configuration values."""

from decimal import Decimal

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite) - localhost
    FRONTEND_URL,  # Production URL if FRONTEND_URL is set accordingly
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Money
MONEY_QUANTUM = Decimal('0.01')  # Two decimal places (minor unit)
# Largest magnitude a Numeric(12, 2) column holds
MAX_MONEY_AMOUNT = Decimal('9999999999.99')
MINOR_UNITS_PER_MAJOR = 100

# Insurer grouping for transactions whose insurer is missing from the loaded insurer set
UNKNOWN_INSURER_KEY = "unknown"
UNKNOWN_INSURER_NAME = "Unknown Insurer"

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]
