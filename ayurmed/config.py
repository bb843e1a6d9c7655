import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# LLM configuration
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "auto")
LLM_DEFAULT_TIER = os.getenv("LLM_DEFAULT_TIER", "fast")
LLM_MODEL_FAST = os.getenv("LLM_MODEL_FAST", "")
LLM_MODEL_STANDARD = os.getenv("LLM_MODEL_STANDARD", "")
LLM_MODEL_HIGH = os.getenv("LLM_MODEL_HIGH", "")

DATABASE_PATH = os.getenv("DATABASE_PATH", "ayurmed.db")

DATABASE_URL = os.getenv("DATABASE_URL", "")
DATABASE_MAX_CONNECTIONS = int(os.getenv("DATABASE_MAX_CONNECTIONS", "5"))
SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "true").lower() == "true"

# Simulated gateway latency, 0 disables it
STORE_LATENCY_MS = int(os.getenv("STORE_LATENCY_MS", "0"))

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "ayurmed_session")

BASE_DIR = Path(__file__).resolve().parent.parent
STATIC_DIR = os.getenv("STATIC_DIR", str(BASE_DIR / "static"))

# Upload screen advertises "PNG, JPG up to 5MB"
MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))

# Unsaved validation drafts kept in memory before the oldest is dropped
MAX_OPEN_DRAFTS = int(os.getenv("MAX_OPEN_DRAFTS", "256"))
