import os
from dotenv import load_dotenv

# .env values never override variables already set in the environment
load_dotenv(override=False)

SQLALCHEMY_DATABASE_URL = os.getenv("SQLALCHEMY_DATABASE_URL", "sqlite:///./mealvision.db")

# JWT secret of the hosted auth backend (Supabase signs access tokens with it)
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")

# LLM Selection Configuration
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").lower() # Options: ollama, openrouter, openai
LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL") # Optional override
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2048"))

# Object storage for meal photos
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "meal-images")

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(4 * 1024 * 1024)))
CHAT_TURN_LIMIT = int(os.getenv("CHAT_TURN_LIMIT", "5"))
STREAM_FLUSH_CHARS = int(os.getenv("STREAM_FLUSH_CHARS", "100"))

# Re-encoding applied to photos re-attached to chat requests
IMAGE_MAX_DIMENSION = int(os.getenv("IMAGE_MAX_DIMENSION", "1024"))
IMAGE_QUALITY = int(os.getenv("IMAGE_QUALITY", "80"))

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")
RESPONSE_LANGUAGE = os.getenv("RESPONSE_LANGUAGE", "Japanese")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
