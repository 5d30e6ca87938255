import os

DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.getcwd(), "data"))
UPLOADS_DIR = os.getenv("UPLOADS_DIR", os.path.join(os.getcwd(), "uploads"))

# Leave DATABASE_URL unset to run on the JSON files only
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "storefront")
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", 3000))

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", 24))

PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
