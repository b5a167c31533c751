import os
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables from .env file with explicit path
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env')


def _csv(name: str, default: str) -> tuple:
    raw = os.getenv(name, default)
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


# OpenAI Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.5"))
WARMUP_PROVIDERS = os.getenv("WARMUP_PROVIDERS", "true").lower() == "true"

# Remote knowledge base and external Markdown instructions
KB_URL = os.getenv("KB_URL")
PROMPT_URL = os.getenv("PROMPT_URL")
REFRESH_SECONDS = int(os.getenv("REFRESH_SECONDS", "300"))  # 5 minutes
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "15"))

# Retrieval
RETRIEVE_TOP_K = int(os.getenv("RETRIEVE_TOP_K", "5"))

# Sessions
SESSION_TIMEOUT_SECONDS = int(os.getenv("SESSION_TIMEOUT_SECONDS", "1800"))  # 30 minutes
SESSION_SWEEP_SECONDS = int(os.getenv("SESSION_SWEEP_SECONDS", "60"))
SESSION_MAX_TURNS = int(os.getenv("SESSION_MAX_TURNS", "12"))

# Admin surface (kb-reload, prompt-reload, debug-config)
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "https://pos.kartingcentral.co.uk,https://www.kartingcentral.co.uk,http://localhost:3000",
    ).split(",")
    if origin.strip()
]

# Dialogue policy
#
# Hand-tuned keyword lists. BOOKING and GENERAL must stay disjoint: a query
# hitting GENERAL never asks for track/day.
DAY_DEPENDENT_TRACKS = _csv("DAY_DEPENDENT_TRACKS", "mile_end")
BOOKING_KEYWORDS = _csv(
    "BOOKING_KEYWORDS",
    "book,booking,reserve,reservation,availability,available,slot,slots,"
    "price,prices,pricing,cost,how much,pay,payment,deposit,tickets for",
)
GENERAL_KEYWORDS = _csv(
    "GENERAL_KEYWORDS",
    "laps,lap,height,age,minimum,speed,mph,helmet,equipment,wear,shoes,"
    "safety,how long,duration,opening,open,hours",
)
