# appbuilder/config.py

import os
from typing import Dict, List

from dotenv import load_dotenv

load_dotenv()

GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

# Friendly model selectors accepted by /api/ai/generate-app
GROQ_MODEL_ALIASES: Dict[str, str] = {
    "default": GROQ_MODEL,
    "fast": os.getenv("GROQ_MODEL_FAST", "llama-3.1-8b-instant"),
    "large": os.getenv("GROQ_MODEL_LARGE", "llama-3.3-70b-versatile"),
}

LOG_LEVEL = os.getenv("APPBUILDER_LOG_LEVEL", "INFO").upper()

CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.getenv(
        "APPBUILDER_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")
    if origin.strip()
]

REACT_VERSION = os.getenv("APPBUILDER_REACT_VERSION", "18")
