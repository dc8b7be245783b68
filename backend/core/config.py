import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)

OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
JUDGE_MODEL = str(os.getenv("JUDGE_MODEL") or "gpt-4o-mini").strip()
QA_MODE = os.getenv("QA_MODE", "false").lower() == "true"


def env_flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).strip().lower() in {"1", "true", "yes", "on"}
