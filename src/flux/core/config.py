import os
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

# Application Paths
WORKSPACE_ROOT = Path.cwd()
LOGS_DIR = Path(os.getenv("FLUX_LOGS_DIR", str(WORKSPACE_ROOT / "data" / "logs")))

# Redis Configuration (local key-value storage)
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_DB = int(os.getenv("REDIS_DB", 0))

# Ollama Configuration
OLLAMA_HOST = os.getenv("OLLAMA_HOST")
OLLAMA_PORT = int(os.getenv("OLLAMA_PORT", 11434))
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2")

# LLM request defaults
LLM_REQUEST_TIMEOUT = float(os.getenv("LLM_REQUEST_TIMEOUT", "60"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))

# Storage Keys
KEY_SESSION_CONFIG = "nanocoder-config"
KEY_ACTION_LOGS = "flux_agent_action_logs"
KEY_AGENT_MEMORY = "flux_agent_memory"

# Keyring configuration
KEYRING_SERVICE = "FluxNanocoder"

# Agent limits
MAX_TOOL_ITERATIONS = 5
ACTION_LOG_CAPACITY = 500
COMMAND_HISTORY_LIMIT = 100
HISTORY_PAIRS = 5
RECENT_TASKS_LIMIT = 10
RECENT_ACTIONS_LIMIT = 5

# Post-action verification
VERIFIED_TOOLS = [
    name.strip()
    for name in os.getenv("VERIFIED_TOOLS", "create_task,update_task_status,update_task").split(",")
    if name.strip()
]
VERIFY_RETRIES = int(os.getenv("VERIFY_RETRIES", "2"))
VERIFY_RETRY_DELAY = float(os.getenv("VERIFY_RETRY_DELAY", "0.25"))

# Logging
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Default to INFO, allow override
LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def setup_logging(name=None):
    """
    Configure logging for the application.
    Writes to both console and a rotating log file in LOGS_DIR.
    """
    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVEL)

    # Avoid adding handlers multiple times
    if logger.hasHandlers():
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        LOGS_DIR / "nanocoder.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    # Silence noisy SDK loggers unless debug
    for noisy in ("httpx", "httpcore", "openai", "anthropic", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
