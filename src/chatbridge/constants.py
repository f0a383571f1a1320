"""Compile-time constants for the chatbridge package.

These are values baked into code that change only on code updates,
NOT between environments. For runtime settings, see config.py.
"""

# ──────────────────────────────────────────────────────────────────────
# Chat Defaults (fallbacks if config.json / env are missing values)
# ──────────────────────────────────────────────────────────────────────
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Keep responses concise and friendly."
)
DEFAULT_MAX_CONVERSATION_MESSAGES = 20
DEFAULT_MODEL_DEPLOYMENT = "gpt-4o"
DEFAULT_ADAPTER = "litellm"
DEFAULT_API_VERSION = "2024-10-21"

# Shown in place of a reply when the backend returns no text
NO_RESPONSE_PLACEHOLDER = "No response received."
# Reported by ServiceInfo when no default endpoint is configured
ENDPOINT_NOT_CONFIGURED = "Not configured"

# ──────────────────────────────────────────────────────────────────────
# Ping probe
# ──────────────────────────────────────────────────────────────────────
PING_PROBE_TEXT = "hi"
PING_MAX_OUTPUT_TOKENS = 1

# ──────────────────────────────────────────────────────────────────────
# HTTP (OpenAI-compatible REST adapter)
# ──────────────────────────────────────────────────────────────────────
HTTP_TIMEOUT = 120.0

# ──────────────────────────────────────────────────────────────────────
# Environment variable references
# ──────────────────────────────────────────────────────────────────────
ENV_ENDPOINT = "AZURE_AI_FOUNDRY_ENDPOINT"
ENV_MODEL_DEPLOYMENT = "AZURE_AI_MODEL_DEPLOYMENT"
ENV_API_KEY = "AZURE_OPENAI_API_KEY"
ENV_CONFIG_PATH = "CHATBRIDGE_CONFIG"

# ──────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────
CONFIG_FILENAME = "configs/config.json"
