"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths (relative defaults resolve against the working directory)
DATA_DIR = Path(os.getenv("RAGCHAIN_DATA_DIR", "."))

# Model backends
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "ollama")  # ollama | openai
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3.1:8b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-minilm:latest")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60.0"))
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.3"))

# Splitting (units of TOKENIZER_ENCODING tokens)
TOKENIZER_ENCODING = os.getenv("TOKENIZER_ENCODING", "cl100k_base")
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
# Documents added to a persisted store use larger segments
STORE_CHUNK_SIZE = int(os.getenv("STORE_CHUNK_SIZE", "2000"))
STORE_CHUNK_OVERLAP = int(os.getenv("STORE_CHUNK_OVERLAP", "200"))

# Retrieval
RETRIEVAL_MAX_RESULTS = int(os.getenv("RETRIEVAL_MAX_RESULTS", "3"))
DEFAULT_MIN_SCORE = float(os.getenv("DEFAULT_MIN_SCORE", "0.7"))

# Conversation memory
MEMORY_DB_PATH = Path(os.getenv("MEMORY_DB_PATH", str(DATA_DIR / "chat-memory.db")))
MEMORY_MAX_MESSAGES = int(os.getenv("MEMORY_MAX_MESSAGES", "10"))

# URL loading
URL_FETCH_TIMEOUT = float(os.getenv("URL_FETCH_TIMEOUT", "20.0"))
USER_AGENT = os.getenv("USER_AGENT", "Mozilla/5.0 (compatible; ragchain/0.1)")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
