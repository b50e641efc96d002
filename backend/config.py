"""Configuration management for the Bidwinner ingestion service."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
WORKER_PORT = int(os.getenv("WORKER_PORT", "4000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Storage Configuration
DOCUMENTS_TABLE = os.getenv("DOCUMENTS_TABLE", "documents")
CHUNKS_TABLE = os.getenv("CHUNKS_TABLE", "document_chunks")
MATCH_CHUNKS_FUNCTION = os.getenv("MATCH_CHUNKS_FUNCTION", "match_document_chunks")

# Embedding Configuration
EMBEDDING_API_URL = os.getenv("EMBEDDING_API_URL", "https://api.openai.com/v1/embeddings")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-ada-002")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "1536"))
EMBEDDING_MAX_INPUT_TOKENS = 8191
EMBEDDING_MAX_RETRIES = 5
EMBEDDING_BASE_DELAY = 1.0  # seconds, doubled per attempt
EMBEDDING_TIMEOUT = 60.0

# Chunking Configuration
CHUNK_SIZE = 1000  # tokens (approx 750 words)
CHUNK_OVERLAP = 200  # tokens (approx 150 words)
WORDS_PER_TOKEN = 0.75
MAX_CHUNKS = 200  # per parse, hard cap against memory spikes

# Parsing Configuration
MIN_TEXT_LENGTH = 10
MAX_TEXT_RUNS = 200000
MAX_DOCUMENT_XML_BYTES = 50 * 1024 * 1024

# Pipeline Configuration
MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "10"))
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", "30"))
MAX_CHUNKS_PER_DOCUMENT = 500
EMBEDDING_STREAM_BATCH_SIZE = 5
PIPELINE_BATCH_SIZE = int(os.getenv("PIPELINE_BATCH_SIZE", "10"))
MAX_ERROR_LENGTH = 2000
STALE_PROCESSING_MINUTES = int(os.getenv("STALE_PROCESSING_MINUTES", "30"))

# Retrieval Configuration
SEARCH_OVERFETCH_FACTOR = 5
DEFAULT_SEARCH_K = 10

# Worker Configuration
WORKER_URL = os.getenv("WORKER_URL")
WORKER_API_KEY = os.getenv("WORKER_API_KEY")
WORKER_TIMEOUT = float(os.getenv("WORKER_TIMEOUT", "300"))

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
