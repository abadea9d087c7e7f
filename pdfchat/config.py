"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration – values are read from `.env` or the environment."""

    # LLM (Ollama – local)
    ollama_base_url: str = "http://localhost:11434/v1"
    llm_model: str = "llama3.2"
    temperature: float = 0.7

    # Embeddings
    embedding_backend: str = "ollama"  # "ollama" | "local"
    embedding_model: str = "llama3.2"
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # HTTP behaviour
    request_timeout: float = 120.0  # seconds, per request
    max_retries: int = 0

    # Retrieval
    top_k: int = 4

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
