import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

# .env.local wins over .env, real environment wins over both
load_dotenv(".env.local")
load_dotenv()


def _csv(value: str) -> Tuple[str, ...]:
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _optional_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


@dataclass
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "")
    pg_host: str = os.getenv("PGHOST", "localhost")
    pg_port: int = int(os.getenv("PGPORT", "5432"))
    pg_db: str = os.getenv("PGDATABASE", "rag")
    pg_user: str = os.getenv("PGUSER", "rag")
    pg_password: str = os.getenv("PGPASSWORD", "ragpw")
    pg_pool_min_size: int = int(os.getenv("PG_POOL_MIN_SIZE", "1"))
    pg_pool_max_size: int = int(os.getenv("PG_POOL_MAX_SIZE", "10"))

    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "openai")
    embedding_dimensions: int = int(os.getenv("EMBEDDING_DIMENSIONS", "1024"))

    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openai_embed_model: str = os.getenv("OPENAI_EMBED_MODEL", "text-embedding-3-small")
    openai_chat_model: str = os.getenv("OPENAI_CHAT_MODEL", "gpt-3.5-turbo")
    openai_max_tokens: int = int(os.getenv("OPENAI_MAX_TOKENS", "1000"))
    openai_temperature: float = float(os.getenv("OPENAI_TEMPERATURE", "0.7"))

    aws_region: str = os.getenv("AWS_REGION", "")
    bedrock_embed_model: str = os.getenv("BEDROCK_EMBED_MODEL", "amazon.titan-embed-text-v2:0")

    chunk_size: int = int(os.getenv("CHUNK_SIZE", "4000"))
    retrieval_limit: int = int(os.getenv("RETRIEVAL_LIMIT", "3"))
    retrieval_max_distance: Optional[float] = _optional_float(os.getenv("RETRIEVAL_MAX_DISTANCE"))

    allowed_access_levels: Tuple[str, ...] = _csv(os.getenv("ALLOWED_ACCESS_LEVELS", "admin"))
    default_access_level: str = os.getenv("DEFAULT_ACCESS_LEVEL", "pending_approval")

    cors_origins: Tuple[str, ...] = _csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return f"host={self.pg_host} port={self.pg_port} dbname={self.pg_db} user={self.pg_user} password={self.pg_password}"


settings = Settings()
