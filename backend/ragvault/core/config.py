from typing import Annotated, Any, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field, AnyUrl, BeforeValidator


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    APP_NAME: str = "RagVault"
    API_PREFIX: str = "/api"

    # OpenAI embeddings
    OPENAI_API_KEY: str
    EMBEDDING_MODEL: str = "text-embedding-3-large"
    EMBEDDING_DIMENSION: int = 3072
    EMBEDDING_BATCH_SIZE: int = 100

    # Chunking (tokens)
    CHUNK_SIZE: int = 800
    CHUNK_OVERLAP: int = 200

    # Database (entry metadata + namespace registry)
    DATABASE_URL: str

    # Qdrant Vector Database
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: str = ""
    QDRANT_COLLECTION_PREFIX: str = "kb_"

    # Blob storage
    BLOB_BACKEND: Literal["local", "s3"] = "local"
    BLOB_LOCAL_DIR: str = "./data/blobs"
    BLOB_PUBLIC_BASE_URL: str = "http://localhost:8000/api/kb/blobs"
    S3_BUCKET: str = ""
    S3_REGION: str = "us-east-1"
    S3_URL_EXPIRES_IN: int = 3600

    # Ingestion limits and retry policy
    MAX_UPLOAD_MB: int = 10
    RETRY_ATTEMPTS: int = 3
    RETRY_MAX_WAIT_SECONDS: float = 10.0
    PENDING_ENTRY_TTL_SECONDS: int = 900

    # When enabled, identity is read from headers injected by a trusted
    # auth gateway instead of request.state
    TRUST_GATEWAY_HEADERS: bool = False

    FRONTEND_HOST: str = "http://localhost:5173"
    BACKEND_CORS_ORIGINS: Annotated[list[AnyUrl] | str, BeforeValidator(parse_cors)] = [
        "http://localhost:8000"
    ]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ALL_CORS_ORIGINS(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def MAX_UPLOAD_BYTES(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
