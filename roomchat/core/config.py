from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Roomchat"
    debug: bool = False

    # Paths
    storage_dir: Path = Path(__file__).resolve().parent.parent.parent / "data" / "storage"

    # Database
    database_url: str = f"sqlite:///{Path(__file__).resolve().parent.parent.parent / 'roomchat.db'}"

    # Identity provider tokens
    jwt_secret: str = "dev-only-secret-change-me-0123456789abcdef"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # Storage
    public_base_url: str = "http://localhost:8000"

    # Inbox
    support_label: str = "Support"
    preview_length: int = 80

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "ROOMCHAT_",
    }


settings = Settings()
