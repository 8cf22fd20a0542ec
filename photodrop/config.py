"""PhotoDrop Server Configuration."""

import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "PhotoDrop"
    debug: bool = False
    log_level: str = "INFO"

    # Paths
    data_dir: Path = Path.home() / "photodrop" / "data"
    storage_dir: Path = Path.home() / "photodrop" / "data" / "store"
    upload_dir: Path = Path.home() / "photodrop" / "uploads"

    # Audit database
    db_path: Path = Path.home() / "photodrop" / "data" / "activity.db"

    # Secrets
    download_secret: str = ""
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # Download PINs
    pin_length: int = 4
    pin_expire_hours: int = 24
    pin_max_attempts: int = 5

    # Signed download URLs
    download_url_ttl_seconds: int = 3600  # 1 hour
    uploads_url_prefix: str = "/uploads/"

    # Favorites
    favorites_retention_days: int = 30

    # Store log compaction threshold (log entries)
    store_compact_min_ops: int = 200

    model_config = {"env_prefix": "PHOTODROP_"}

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in [self.data_dir, self.storage_dir, self.upload_dir, self.db_path.parent]:
            d.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate secrets if not set, persist to file so they survive restarts.

        Rotating ``download_secret`` invalidates every outstanding download URL.
        """
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.download_secret:
            self.download_secret = saved.get("download_secret", "") or secrets.token_urlsafe(32)
        if not self.jwt_secret:
            self.jwt_secret = saved.get("jwt_secret", "") or secrets.token_urlsafe(32)

        secrets_file.write_text(
            f"download_secret={self.download_secret}\njwt_secret={self.jwt_secret}\n"
        )


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
