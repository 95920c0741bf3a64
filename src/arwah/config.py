from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    # Loads ARWAH_* keys from process env, and also from a local .env file.
    model_config = SettingsConfigDict(env_prefix="ARWAH_", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    # Card background; the photo slot is baked into this image.
    template_path: Path = PACKAGE_DIR / "assets" / "template.jpg"

    # Caption
    caption_font_path: str | None = None
    caption_fill: str = "#000000"
    caption_shadow_fill: tuple[int, int, int, int] = (255, 255, 255, 204)

    # Preview re-render waits this long after the last control change.
    preview_debounce_ms: int = 100

    download_prefix: str = "tahlil"

    # Web shell
    host: str = "127.0.0.1"
    port: int = 8000


settings = Settings()
