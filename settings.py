# settings.py
from pydantic import BaseModel, Field
from dotenv import load_dotenv
import os

# Load variables from .env at import time
load_dotenv()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}

class Settings(BaseModel):
    storage: str = Field(default=os.getenv("STORAGE", "stream").lower())  # stream | local | r2
    download_dir: str = Field(default=os.getenv("DOWNLOAD_DIR", os.path.join(os.getcwd(), "downloads")))
    public_base_url: str = Field(default=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"))
    cors_origins: str = Field(default=os.getenv("CORS_ORIGINS", "*"))
    debug: bool = Field(default=_env_flag("DEBUG"))
    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))
    recent_limit: int = Field(default=int(os.getenv("RECENT_LIMIT", "10")))

    ytdlp_binary: str = Field(default=os.getenv("YTDLP_BINARY", "yt-dlp"))
    ffmpeg_binary: str = Field(default=os.getenv("FFMPEG_BINARY", "ffmpeg"))
    ytdlp_cookies_file: str = Field(default=os.getenv("YTDLP_COOKIES_FILE", ""))
    ytdlp_user_agent: str = Field(default=os.getenv("YTDLP_USER_AGENT", DEFAULT_USER_AGENT))

    r2_access_key_id: str = Field(default=os.getenv("R2_ACCESS_KEY_ID", ""))
    r2_secret_access_key: str = Field(default=os.getenv("R2_SECRET_ACCESS_KEY", ""))
    r2_endpoint_url: str = Field(default=os.getenv("R2_ENDPOINT_URL", ""))
    r2_bucket: str = Field(default=os.getenv("R2_BUCKET", "mediagrab"))

    @property
    def cors_origin_list(self):
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()
