import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Storage settings
    data_file: str = os.getenv(
        "BOOKCASE_DATA_FILE",
        os.path.join(os.path.expanduser("~"), ".bookcase", "books.json"),
    )
    sort_order: str = os.getenv("BOOKCASE_SORT_ORDER", "title")

    # Google Books API settings
    google_books_api_url: str = os.getenv(
        "GOOGLE_BOOKS_API_URL", "https://www.googleapis.com/books/v1/volumes"
    )
    google_books_api_key: Optional[str] = os.getenv("GOOGLE_BOOKS_API_KEY")
    google_books_timeout: float = float(os.getenv("GOOGLE_BOOKS_TIMEOUT", "10"))
    cover_timeout: float = float(os.getenv("COVER_TIMEOUT", "10"))
    # A volume without a thumbnail is reported as not found unless relaxed
    lookup_require_thumbnail: bool = _env_flag("LOOKUP_REQUIRE_THUMBNAIL", "true")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Bookcase")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING")


settings = Settings()
