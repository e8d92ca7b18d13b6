"""
Server configuration management
"""
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Ambient server settings"""

    # Connection handling
    recv_chunk_size: int = Field(default=1024, gt=0)
    io_timeout_sec: Optional[float] = Field(default=None, gt=0)  # None keeps reads/writes fully blocking

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"
    log_to_file: bool = False
    project_root: Path = Path(__file__).parent.parent
    log_dir: Path = project_root / "logs"

    class Config:
        env_prefix = "ECHOFRAME_"
        env_file = ".env"


settings = Settings()
