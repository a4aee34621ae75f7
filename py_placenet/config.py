"""Configuration management."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (json or console)")

    # Place data
    data_base_url: str = Field(
        default="./data", description="Directory or URL prefix holding the place files"
    )
    place_source_files: List[str] = Field(
        default=[
            "places_1.fgb",
            "places_2.fgb",
            "places_3.fgb",
            "places_4.fgb",
            "places_5.fgb",
        ],
        description="Place files, most trusted first",
    )
    tier_group_sizes: List[int] = Field(
        default=[3, 1, 1], description="How many consecutive place files form each source group"
    )

    def source_groups(self) -> List[List[str]]:
        """Split the place file urls into ordered source groups."""
        base = self.data_base_url.rstrip("/")
        urls = [f"{base}/{name}" for name in self.place_source_files]

        groups = []
        start = 0
        for size in self.tier_group_sizes:
            group = urls[start:start + size]
            if group:
                groups.append(group)
            start += size
        return groups

    class Config:
        env_prefix = "PLACENET_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
