from __future__ import annotations
import logging
from pathlib import Path
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Milvus connection ---
    milvus_host: str = "localhost"
    milvus_port: int = 19530
    milvus_token: Optional[str] = None     # "user:password" when auth is on
    connection_alias: str = "default"

    # --- Collection ---
    collection_name: str = "demo_index"
    csv_path: str = "films.csv"
    dimension: int = 8
    segment_row_limit: int = 4096          # rows before an index materialises

    # --- Index / search ---
    index_type: str = "IVF_FLAT"
    metric_type: str = "L2"
    nlist: int = 100
    nprobe: int = 8
    top_k: int = 3
    release_years: List[int] = Field(default_factory=lambda: [1995, 2002])
    query_seed: Optional[int] = None

    # --- Logging ---
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FILMS_DEMO_",
        env_file=str(Path(__file__).resolve().parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("index_type", "metric_type")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if not isinstance(logging.getLevelName(v), int):
            raise ValueError(f"unknown log level '{v}'")
        return v

    @field_validator("dimension", "top_k", "nlist", "nprobe")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def milvus_uri(self) -> str:
        return f"http://{self.milvus_host}:{self.milvus_port}"
