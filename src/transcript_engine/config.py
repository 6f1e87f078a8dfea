from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class TranscriptEngineConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TRANSCRIPT_ENGINE_")

    agent_uid: str = ""

    granularity: Literal["auto", "block", "word"] = "auto"

    reassembly_timeout_seconds: float = 5.0
    reassembly_max_attempts: int = 32
    eviction_sweep_interval_seconds: float = 1.0

    chunk_queue_size: int = 256

    implicit_finalize: bool = True
    allow_late_corrections: bool = False

    log_file: str = ""
