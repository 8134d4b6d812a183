"""
Match Configuration Models
"""

from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime
import uuid

from ..config.settings import DEFAULT_SCORE_WEIGHTS, BATCH_CONFIG


class ScoreWeights(BaseModel):
    """Maximum points each factor can contribute"""
    industry: int = Field(DEFAULT_SCORE_WEIGHTS["industry"], ge=0)
    company_size: int = Field(DEFAULT_SCORE_WEIGHTS["company_size"], ge=0)
    title: int = Field(DEFAULT_SCORE_WEIGHTS["title"], ge=0)
    tags: int = Field(DEFAULT_SCORE_WEIGHTS["tags"], ge=0)
    status: int = Field(DEFAULT_SCORE_WEIGHTS["status"], ge=0)

    class Config:
        frozen = True

    @property
    def total(self) -> int:
        return self.industry + self.company_size + self.title + self.tags + self.status


class BatchSettings(BaseModel):
    """Batch runner knobs"""
    chunk_size: int = Field(BATCH_CONFIG["chunk_size"], ge=1)
    ai_group_size: int = Field(BATCH_CONFIG["ai_group_size"], ge=1)
    ai_group_delay_seconds: float = Field(BATCH_CONFIG["ai_group_delay_seconds"], ge=0)


class MatchConfig(BaseModel):
    """Complete matching configuration"""
    config_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Default Match Config"
    description: Optional[str] = None

    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    batch: BatchSettings = Field(default_factory=BatchSettings)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def update(self, **kwargs):
        """Update configuration and set updated_at"""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
        self.updated_at = datetime.utcnow()
        return self


def create_default_match_config(
    weights: Optional[dict] = None,
    chunk_size: Optional[int] = None,
) -> MatchConfig:
    """
    Factory function to create a match config with sensible defaults.
    Weight overrides are merged onto the defaults.
    """
    config = MatchConfig()

    if weights:
        merged = {**DEFAULT_SCORE_WEIGHTS, **weights}
        config.weights = ScoreWeights(**merged)

    if chunk_size is not None:
        config.batch = BatchSettings(
            chunk_size=chunk_size,
            ai_group_size=config.batch.ai_group_size,
            ai_group_delay_seconds=config.batch.ai_group_delay_seconds,
        )

    return config
