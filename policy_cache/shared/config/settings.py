"""
Centralized settings

環境変数とデフォルト値の単一ソースを提供する。
"""

from __future__ import annotations

import os
from functools import lru_cache

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


def _load_dotenv() -> str:
    """作業ディレクトリから上位へ .env を探索して読み込む（既存の環境変数は上書きしない）"""
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)
    return dotenv_path


class Settings(BaseModel):
    """アプリケーション設定"""

    log_level: str = Field(default="WARNING", alias="LOG_LEVEL")

    # age-based policy helpers fall back to this when no max_age is given
    default_max_age_seconds: float = Field(
        default=300.0,
        ge=0.0,
        alias="POLICY_CACHE_DEFAULT_MAX_AGE_SECONDS",
    )

    model_config = {"populate_by_name": True}


@lru_cache
def get_settings() -> Settings:
    """キャッシュされた設定を取得（初回に .env を読み込む）"""
    _load_dotenv()
    return Settings.model_validate(dict(os.environ))


def reload_settings() -> Settings:
    """環境変数の再読み込み"""
    get_settings.cache_clear()
    return get_settings()
