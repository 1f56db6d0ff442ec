"""
PyTest設定ファイル

テストに使用する共通フィクスチャを定義します。
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from policy_cache.shared.config.settings import get_settings


class StepClock:
    """手動で進める時計（タイムスタンプ検証用）"""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class GatedProducer:
    """Event で完了を制御できる非同期 producer"""

    def __init__(self, *results: Any) -> None:
        self._results = list(results)
        self.calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        self.calls.append((args, kwargs))
        self.started.set()
        await self.gate.wait()
        result = self._results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def clock():
    """2024-01-01 UTC から始まる StepClock"""
    return StepClock(datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """環境変数を変更するテストの影響を他テストに残さない"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def gated_producer():
    """GatedProducer のファクトリ"""
    return GatedProducer
