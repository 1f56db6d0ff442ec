"""
Loguruベースのログ設定モジュール

キャッシュ内部のログ出力を制御する。
環境変数やフラグによるログレベル制御に対応。
"""

import re
import sys
from typing import Optional

from loguru import logger

from policy_cache.shared.config.settings import reload_settings


def sanitize_sensitive_info(message: str) -> str:
    """
    ログメッセージから機密情報を除去

    Cache keys are built from call arguments, so anything that looks like a
    credential is masked before it reaches a sink.

    Args:
        message: 元のログメッセージ

    Returns:
        サニタイズされたログメッセージ
    """
    # パスワードやキーらしき文字列をマスク
    message = re.sub(
        r"(password|passwd|pwd|api_key|token|secret)([\"']?\s*[=:]\s*[\"']?)[^\s\"',\]}]+",
        r"\1\2***",
        message,
        flags=re.IGNORECASE,
    )

    # Bearer トークンをマスク
    message = re.sub(r"(Bearer\s+)[A-Za-z0-9._\-]+", r"\1***", message)

    return message


def _secure_message_filter(record) -> bool:
    """ログレコードの機密情報をサニタイズ"""
    if "message" in record:
        record["message"] = sanitize_sensitive_info(str(record["message"]))
    return True


def setup_logger(
    verbose: bool = False, quiet: bool = False, level_override: Optional[str] = None
) -> str:
    """
    policy_cache 用の logger 設定

    Args:
        verbose: 詳細ログを有効化（DEBUGレベル）
        quiet: エラーログのみ表示（ERRORレベル）
        level_override: ログレベルの直接指定（TRACE/DEBUG/INFO/WARNING/ERROR）

    Returns:
        設定されたログレベル
    """
    # 既存のハンドラーを削除
    logger.remove()
    # __init__ で無効化した policy_cache のログを有効化
    logger.enable("policy_cache")

    # ログレベルを決定
    if level_override:
        level = level_override.upper()
    elif quiet:
        level = "ERROR"
    elif verbose:
        level = "DEBUG"
    else:
        # 環境変数から取得、デフォルトはWARNING
        level = reload_settings().log_level.upper()

    format_string = (
        "<green>{time:HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    logger.add(
        sys.stderr,
        level=level,
        format=format_string,
        colorize=True,
        backtrace=True,
        diagnose=False,
        filter=_secure_message_filter,
    )

    logger.info(f"Logger initialized - Level: {level}")
    return level


def get_logger(name: str = "policy_cache"):
    """
    名前付きの logger インスタンスを取得

    Args:
        name: ロガー名（キャッシュ名など）

    Returns:
        logger: 設定済みのloggerインスタンス
    """
    # loguruは単一のloggerインスタンスを使用
    return logger.bind(name=name)
