"""
カスタム例外モジュール

policy_cache 固有の例外クラスを定義

Producer failures are never wrapped in these types: a waiting caller receives
the exception the producer raised, unchanged.
"""


class PolicyCacheError(Exception):
    """パッケージの基底例外クラス"""

    pass


# =============================================================================
# キー生成関連
# =============================================================================


class CacheKeyError(PolicyCacheError, TypeError):
    """呼び出し引数からキャッシュキーを生成できないエラー"""

    pass


# =============================================================================
# ポリシー関連
# =============================================================================


class InvalidPolicyError(PolicyCacheError, ValueError):
    """ポリシー関数が未知の判定を返したエラー"""

    pass
