"""ゲートウェイのエラー分類。

いずれもリクエストに対して終端的で、自動リトライは行わない。
`main`の例外ハンドラが`{"error": ..., "details": ...}`のJSONへ変換する。
"""

from typing import Any, Optional


class GatewayError(Exception):
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthorized(GatewayError):
    """Bearerトークンが無い/不正/許可リスト外。"""
    status_code = 401


class BadRequest(GatewayError):
    """メッセージ一覧が空、またはuser/assistantの内容が無い。"""
    status_code = 400


class UpstreamError(GatewayError):
    """上流アダプタの呼び出し(非ストリーム/ストリーム確立)に失敗。"""
    status_code = 500


class InternalError(GatewayError):
    status_code = 500
