"""Bearerトークン認証。

許可リストが空の場合はすべてのトークンを拒否する(認証無しで公開しない)。
"""

import logging
from typing import AbstractSet, Optional

from fastapi import Header, Request

from .errors import Unauthorized

logger = logging.getLogger(__name__)


def check_bearer(authorization: Optional[str], allowed_keys: AbstractSet[str]) -> str:
    """`Authorization`ヘッダからトークンを取り出し、許可リストに含まれるか確認する。"""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Unauthorized: Invalid or missing API key.")
    token = authorization[len("Bearer "):].strip()
    if not token or token not in allowed_keys:
        raise Unauthorized("Unauthorized: Invalid or missing API key.")
    return token


def require_api_key(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    """FastAPI依存関数。アプリのコンテキストに保持した許可リストで検証する。"""
    context = request.app.state.context
    try:
        check_bearer(authorization, context.authorized_keys)
    except Unauthorized:
        logger.warning("Rejected request to %s: bad or missing bearer token", request.url.path)
        raise
