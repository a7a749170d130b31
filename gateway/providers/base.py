"""上流生成サービスのアダプタインターフェース。

各バックエンドは変換済みの`UpstreamRequest`を受け取り、完了レスポンス1件、
または部分結果の非同期イテレータを`UpstreamResult`の形で返します。
呼び出しは1回のみで、リトライは行いません。
"""

from typing import AsyncIterator

from ..schemas import UpstreamRequest, UpstreamResult


class GenerationProvider:
    async def generate(self, request: UpstreamRequest) -> UpstreamResult:
        """非ストリームの生成を行い、完了レスポンスを返す抽象メソッド。"""
        raise NotImplementedError

    async def stream(self, request: UpstreamRequest) -> AsyncIterator[UpstreamResult]:
        """ストリームを確立し、部分結果を1件ずつ返す非同期イテレータを返す抽象メソッド。

        確立時の失敗はこのコルーチンの中で送出し、レスポンスヘッダ送信前に扱えるようにする。
        """
        raise NotImplementedError
