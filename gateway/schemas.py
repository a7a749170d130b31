"""OpenAI互換スキーマとVertex AI側スキーマの定義。

クライアント向けのChatCompletionリクエスト/レスポンス/ストリームチャンクと、
上流(Vertex AI Gemini)の`contents`/`generationConfig`/レスポンス形状を
Pydanticモデルとして定義します。上流側はcamelCaseのエイリアスを持ち、
SDKの`to_dict()`が返すsnake_caseのキーでも検証できます。
"""

from __future__ import annotations
from typing import List, Optional, Literal, Any
from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """OpenAI互換のチャット補完リクエスト。

    `model`などクライアントが送る未対応フィールドは受け取って無視する。
    """
    model_config = ConfigDict(extra="ignore")

    model: Optional[str] = None
    messages: List[ChatMessage] = Field(min_length=1)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    stream: Optional[bool] = False


class ChatCompletionMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class ChatCompletionChoice(BaseModel):
    """非ストリーム時の選択肢。"""
    index: int = 0
    message: ChatCompletionMessage
    finish_reason: Optional[Literal["stop", "length"]] = None


class ChatCompletionUsage(BaseModel):
    """上流から引き継いだトークン使用量。"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """OpenAI互換のチャット補完レスポンス。"""
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: List[ChatCompletionChoice]
    usage: ChatCompletionUsage


class DeltaMessage(BaseModel):
    """ストリームチャンクで用いられる差分メッセージ。"""
    content: str = ""


class ChatCompletionChunkChoice(BaseModel):
    """ストリームチャンクの選択肢。"""
    index: int = 0
    delta: DeltaMessage
    finish_reason: Optional[Literal["stop"]] = None


class ChatCompletionChunk(BaseModel):
    """OpenAI互換のストリームチャンク(SSE)。"""
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChatCompletionChunkChoice]


class ModelsList(BaseModel):
    """モデル一覧レスポンス。"""
    object: Literal["list"] = "list"
    data: list[dict[str, Any]]


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    message: str = "Vertex AI Gateway is running."
    model: str
    instructions: str = "Send a POST request to this endpoint with OpenAI-compatible JSON body."


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None


# --- Upstream (Vertex AI) shapes ---------------------------------------------

class _UpstreamModel(BaseModel):
    # accept both the REST camelCase names and the SDK's snake_case dict keys
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UpstreamPart(_UpstreamModel):
    text: Optional[str] = None


class UpstreamContent(_UpstreamModel):
    """上流の`Content`。`role`は`user`/`model`のみ。"""
    role: Optional[Literal["user", "model"]] = None
    parts: List[UpstreamPart] = Field(default_factory=list)


class UpstreamGenerationConfig(_UpstreamModel):
    """疎な生成パラメータ。リクエストで指定されたものだけを持つ。"""
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = Field(default=None, alias="maxOutputTokens")
    top_p: Optional[float] = Field(default=None, alias="topP")
    top_k: Optional[int] = Field(default=None, alias="topK")


class UpstreamRequest(_UpstreamModel):
    """RequestTranslatorの出力。アダプタはこれを上流呼び出しに変換する。"""
    contents: List[UpstreamContent]
    generation_config: UpstreamGenerationConfig = Field(
        default_factory=UpstreamGenerationConfig, alias="generationConfig"
    )
    system_instruction: Optional[UpstreamContent] = Field(default=None, alias="systemInstruction")


class UpstreamCandidate(_UpstreamModel):
    content: Optional[UpstreamContent] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class UpstreamUsage(_UpstreamModel):
    prompt_token_count: Optional[int] = Field(default=None, alias="promptTokenCount")
    candidates_token_count: Optional[int] = Field(default=None, alias="candidatesTokenCount")
    total_token_count: Optional[int] = Field(default=None, alias="totalTokenCount")


class UpstreamResult(_UpstreamModel):
    """上流の完了レスポンス、またはストリームの部分結果1件。"""
    candidates: List[UpstreamCandidate] = Field(default_factory=list)
    usage_metadata: Optional[UpstreamUsage] = Field(default=None, alias="usageMetadata")
