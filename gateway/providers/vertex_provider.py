"""Vertex AI Provider

`google-cloud-aiplatform`の`vertexai.generative_models`を用いてGeminiを呼び出すプロバイダ。
認証情報はSDKの既定(Application Default Credentials)に任せます。
"""

import logging
from typing import AsyncIterator, Optional

import vertexai
from vertexai.generative_models import (
    Content,
    GenerationConfig,
    GenerativeModel,
    HarmBlockThreshold,
    HarmCategory,
    Part,
    SafetySetting,
)

from ..schemas import UpstreamContent, UpstreamRequest, UpstreamResult
from .base import GenerationProvider

logger = logging.getLogger(__name__)

SAFETY_SETTINGS = [
    SafetySetting(
        category=HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        threshold=HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    ),
    SafetySetting(
        category=HarmCategory.HARM_CATEGORY_HARASSMENT,
        threshold=HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    ),
]


class VertexAIProvider(GenerationProvider):
    def __init__(self, project_id: str, location: str, model_id: str):
        self.model_id = model_id
        vertexai.init(project=project_id, location=location)
        logger.info("Vertex AI initialized (project=%s, location=%s, model=%s)", project_id, location, model_id)

    def _model(self, system_instruction: Optional[UpstreamContent]) -> GenerativeModel:
        """システム指示はモデル単位の設定なので、リクエストごとにモデルを組み立てる。"""
        system_parts = None
        if system_instruction is not None:
            system_parts = [Part.from_text(p.text or "") for p in system_instruction.parts]
        return GenerativeModel(
            self.model_id,
            system_instruction=system_parts,
            safety_settings=SAFETY_SETTINGS,
        )

    def _call_args(self, request: UpstreamRequest) -> dict:
        contents = [Content.from_dict(c.model_dump(exclude_none=True)) for c in request.contents]
        config = GenerationConfig(**request.generation_config.model_dump(exclude_none=True))
        return {"contents": contents, "generation_config": config}

    async def generate(self, request: UpstreamRequest) -> UpstreamResult:
        model = self._model(request.system_instruction)
        response = await model.generate_content_async(**self._call_args(request))
        return UpstreamResult.model_validate(response.to_dict())

    async def stream(self, request: UpstreamRequest) -> AsyncIterator[UpstreamResult]:
        model = self._model(request.system_instruction)
        responses = await model.generate_content_async(**self._call_args(request), stream=True)

        async def _iter() -> AsyncIterator[UpstreamResult]:
            async for response in responses:
                yield UpstreamResult.model_validate(response.to_dict())

        return _iter()
