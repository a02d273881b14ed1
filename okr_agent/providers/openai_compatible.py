"""OpenAI 兼容 chat/completions 接口的 Provider 适配器（GLM、Kimi）。

- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

只使用公共字段：model/messages/temperature/max_tokens/top_p，非流式。
"""

from typing import Any, Dict, Optional

import httpx

from okr_agent.config.settings import settings
from okr_agent.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from okr_agent.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage
from okr_agent.providers.registry import ModelConfig, ProviderConfig


class OpenAICompatibleClient:
    """按 ProviderConfig 调用某个厂商的补全接口。"""

    def __init__(self, provider: ProviderConfig, cfg=settings, timeout: Optional[float] = None):
        self._provider = provider
        self._settings = cfg
        self._timeout = timeout or getattr(cfg, "http_timeout", 30.0)
        self.name = provider.name

    @property
    def _api_key(self) -> Optional[str]:
        return getattr(self._settings, self._provider.api_key_setting, None)

    @property
    def _base_url(self) -> str:
        return getattr(self._settings, self._provider.base_url_setting, None) or self._provider.base_url

    def chat(self, req: ChatRequest) -> ChatResult:
        if not self._api_key:
            raise ValidationError(
                code="MISSING_API_KEY",
                message=f"{self._provider.api_key_setting.upper()} not set",
                provider=self.name,
            )
        try:
            model_cfg = self._provider.models[req.model]
        except KeyError:
            raise ValidationError(
                code="UNKNOWN_MODEL",
                message=f"Unknown model {req.model!r} for provider {self.name}",
            ) from None
        payload = self._build_payload(req, model_cfg)
        try:
            with httpx.Client(timeout=req.timeout or self._timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code, provider=self.name)
        return self._parse_response(resp.json(), req)

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        return {
            "model": model_cfg.provider_model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "temperature": req.temperature or model_cfg.default_temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
            "stream": False,
        }

    def _parse_response(self, data: Dict[str, Any], req: ChatRequest) -> ChatResult:
        choices = []
        for i, ch in enumerate(data.get("choices", [])):
            msg = ch.get("message") or {}
            choices.append(
                ChatChoice(
                    index=i,
                    message=ChatMessage(role=msg.get("role") or "assistant", content=msg.get("content") or ""),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage") or {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)
