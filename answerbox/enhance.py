"""
Thai output enhancement.

Rewrites Thai text into more natural, fluent Thai using a dedicated
OpenAI-compatible endpoint (a Thai instruction-tuned model), keeping the
meaning and register of the original.

Config (in config.yaml):

    enhance:
      enabled: true
      url: https://api.float16.cloud/dedicate/<id>
      api_key: ${FLOAT16_API_KEY}
      model: openthaigpt/openthaigpt1.5-7b-instruct
      timeout: 60
"""
from __future__ import annotations

import logging
import re

import httpx

logger = logging.getLogger(__name__)

_THAI_RE = re.compile(r"[฀-๿]")

SYSTEM_PROMPT = (
    "คุณคือผู้ช่วยตอบคำถามที่ฉลาดและซื่อสัตย์ "
    "ที่เชี่ยวชาญในการปรับปรุงภาษาไทยให้เป็นธรรมชาติ"
)

PROMPT_TEMPLATE = (
    "ช่วยปรับปรุงข้อความต่อไปนี้ให้เป็นภาษาไทยที่เป็นธรรมชาติและลื่นไหลมากขึ้น "
    "โดยรักษาความหมายและระดับความเป็นทางการเดิมไว้:\n\n"
    "{text}\n\n"
    "ข้อความที่ปรับปรุงแล้ว:"
)


class EnhanceError(Exception):
    """The enhancement endpoint failed or is not configured."""


def contains_thai(text: str) -> bool:
    return bool(_THAI_RE.search(text or ""))


class ThaiEnhancer:
    def __init__(self, url: str = "", api_key: str = "",
                 model: str = "openthaigpt/openthaigpt1.5-7b-instruct",
                 timeout: float = 60.0):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: dict) -> "ThaiEnhancer":
        e_cfg = cfg.get("enhance", {})
        return cls(
            url=e_cfg.get("url", ""),
            api_key=e_cfg.get("api_key", ""),
            model=e_cfg.get("model", "openthaigpt/openthaigpt1.5-7b-instruct"),
            timeout=e_cfg.get("timeout", 60),
        )

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    async def enhance(self, text: str) -> str:
        """Return the improved text. The input comes back unchanged if the model says nothing."""
        if not self.configured:
            raise EnhanceError("Thai enhancement endpoint not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": PROMPT_TEMPLATE.format(text=text)},
            ],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.url}/v1/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Thai enhancement failed: %s", e)
            raise EnhanceError(f"API call failed: {e}") from e

        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content")
        return content.strip() if content else text
