#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Best-effort text translation for video titles, descriptions and subtitles.

Providers are tried in order: DeepL (only when a key is available), the public
Google Translate endpoint, then MyMemory. The first usable answer wins.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from config import config
from exceptions import TranslationError
from logging_config import StructuredLogger
from models import SubtitleSegment

logger = StructuredLogger(__name__)

# Anything a provider can fail with that just means "try the next one"
PROVIDER_ERRORS = (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError)


class Translator:
    """Translation client over a shared ``httpx.AsyncClient``."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, deepl_api_key: Optional[str] = None):
        """Initialize the translator.

        Args:
            client: HTTP client to use. One is created (and owned) when omitted.
            deepl_api_key: Server-side DeepL key, used when a request brings none.
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.TRANSLATE_TIMEOUT_SECONDS)
        self.deepl_api_key = deepl_api_key if deepl_api_key is not None else config.DEEPL_API_KEY
        self.translations_count = 0
        self.provider_failures = 0

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def _deepl(self, text: str, target_lang: str, source_lang: Optional[str],
                     api_key: str) -> Tuple[str, Optional[str]]:
        data = {"text": text, "target_lang": target_lang.upper()}
        if source_lang:
            data["source_lang"] = source_lang.upper()
        response = await self.client.post(
            config.DEEPL_API_URL,
            data=data,
            headers={"Authorization": f"DeepL-Auth-Key {api_key}"},
        )
        response.raise_for_status()
        translation = response.json()["translations"][0]
        detected = translation.get("detected_source_language")
        return translation["text"], detected.lower() if detected else source_lang

    async def _google(self, text: str, target_lang: str, source_lang: Optional[str]) -> Tuple[str, Optional[str]]:
        response = await self.client.get(
            config.GOOGLE_TRANSLATE_URL,
            params={"client": "gtx", "sl": source_lang or "auto", "tl": target_lang, "dt": "t", "q": text},
        )
        response.raise_for_status()
        payload = response.json()
        # [[["translated", "original", ...], ...], null, "detected-lang", ...]
        translated = "".join(chunk[0] for chunk in payload[0] if chunk and chunk[0])
        detected = payload[2] if len(payload) > 2 and isinstance(payload[2], str) else source_lang
        return translated, detected

    async def _mymemory(self, text: str, target_lang: str, source_lang: Optional[str]) -> Tuple[str, Optional[str]]:
        response = await self.client.get(
            config.MYMEMORY_URL,
            params={"q": text, "langpair": f"{source_lang or 'en'}|{target_lang}"},
        )
        response.raise_for_status()
        payload = response.json()
        if int(payload.get("responseStatus", 0)) != 200:
            raise ValueError(f"MyMemory status {payload.get('responseStatus')}: {payload.get('responseDetails')}")
        return payload["responseData"]["translatedText"], source_lang

    def _providers(self, deepl_api_key: Optional[str]) -> List[Tuple[str, Callable[..., Awaitable[Tuple[str, Optional[str]]]]]]:
        providers = []
        api_key = deepl_api_key or self.deepl_api_key
        if api_key:
            providers.append(("deepl", lambda t, tl, sl: self._deepl(t, tl, sl, api_key)))
        providers.append(("google", self._google))
        providers.append(("mymemory", self._mymemory))
        return providers

    async def translate(self, text: str, target_lang: str = "ko", source_lang: Optional[str] = None,
                        deepl_api_key: Optional[str] = None) -> Dict[str, Any]:
        """Translate ``text``, falling back through the provider chain.

        Returns:
            dict: {"translatedText", "provider", "sourceLang", "targetLang"}

        Raises:
            TranslationError: Every provider failed.
        """
        for name, provider in self._providers(deepl_api_key):
            try:
                translated, detected = await provider(text, target_lang, source_lang)
            except PROVIDER_ERRORS as e:
                self.provider_failures += 1
                logger.warning(f"Translation provider '{name}' failed: {e!r}", provider=name)
                continue
            if not translated:
                self.provider_failures += 1
                logger.warning(f"Translation provider '{name}' returned an empty result.", provider=name)
                continue
            self.translations_count += 1
            logger.debug(f"Translated {len(text)} chars with '{name}'.", provider=name, target_lang=target_lang)
            return {
                "translatedText": translated,
                "provider": name,
                "sourceLang": detected,
                "targetLang": target_lang,
            }
        logger.error("All translation providers failed.", exc_info=False, target_lang=target_lang)
        raise TranslationError()

    async def translate_subtitles(self, segments: Sequence[SubtitleSegment], target_lang: str = "ko",
                                  source_lang: Optional[str] = None,
                                  deepl_api_key: Optional[str] = None) -> List[Dict[str, Any]]:
        """Translate subtitle segments concurrently, keeping their timing.

        Blank segments are passed through untranslated.
        """
        semaphore = asyncio.Semaphore(max(1, config.TRANSLATE_CONCURRENCY))

        async def translate_one(segment: SubtitleSegment) -> Dict[str, Any]:
            translated = ""
            if segment.text:
                async with semaphore:
                    result = await self.translate(segment.text, target_lang, source_lang, deepl_api_key)
                translated = result["translatedText"]
            return {"start": segment.start, "end": segment.end, "text": segment.text, "translatedText": translated}

        return list(await asyncio.gather(*(translate_one(segment) for segment in segments)))

    def stats(self) -> Dict[str, int]:
        return {"translations": self.translations_count, "provider_failures": self.provider_failures}
