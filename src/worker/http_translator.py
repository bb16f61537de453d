import logging
from typing import Optional

import requests

from src.core.exceptions import TranslationError
from src.worker.translator import Translator

logger = logging.getLogger(__name__)


class HttpTranslator(Translator):
    """
    Client for a LibreTranslate compatible translation API.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        """
        POST /translate and return `translatedText`.
        """
        url = f"{self.base_url}/translate"

        payload = {
            "q": text,
            "source": source_language,
            "target": target_language,
            "format": "text",
        }

        if self.api_key:
            payload["api_key"] = self.api_key

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

        except requests.Timeout as e:
            logger.warning(f"HttpTranslator: Request timed out after {self.timeout}s: {e}")
            raise TranslationError("Translation service timed out") from e

        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            logger.warning(f"HttpTranslator: Service returned HTTP {status}: {e}")
            raise TranslationError(f"Translation service returned HTTP {status}") from e

        except (requests.RequestException, ValueError) as e:
            logger.warning(f"HttpTranslator: Request failed: {e}")
            raise TranslationError("Translation service unavailable") from e

        translated = data.get("translatedText") if isinstance(data, dict) else None
        if not translated:
            raise TranslationError("Translation service returned an empty result")

        return translated
