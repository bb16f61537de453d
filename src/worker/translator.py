import logging
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Translator(ABC):
    """
    Abstract base class for the external translate operation.
    """

    @abstractmethod
    def translate(self, text: str, source_language: str, target_language: str) -> str:
        """
        Translate `text` between two language codes.

        Returns:
            str: The translated text (never empty).

        Raises:
            TranslationError: If the translation cannot be produced.
        """
        pass


# Phrase dictionary used by the offline translator
PHRASES = {
    ("en", "pt"): {
        "hello": "olá",
        "world": "mundo",
        "good morning": "bom dia",
        "thank you": "obrigado",
        "please": "por favor",
        "yes": "sim",
        "no": "não",
    },
    ("pt", "en"): {
        "olá": "hello",
        "mundo": "world",
        "bom dia": "good morning",
        "obrigado": "thank you",
        "por favor": "please",
        "sim": "yes",
        "não": "no",
    },
    ("en", "es"): {
        "hello": "hola",
        "world": "mundo",
        "good morning": "buenos días",
        "thank you": "gracias",
        "please": "por favor",
        "yes": "sí",
        "no": "no",
    },
}


class DictionaryTranslator(Translator):
    """
    Offline translator for development and tests.

    Known phrases are looked up; anything else is tagged with the target
    language, e.g. "[PT] some text".
    """

    def __init__(self, simulated_delay: float = 0.0):
        self.simulated_delay = simulated_delay

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        if self.simulated_delay:
            time.sleep(self.simulated_delay)

        phrases = PHRASES.get((source_language, target_language), {})
        translated = phrases.get(text.strip().lower())
        if translated:
            return translated

        logger.debug(
            f"DictionaryTranslator: No phrase for {source_language}-{target_language}, tagging"
        )
        return f"[{target_language.upper()}] {text}"
