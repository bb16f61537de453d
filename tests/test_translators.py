from unittest.mock import MagicMock

import pytest
import requests

from src.core.config import Settings
from src.core.exceptions import TranslationError
from src.core.factory import build_translator
from src.worker.http_translator import HttpTranslator
from src.worker.translator import DictionaryTranslator


def test_dictionary_known_phrases():
    translator = DictionaryTranslator()

    assert translator.translate("Hello", "en", "pt") == "olá"
    assert translator.translate("bom dia", "pt", "en") == "good morning"


def test_dictionary_tags_unknown_text():
    assert DictionaryTranslator().translate("a cat", "en", "fr") == "[FR] a cat"


def _session(json_data=None, status_code=200, exc=None):
    session = MagicMock(spec=requests.Session)
    if exc is not None:
        session.post.side_effect = exc
        return session

    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    session.post.return_value = response
    return session


def test_http_translator_posts_libretranslate_payload():
    session = _session({"translatedText": "olá"})
    translator = HttpTranslator("http://mt.local/", api_key="k", timeout=5, session=session)

    assert translator.translate("hello", "en", "pt") == "olá"

    session.post.assert_called_once_with(
        "http://mt.local/translate",
        json={"q": "hello", "source": "en", "target": "pt", "format": "text", "api_key": "k"},
        timeout=5,
    )


@pytest.mark.parametrize(
    "session, message",
    [
        (_session(status_code=503), "Translation service returned HTTP 503"),
        (_session(exc=requests.Timeout("slow")), "Translation service timed out"),
        (_session(exc=requests.ConnectionError("refused")), "Translation service unavailable"),
        (_session({"translatedText": ""}), "Translation service returned an empty result"),
    ],
)
def test_http_translator_failures(session, message):
    translator = HttpTranslator(session=session)

    with pytest.raises(TranslationError) as exc:
        translator.translate("hello", "en", "pt")

    assert str(exc.value) == message


def test_factory_picks_backend():
    assert isinstance(build_translator(Settings(TRANSLATOR_BACKEND="http")), HttpTranslator)
    assert isinstance(build_translator(Settings()), DictionaryTranslator)
