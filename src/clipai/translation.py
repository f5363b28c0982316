import hashlib
import logging
import secrets
import string

import requests

from clipai.config import TRANSLATE_URL, TRANSLATION_MAX_CHARS, TRANSLATION_TIMEOUT
from clipai.errors import NetworkError, ParseError, UpstreamError, ValidationError
from clipai.models import TranslationResult, TranslationSettings

logger = logging.getLogger(__name__)

SALT_ALPHABET = string.ascii_letters + string.digits
SUCCESS_CODE = "52000"

SUPPORTED_LANGUAGES = (
    ("auto", "Auto detect"),
    ("zh", "Chinese"),
    ("en", "English"),
    ("yue", "Cantonese"),
    ("wyw", "Classical Chinese"),
    ("jp", "Japanese"),
    ("kor", "Korean"),
    ("fra", "French"),
    ("spa", "Spanish"),
    ("th", "Thai"),
    ("ara", "Arabic"),
    ("ru", "Russian"),
    ("pt", "Portuguese"),
    ("de", "German"),
    ("it", "Italian"),
    ("el", "Greek"),
    ("nl", "Dutch"),
    ("pl", "Polish"),
    ("bul", "Bulgarian"),
    ("est", "Estonian"),
    ("dan", "Danish"),
    ("fin", "Finnish"),
    ("cs", "Czech"),
    ("rom", "Romanian"),
    ("slo", "Slovenian"),
    ("swe", "Swedish"),
    ("hu", "Hungarian"),
    ("cht", "Traditional Chinese"),
    ("vie", "Vietnamese"),
)


def make_salt(length: int = 8) -> str:
    return "".join(secrets.choice(SALT_ALPHABET) for _ in range(length))


def make_sign(app_id: str, text: str, salt: str, key: str) -> str:
    return hashlib.md5((app_id + text + salt + key).encode("utf-8")).hexdigest()


class TranslationClient:
    """Client for the Baidu general translation API."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = TRANSLATION_TIMEOUT,
        url: str = TRANSLATE_URL,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._url = url

    def translate(self, text: str, settings: TranslationSettings) -> TranslationResult:
        """Translate *text* using the languages in *settings*.

        Raises:
            ValidationError: Missing credentials, empty text or text over the length limit.
            NetworkError: The API could not be reached.
            UpstreamError: Non-2xx status or an ``error_code`` in the response.
            ParseError: The response carried no usable results.
        """
        if not settings.app_id or not settings.key:
            raise ValidationError("Translation API credentials are not configured")
        if not text.strip():
            raise ValidationError("Nothing to translate")
        if len(text) > TRANSLATION_MAX_CHARS:
            raise ValidationError(f"Text is longer than {TRANSLATION_MAX_CHARS} characters")

        salt = make_salt()
        form = {
            "q": text,
            "from": settings.source_lang,
            "to": settings.target_lang,
            "appid": settings.app_id,
            "salt": salt,
            "sign": make_sign(settings.app_id, text, salt, settings.key),
        }
        try:
            resp = self._session.post(self._url, data=form, timeout=self._timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Translation request failed: {e}") from e
        if not resp.ok:
            raise UpstreamError(
                f"Translation API returned HTTP {resp.status_code}", status=resp.status_code, body=resp.text
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise ParseError("Translation response is not JSON") from e
        if not isinstance(body, dict):
            raise ParseError("Translation response has an unexpected shape")

        code = body.get("error_code")
        if code is not None and str(code) != SUCCESS_CODE:
            message = body.get("error_msg", "unknown error")
            raise UpstreamError(f"Translation API error {code}: {message}", code=str(code), body=resp.text)

        try:
            items = [(item["src"], item["dst"]) for item in body.get("trans_result") or []]
        except (KeyError, TypeError) as e:
            raise ParseError("Translation results are malformed") from e
        if not items:
            raise ParseError("Translation response has no results")

        logger.debug("Translated %d chars (%s -> %s)", len(text), body.get("from"), body.get("to"))
        return TranslationResult(
            source=body.get("from", settings.source_lang),
            target=body.get("to", settings.target_lang),
            items=items,
        )

    def test(self, settings: TranslationSettings) -> bool:
        self.translate("hello", settings)
        return True
