"""
Decoding of model completions.

Models frequently wrap JSON in a Markdown code fence even when told not to,
so every completion goes through :func:`clean_json` before decoding.
"""

from pydantic import TypeAdapter, ValidationError

from askgate.llm.models import Response, ResponseDecodeError

FENCE = "```"
LANGUAGE_TAG = "json"

_params_adapter = TypeAdapter(dict[str, str])


def _trim_prefix(text: str, prefix: str) -> str:
    return text[len(prefix):] if text.startswith(prefix) else text


def _trim_suffix(text: str, suffix: str) -> str:
    return text[:-len(suffix)] if text.endswith(suffix) else text


def clean_json(text: str) -> str:
    """
    Strip one surrounding code fence and ``json`` language tag.

    Surrounding whitespace is trimmed first, then each marker is removed at
    most once, in this order: leading fence, trailing fence, leading
    ``json``, trailing ``json``. Whitespace left inside the fence is trimmed
    last. Text without a fence passes through apart from the trims.

    >>> clean_json('```json\\n{"a": "b"}\\n```')
    '{"a": "b"}'
    """
    text = _trim_prefix(text.strip(), FENCE)
    text = _trim_suffix(text, FENCE)
    text = _trim_prefix(text, LANGUAGE_TAG)
    text = _trim_suffix(text, LANGUAGE_TAG)
    return text.strip()


def decode_response(raw: str) -> Response:
    """Decode a completion into a :class:`Response`."""
    try:
        return Response.model_validate_json(clean_json(raw))
    except ValidationError as e:
        raise ResponseDecodeError(f"Model returned an invalid response: {e}", raw=raw, cause=e) from e


def decode_params(raw: str) -> dict[str, str]:
    """
    Decode a completion into a flat string-to-string parameter map.

    Keys are lower-cased; when two keys collide after lower-casing the
    later one wins.
    """
    try:
        params = _params_adapter.validate_json(clean_json(raw))
    except ValidationError as e:
        raise ResponseDecodeError(f"Model returned invalid tool parameters: {e}", raw=raw, cause=e) from e
    return {key.lower(): value for key, value in params.items()}
