from typing import Any

import orjson


def maybe_json_decode(value: Any) -> Any:
    """Decode ``value`` if it is a JSON document, otherwise hand it back.

    Only ``str`` input is parsed. Any valid JSON is accepted, so ``"123"``
    decodes to ``123`` and ``"null"`` decodes to ``None``; objects become
    dicts. Text that fails to parse is returned unchanged.
    """
    if not isinstance(value, str):
        return value

    try:
        return orjson.loads(value)
    except orjson.JSONDecodeError:
        return value
