"""Extraction of an output reference from whatever the provider returned.

Providers hand back a bare URL, a list of URLs, or an object carrying one.
The strategies below are tried in order and the first non-empty match wins.
"""

from typing import Any, Callable, List, Optional

from genqueue.core.exceptions import NoOutputReferenceError


def _field(value: Any, name: str) -> Any:
    if isinstance(value, dict):
        return value.get(name)
    return getattr(value, name, None)


def _as_reference(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def from_string(result: Any) -> Optional[str]:
    return _as_reference(result)


def from_first_of_list(result: Any) -> Optional[str]:
    if isinstance(result, (list, tuple)) and result:
        first = result[0]
        # replicate yields FileOutput objects whose str() is the URL
        if not isinstance(first, str) and _field(first, "url"):
            return _as_reference(str(_field(first, "url")))
        return _as_reference(first)
    return None


def from_url_field(result: Any) -> Optional[str]:
    if result is None or isinstance(result, (str, list, tuple)):
        return None
    url = _field(result, "url")
    return _as_reference(url if isinstance(url, str) else None)


def from_outputs_field(result: Any) -> Optional[str]:
    if result is None or isinstance(result, (str, list, tuple)):
        return None
    outputs = _field(result, "outputs")
    if isinstance(outputs, (list, tuple)) and outputs:
        return _as_reference(_field(outputs[0], "url"))
    return None


EXTRACTION_STRATEGIES: List[Callable[[Any], Optional[str]]] = [
    from_string,
    from_first_of_list,
    from_url_field,
    from_outputs_field,
]


def extract_output_reference(result: Any) -> str:
    for strategy in EXTRACTION_STRATEGIES:
        reference = strategy(result)
        if reference:
            return reference
    raise NoOutputReferenceError()
