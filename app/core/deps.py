from typing import Any

from fastapi import Request


def raw_query_params(request: Request) -> dict[str, Any]:
    """Query string as the raw map `parse_query` consumes.

    Repeated keys (`?tag=a&tag=b`) become lists; keys keep the order of
    their first appearance.
    """
    raw: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key not in raw:
            raw[key] = value
        elif isinstance(raw[key], list):
            raw[key].append(value)
        else:
            raw[key] = [raw[key], value]
    return raw
