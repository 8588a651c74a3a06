"""Response payload helpers shared by the page routers."""

from typing import Any, Dict, Iterable, List, Optional


def notice(title: str, description: str) -> Dict[str, str]:
    return {"title": title, "description": description}


def page(
    name: str,
    *,
    toast: Optional[Dict[str, str]] = None,
    next_path: Optional[str] = None,
    **data: Any,
) -> Dict[str, Any]:
    """
    JSON view model of a page. `toast` becomes the "notice" shown to the user,
    `next_path` the page the client should navigate to afterwards.
    """
    payload: Dict[str, Any] = {"page": name, **data}
    if toast is not None:
        payload["notice"] = toast
    if next_path is not None:
        payload["next"] = next_path
    return payload


def dump_all(records: Iterable[Any]) -> List[Dict[str, Any]]:
    return [r.model_dump(mode="json") for r in records]
