"""Anti-forgery token scraping for storesmoke."""

from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from storesmoke.constants import ANTIFORGERY_FIELD
from storesmoke.errors import TokenExtractionError


def _action_path(action: str) -> str:
    path = urlparse(action.strip()).path or "/"
    if not path.startswith("/"):
        path = f"/{path}"
    return path.rstrip("/").lower() or "/"


def _find_form(soup: BeautifulSoup, action: str) -> Optional[Tag]:
    wanted = _action_path(action)
    for form in soup.find_all("form"):
        form_action = form.get("action")
        if form_action is not None and _action_path(form_action) == wanted:
            return form
    return None


def retrieve_antiforgery_token(html: str, action: str, field_name: str = ANTIFORGERY_FIELD) -> str:
    """Returns the hidden anti-forgery token of the form posting to ``action``.

    The form's query string is ignored, so a login form rendered with a
    ``ReturnUrl`` still matches ``/Account/Login``.
    """
    soup = BeautifulSoup(html, "lxml")

    form = _find_form(soup, action)
    if form is None:
        raise TokenExtractionError(f"No form posting to '{action}' found in the response.")

    field = form.find("input", attrs={"name": field_name})
    if field is None:
        raise TokenExtractionError(f"Form '{action}' has no '{field_name}' field.")

    token = (field.get("value") or "").strip()
    if not token:
        raise TokenExtractionError(f"Form '{action}' has an empty '{field_name}' value.")

    return token
