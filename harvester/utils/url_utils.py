"""URL parsing utilities"""
import json
import re
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

from harvester.core.config import settings
from harvester.schemas.labels import Label

_ZPID_IN_URL = re.compile(r"/([0-9]+)_zpid")
_IDENTIFIER = re.compile(r"^[0-9]+$")


def is_valid_identifier(value: Any) -> bool:
    """
    Whether a value is a canonical listing identifier (string of a positive integer)

    Examples:
        >>> is_valid_identifier("2060419537")
        True
        >>> is_valid_identifier(123)
        True
        >>> is_valid_identifier("abc")
        False
        >>> is_valid_identifier("")
        False
    """
    if value is None or isinstance(value, bool):
        return False
    text = str(value).strip()
    return bool(_IDENTIFIER.match(text)) and int(text) > 0


def extract_zpid_from_url(url: str) -> Optional[str]:
    """
    Extract the listing identifier from a detail URL

    Examples:
        >>> extract_zpid_from_url("https://www.zillow.com/homedetails/48-Terra-Vista-Ave/2060419537_zpid/")
        '2060419537'
        >>> extract_zpid_from_url("https://www.zillow.com/homes/")

    Args:
        url: listing URL

    Returns:
        zpid or None
    """
    if not url:
        return None
    match = _ZPID_IN_URL.search(urlparse(url).path)
    return match.group(1) if match else None


def detail_url(zpid: str, direct_url: str = "") -> str:
    """Absolute detail page URL for a listing, preferring the direct URL when given."""
    return urljoin(settings.site_origin, direct_url or f"/homedetails/{zpid}_zpid/")


def get_url_data(url: str) -> dict[str, Any]:
    """
    Derive the work item user data for a start URL

    - `/homedetails/..._zpid/` -> single detail
    - `/b/...` (building pages) -> legacy layout, resolved to a zpid on visit
    - anything else -> region query; the URL already encodes the listing
      status, so the status filter is bypassed for it
    """
    path = urlparse(url).path
    zpid = extract_zpid_from_url(url)

    if zpid:
        return {"label": Label.DETAIL.value, "zpid": zpid}

    if "/b/" in path:
        return {"label": Label.LEGACY_DETAIL.value}

    return {"label": Label.QUERY.value, "ignore_filter": True}


def clean_up_url(url: str) -> tuple[str, Optional[dict]]:
    """
    Remove pagination from a search URL

    Returns:
        (url rooted at /homes/ with pagination reset, decoded searchQueryState or None)
    """
    parsed = urlparse(urljoin(settings.site_origin, url))
    params = parse_qs(parsed.query, keep_blank_values=True)
    query_state: Optional[dict] = None

    if "searchQueryState" in params:
        query_state = json.loads(params["searchQueryState"][0])
        params["searchQueryState"] = [
            json.dumps({**query_state, "pagination": {}}, separators=(",", ":"))
        ]

    path = parsed.path
    if "_zpid" not in path and "/b/" not in path:
        path = "/homes/" if path in ("", "/") or "searchQueryState" in params else path

    query = urlencode({k: v[0] for k, v in params.items()})
    return urlunparse((parsed.scheme, parsed.netloc, path, "", query, "")), query_state
