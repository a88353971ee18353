from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List
import re
import httpx
from bs4 import BeautifulSoup

from yardwatch.errors import UpstreamFailure


BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml',
}

YEAR_PATTERN = re.compile(r'^\d{4}$')


@dataclass(frozen=True)
class Yard:
    """One upstream junkyard location"""
    id: str
    name: str
    kind: str
    upstream: str


def parse_inventory_html(html: str) -> List[Dict]:
    """
    Extract inventory rows from an upstream results table.

    Rows look like:
        <tr><td>2010</td><td>TOYOTA</td><td>PRIUS</td><td>37</td></tr>

    Anything that is not a four-cell row starting with a year is skipped
    (header rows, layout tables).
    """
    soup = BeautifulSoup(html or "", 'html.parser')
    rows = []

    for tr in soup.find_all('tr'):
        cells = tr.find_all('td', recursive=False)
        if len(cells) != 4:
            continue

        year_text, make, model, row = (cell.get_text().strip() for cell in cells)
        if not YEAR_PATTERN.match(year_text) or not make or not model or not row:
            continue

        rows.append({
            "year": int(year_text),
            "make": make,
            "model": model,
            "row": row,
        })

    return rows


class InventorySource(ABC):
    """Base class for a yard's inventory site; one instance per yard"""

    kind = "unknown"

    def __init__(self, yard: Yard, client: httpx.AsyncClient):
        self.yard = yard
        self.client = client

    @abstractmethod
    async def fetch_inventory(self, make: str, model: str = "") -> List[Dict]:
        """
        Fetch the yard's vehicles for a make and optional model.

        Returns:
            List of rows {yardId, yardName, year, make, model, row}
        """
        pass

    @abstractmethod
    async def fetch_makes(self) -> List[str]:
        """List the makes the yard currently carries"""
        pass

    @abstractmethod
    async def fetch_models(self, make: str) -> List[str]:
        """List the models the yard carries for a make"""
        pass

    def tag_rows(self, rows: List[Dict]) -> List[Dict]:
        """Attach the yard identity to parsed rows"""
        return [{"yardId": self.yard.id, "yardName": self.yard.name, **r} for r in rows]

    async def post_inventory_form(self, form: Dict[str, str]) -> List[Dict]:
        """POST the search form to the site root and parse the results table"""
        response = await self._request("POST", "/", data=form, headers=BROWSER_HEADERS)
        return self.tag_rows(parse_inventory_html(response.text))

    async def post_form_json(self, path: str, fields: Dict[str, Any]) -> Any:
        """
        POST x-www-form-urlencoded fields (what the site's jQuery sends) and decode JSON.
        """
        data = {k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in fields.items()}
        response = await self._request(
            "POST",
            path,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded; charset=UTF-8"},
        )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFailure(f"{self.yard.name} {path} returned invalid JSON") from e

    async def get_page(self, path: str = "/") -> str:
        response = await self._request("GET", path, headers=BROWSER_HEADERS)
        return response.text

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = self.yard.upstream.rstrip("/") + path
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"{self.yard.name} {path} unreachable: {e}") from e

        if response.status_code >= 400:
            raise UpstreamFailure(f"Upstream {path} failed: {response.status_code}")
        return response


def names_from(items: Any, field: str) -> List[str]:
    """Pull a string field out of an upstream JSON list, dropping blanks"""
    if not isinstance(items, list):
        return []
    names = []
    for item in items:
        value = item.get(field) if isinstance(item, dict) else None
        text = str(value or "").strip()
        if text:
            names.append(text)
    return names
