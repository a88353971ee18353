"""
Trusty's Pick-A-Part inventory site.
Single location, so no yard id; makes only appear in the landing page's select box.
"""
from typing import Dict, List
from bs4 import BeautifulSoup

from yardwatch.scrapers.base import InventorySource, names_from


def parse_make_options(html: str) -> List[str]:
    """Read the option values of <select id="car-make">"""
    soup = BeautifulSoup(html or "", 'html.parser')
    select = soup.find('select', id='car-make')
    if not select:
        return []

    makes = []
    for option in select.find_all('option'):
        value = (option.get('value') or "").strip()
        if value:
            makes.append(value)
    return makes


class TrustyScraper(InventorySource):
    kind = "trusty"

    async def fetch_inventory(self, make: str, model: str = "") -> List[Dict]:
        form = {"VehicleMake": make}
        if model:
            form["VehicleModel"] = model
        return await self.post_inventory_form(form)

    async def fetch_makes(self) -> List[str]:
        html = await self.get_page("/")
        return parse_make_options(html)

    async def fetch_models(self, make: str) -> List[str]:
        models = await self.post_form_json(
            "/Home/GetModels",
            {"makeName": make, "showInventory": True},
        )
        return names_from(models, "model")
