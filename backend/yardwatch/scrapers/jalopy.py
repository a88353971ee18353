"""
Pick-A-Part Jalopy Jungle inventory site.
Several yards share one upstream; every request names the yard by id.
"""
from typing import Dict, List

from yardwatch.scrapers.base import InventorySource, names_from


class JalopyScraper(InventorySource):
    kind = "jalopy"

    async def fetch_inventory(self, make: str, model: str = "") -> List[Dict]:
        form = {"YardId": self.yard.id, "VehicleMake": make}
        if model:
            form["VehicleModel"] = model
        return await self.post_inventory_form(form)

    async def fetch_makes(self) -> List[str]:
        # upstream returns [{"makeName": "TOYOTA"}, ...]
        makes = await self.post_form_json("/Home/GetMakes", {"yardId": self.yard.id})
        return names_from(makes, "makeName")

    async def fetch_models(self, make: str) -> List[str]:
        # upstream returns [{"model": "PRIUS"}, ...]
        models = await self.post_form_json(
            "/Home/GetModels",
            {"yardId": self.yard.id, "makeName": make},
        )
        return names_from(models, "model")
