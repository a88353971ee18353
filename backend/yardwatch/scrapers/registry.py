"""Configured yards and the source class for each site kind"""
from typing import Dict, List, Type
import httpx

from yardwatch.config import get_settings
from yardwatch.scrapers.base import InventorySource, Yard
from yardwatch.scrapers.jalopy import JalopyScraper
from yardwatch.scrapers.trusty import TrustyScraper


SOURCE_KINDS: Dict[str, Type[InventorySource]] = {
    JalopyScraper.kind: JalopyScraper,
    TrustyScraper.kind: TrustyScraper,
}


def configured_yards() -> List[Yard]:
    settings = get_settings()
    jalopy = settings.jalopy_upstream
    return [
        Yard(id="1020", name="BOISE", kind="jalopy", upstream=jalopy),
        Yard(id="1021", name="CALDWELL", kind="jalopy", upstream=jalopy),
        Yard(id="1119", name="GARDEN CITY", kind="jalopy", upstream=jalopy),
        Yard(id="1022", name="NAMPA", kind="jalopy", upstream=jalopy),
        Yard(id="1099", name="TWIN FALLS", kind="jalopy", upstream=jalopy),
        Yard(id="trusty", name="TRUSTY'S", kind="trusty", upstream=settings.trusty_upstream),
    ]


def build_source(yard: Yard, client: httpx.AsyncClient) -> InventorySource:
    source_class = SOURCE_KINDS.get(yard.kind)
    if source_class is None:
        raise ValueError(f"Unknown yard kind: {yard.kind}")
    return source_class(yard, client)
