"""Inventory sources for the supported junkyard sites"""
from yardwatch.scrapers.base import InventorySource, Yard, parse_inventory_html
from yardwatch.scrapers.jalopy import JalopyScraper
from yardwatch.scrapers.trusty import TrustyScraper
from yardwatch.scrapers.registry import build_source, configured_yards

__all__ = [
    'InventorySource',
    'Yard',
    'parse_inventory_html',
    'JalopyScraper',
    'TrustyScraper',
    'build_source',
    'configured_yards',
]
