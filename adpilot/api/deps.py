"""Shared dependencies for the third-party SEO data connectors"""
from adpilot.connectors.dataforseo import DataForSEOConnector
from adpilot.connectors.moz import MozConnector


def get_dataforseo_connector() -> DataForSEOConnector:
    return DataForSEOConnector()


def get_moz_connector() -> MozConnector:
    return MozConnector()
