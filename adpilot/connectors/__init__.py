"""Vendor API connectors"""
from .base_connector import BaseConnector, ConnectorError
from .google_ads import GoogleAdsConnector, build_google_ads_connector
from .dataforseo import DataForSEOConnector
from .moz import MozConnector

__all__ = [
    "BaseConnector",
    "ConnectorError",
    "GoogleAdsConnector",
    "build_google_ads_connector",
    "DataForSEOConnector",
    "MozConnector",
]
