"""
Data store integration layer for CurvePay
"""

from curvepay.database.client import DataStoreClient, get_store_client

__all__ = ["DataStoreClient", "get_store_client"]
