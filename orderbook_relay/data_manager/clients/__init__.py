"""
网络客户端模块
"""

from .rest_client import RESTClient
from .mock_client import MockRESTClient

__all__ = ['RESTClient', 'MockRESTClient']
