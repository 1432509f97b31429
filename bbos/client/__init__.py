from bbos.client.api_client import BBoSClient

__all__ = ["BBoSClient"]
