"""
Clients shared by the request handlers of one process: built once when the
``videos`` app is ready and held by its AppConfig.
"""
from dataclasses import dataclass

from .queue import QueueClient
from .s3 import ObjectStore


@dataclass
class Services:
    store: ObjectStore
    queue: QueueClient

    @classmethod
    def from_settings(cls) -> "Services":
        return cls(store=ObjectStore.from_settings(), queue=QueueClient.from_settings())
