"""
Storage collaborator backed by the local filesystem.
"""

import asyncio
import os
from typing import BinaryIO

from pcap_common.backend import Storage


class LocalFileStorage(Storage):
    """Locators are plain file paths."""

    async def exists(self, locator: str) -> bool:
        return await asyncio.to_thread(os.path.isfile, locator)

    def open(self, locator: str) -> BinaryIO:
        return open(locator, "rb")
