"""Async filesystem primitives.

Thin wrappers over aiofiles so every read, listing and stat is a suspension
point of the event loop. Missing paths raise FileNotFoundError.
"""
from typing import List

import aiofiles
import aiofiles.os


async def read_text(path: str) -> str:
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return await f.read()


async def read_bytes(path: str) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


async def list_dir(path: str) -> List[str]:
    return await aiofiles.os.listdir(path)


async def exists(path: str) -> bool:
    return await aiofiles.os.path.exists(path)


async def is_dir(path: str) -> bool:
    return await aiofiles.os.path.isdir(path)


async def is_file(path: str) -> bool:
    return await aiofiles.os.path.isfile(path)


async def is_link(path: str) -> bool:
    return await aiofiles.os.path.islink(path)
