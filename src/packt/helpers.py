import asyncio
import json
import time
from functools import wraps
from pathlib import Path


def read_json(path: str | Path) -> dict | list:
    with open(path, "r", encoding="utf-8") as file:
        return json.load(file)


def write_json(path: str | Path, data: dict | list) -> None:
    with open(path, "w", encoding="utf-8") as file:
        json.dump(data, file, indent=4, ensure_ascii=False)


def backoff_delay(attempt: int, delay: float, backoff: bool = True) -> float:
    return delay * (2 * attempt) if backoff else delay


def retry(attempts: int = 5, delay: float = 1, backoff: bool = True, exceptions=(Exception,)):
    def decorator(func):
        is_async = asyncio.iscoroutinefunction(func)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            for i in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions:
                    if i == attempts:
                        raise
                    time.sleep(backoff_delay(i, delay, backoff))

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            for i in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if i == attempts:
                        raise
                    # rate limited responses back off harder
                    if "429" in str(e):
                        wait = delay * (4 * i)
                    else:
                        wait = backoff_delay(i, delay, backoff)
                    await asyncio.sleep(wait)

        return async_wrapper if is_async else sync_wrapper

    return decorator
