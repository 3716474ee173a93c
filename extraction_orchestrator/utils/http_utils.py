import time
from typing import Optional

import httpx


def read_with_deadline(response: httpx.Response, deadline: float, max_bytes: Optional[int] = None) -> bytes:
    """Read a streamed body, giving up once time.monotonic() passes `deadline`.

    httpx timeouts bound each read, not the transfer, so a slow sender could otherwise
    hold the caller indefinitely. Stops early once more than `max_bytes` were read.
    """
    chunks = []
    received = 0
    for chunk in response.iter_bytes():
        chunks.append(chunk)
        received += len(chunk)
        if max_bytes is not None and received > max_bytes:
            break
        if time.monotonic() > deadline:
            raise httpx.ReadTimeout(
                f"Transfer exceeded its deadline after {received} bytes", request=response.request
            )
    return b"".join(chunks)
