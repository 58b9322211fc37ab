"""Image helpers for image-typed selector results.

The document side cannot make network requests, so images are fetched
here and handed over as raw bytes for an image fill.
"""

from typing import Dict, Optional

import httpx

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp", ".ico")


async def fetch_image_as_bytes(url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
    """Download an image.

    Args:
        url: Absolute or protocol-relative (``//cdn...``) URL
        client: Client to reuse; a short-lived one is created otherwise

    Returns:
        The image bytes.

    Raises:
        ValueError: The response is not an image
        httpx.HTTPError: Transport failure or non-2xx status
    """
    absolute = f"https:{url}" if url.startswith("//") else url
    if client is None:
        async with httpx.AsyncClient(follow_redirects=True, timeout=30.0) as own_client:
            response = await own_client.get(absolute)
    else:
        response = await client.get(absolute)

    response.raise_for_status()
    content_type = response.headers.get("content-type")
    if content_type and not content_type.startswith("image/"):
        raise ValueError(f"URL did not return an image (got {content_type})")
    return response.content


def is_image_url(url: str) -> bool:
    lowered = url.lower()
    return any(ext in lowered for ext in IMAGE_EXTENSIONS)


def get_image_dimensions(data: bytes) -> Optional[Dict[str, int]]:
    """Width and height of a PNG or baseline/progressive JPEG, else None."""
    if len(data) >= 24 and data[:4] == b"\x89PNG":
        width = int.from_bytes(data[16:20], "big")
        height = int.from_bytes(data[20:24], "big")
        return {"width": width, "height": height}

    if len(data) >= 4 and data[0] == 0xFF and data[1] == 0xD8:
        i = 2
        while i < len(data) - 9:
            if data[i] != 0xFF:
                i += 1
                continue
            marker = data[i + 1]
            # SOF0, SOF1, SOF2
            if marker in (0xC0, 0xC1, 0xC2):
                height = int.from_bytes(data[i + 5:i + 7], "big")
                width = int.from_bytes(data[i + 7:i + 9], "big")
                return {"width": width, "height": height}
            length = int.from_bytes(data[i + 2:i + 4], "big")
            i += 2 + length
    return None
