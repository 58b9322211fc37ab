import httpx
import pytest

from layersync.utils.image_handler import fetch_image_as_bytes, get_image_dimensions, is_image_url

PNG_HEADER = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + (320).to_bytes(4, "big") + (180).to_bytes(4, "big")
JPEG_HEADER = (
    b"\xff\xd8"
    + b"\xff\xe0" + b"\x00\x10" + b"\x00" * 14
    + b"\xff\xc0" + b"\x00\x11" + b"\x08" + (480).to_bytes(2, "big") + (640).to_bytes(2, "big")
    + b"\x00" * 10
)


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_protocol_relative_url_uses_https():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, content=PNG_HEADER, headers={"content-type": "image/png"})

    data = await fetch_image_as_bytes("//cdn.example.com/bus.png", client=client_for(handler))

    assert data == PNG_HEADER
    assert seen == ["https://cdn.example.com/bus.png"]


async def test_non_image_response_is_rejected():
    client = client_for(lambda r: httpx.Response(200, text="<html>", headers={"content-type": "text/html"}))
    with pytest.raises(ValueError, match="did not return an image"):
        await fetch_image_as_bytes("https://x/a.png", client=client)


async def test_http_error_status_raises():
    with pytest.raises(httpx.HTTPStatusError):
        await fetch_image_as_bytes("https://x/a.png", client=client_for(lambda r: httpx.Response(404)))


def test_dimensions():
    assert get_image_dimensions(PNG_HEADER) == {"width": 320, "height": 180}
    assert get_image_dimensions(JPEG_HEADER) == {"width": 640, "height": 480}
    assert get_image_dimensions(b"GIF89a") is None


def test_is_image_url():
    assert is_image_url("https://cdn/x.JPG?w=200")
    assert not is_image_url("https://cdn/x.html")
