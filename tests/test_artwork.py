from io import BytesIO

from PIL import Image

from wiimctl.lib.artwork import ArtworkCache, process_image, process_image_async


def _png(mode="RGBA", size=(8, 6)):
    buf = BytesIO()
    Image.new(mode, size, (255, 0, 0, 128) if mode == "RGBA" else (255, 0, 0)).save(buf, "PNG")
    return buf.getvalue()


def test_process_image_reencodes_as_jpeg():
    result = process_image(_png())
    assert result["size"] == (8, 6)
    assert result["jpeg"][:2] == b"\xff\xd8"
    assert result["base64"]


def test_process_image_rejects_garbage():
    assert process_image(b"definitely not an image") is None


async def test_process_image_async():
    result = await process_image_async(_png("RGB"))
    assert result["size"] == (8, 6)


def test_cache_evicts_least_recently_used():
    cache = ArtworkCache(max_size=2)
    cache.put("a", {"n": 1})
    cache.put("b", {"n": 2})
    assert cache.get("a") == {"n": 1}
    cache.put("c", {"n": 3})
    assert "b" not in cache
    assert "a" in cache and "c" in cache
    assert len(cache) == 2
