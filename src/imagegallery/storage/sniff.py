"""Magic-byte detection of common image formats."""

# Bytes needed to tell every supported format apart
SNIFF_LENGTH = 16

_ISO_BMFF_IMAGE_BRANDS = (b"avif", b"avis", b"heic", b"heix", b"heif", b"mif1", b"msf1")


def sniff_image_type(head: bytes) -> str | None:
    """Identify an image format from its leading bytes.

    Args:
        head: The first bytes of the file (at least 12 are needed)

    Returns:
        One of "jpeg", "png", "gif", "webp", "avif", "heif", or None when the
        bytes match no known image signature
    """
    if len(head) < 12:
        return None

    if head[:3] == b"\xff\xd8\xff":
        return "jpeg"
    if head[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    if head[4:8] == b"ftyp":
        brands = head[8:SNIFF_LENGTH]
        for brand in _ISO_BMFF_IMAGE_BRANDS:
            if brand in brands:
                return "avif" if brand.startswith(b"avi") else "heif"
    return None
