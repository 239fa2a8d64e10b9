"""Image resizing for derivative blobs."""

import io

from PIL import Image, UnidentifiedImageError

from files_manager.errors import TerminalJobError

# Formats Pillow can write back; anything else is re-encoded as PNG
WRITABLE_FORMATS = {"PNG", "JPEG", "GIF", "WEBP", "BMP", "TIFF"}


def render_thumbnail(content: bytes, width: int) -> bytes:
    """Resize an encoded image to ``width`` pixels wide, keeping aspect ratio.

    The output keeps the source format where possible. The same input always
    produces the same bytes.

    Raises:
        TerminalJobError: If ``content`` is not a decodable image
    """
    try:
        with Image.open(io.BytesIO(content)) as image:
            image.load()
            source_format = image.format if image.format in WRITABLE_FORMATS else "PNG"
            height = max(1, round(image.height * width / image.width))
            resized = image.resize((width, height), Image.Resampling.LANCZOS)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise TerminalJobError(f"Cannot decode image: {e}") from e

    if source_format == "JPEG" and resized.mode not in ("RGB", "L"):
        resized = resized.convert("RGB")

    output = io.BytesIO()
    resized.save(output, format=source_format)
    return output.getvalue()
