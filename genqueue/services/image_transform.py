import io
from typing import Optional, Tuple

from PIL import Image, ImageOps

PNG_COMPRESSION_LEVEL = 9


def parse_image_size(value: Optional[str], default: int = 1024) -> Tuple[int, int]:
    """Parse ``"<width>x<height>"``; anything unusable yields a default square."""
    if isinstance(value, str):
        parts = value.strip().lower().split("x")
        if len(parts) == 2:
            try:
                width, height = int(parts[0]), int(parts[1])
            except ValueError:
                pass
            else:
                if width > 0 and height > 0:
                    return width, height
    return default, default


def cover_resize(path: str, width: int, height: int) -> bytes:
    """Scale the image to cover ``width`` x ``height``, crop the overflow
    around the center, and encode it as PNG."""
    with Image.open(path) as source:
        source = ImageOps.exif_transpose(source)
        if source.mode not in ("RGB", "RGBA"):
            source = source.convert("RGBA" if "A" in source.getbands() else "RGB")

        fitted = ImageOps.fit(source, (width, height), method=Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        fitted.save(buffer, format="PNG", compress_level=PNG_COMPRESSION_LEVEL)
        return buffer.getvalue()
