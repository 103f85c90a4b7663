"""
Letterboxing of page images to the output frame size.
"""

from pathlib import Path
from typing import Tuple, Union

from PIL import Image, ImageOps

WHITE = (255, 255, 255)


def letterbox(
    image: Image.Image,
    width: int,
    height: int,
    background: Tuple[int, int, int] = WHITE,
) -> Image.Image:
    """
    Fit *image* inside ``width × height`` keeping its aspect ratio.

    The result is exactly the requested size, centred on *background*.
    """
    if image.mode != "RGB":
        image = image.convert("RGB")
    return ImageOps.pad(
        image,
        (width, height),
        method=Image.Resampling.LANCZOS,
        color=background,
        centering=(0.5, 0.5),
    )


def letterbox_file(
    src: Union[str, Path],
    dest: Union[str, Path],
    width: int,
    height: int,
) -> Path:
    """Letterbox the image at *src* and save it as PNG at *dest*."""
    dest = Path(dest)
    with Image.open(src) as img:
        framed = letterbox(img, width, height)
    framed.save(dest, format="PNG")
    return dest
