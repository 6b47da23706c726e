from typing import Dict, Tuple

# aspect ratio -> (width, height)
STANDARD_DIMENSIONS: Dict[str, Tuple[int, int]] = {
    "1:1": (1024, 1024),
    "16:9": (1024, 576),
    "4:3": (1024, 768),
    "3:2": (960, 640),
    "9:16": (576, 1024),
    "3:4": (768, 1024),
    "2:3": (640, 960),
}

HD_DIMENSIONS: Dict[str, Tuple[int, int]] = {
    ratio: (width * 2, height * 2)
    for ratio, (width, height) in STANDARD_DIMENSIONS.items()
}


def get_dimensions(aspect_ratio: str, enable_hd: bool = False) -> Tuple[int, int]:
    """Pixel size for an aspect ratio. Unknown ratios fall back to 1:1."""
    table = HD_DIMENSIONS if enable_hd else STANDARD_DIMENSIONS
    return table.get(aspect_ratio, table["1:1"])
