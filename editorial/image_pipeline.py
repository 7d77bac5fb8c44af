"""Image Pipeline: renders branded featured image cards for generated articles."""

import logging
import os
import platform
from dataclasses import dataclass

import yaml
from PIL import Image, ImageDraw, ImageFont
from slugify import slugify

log = logging.getLogger(__name__)

DEFAULT_BRAND = {
    "colors": {
        "primary": "#f58220",
        "secondary": "#003a70",
        "text_light": "#ffffff",
    },
    "dimensions": {
        "featured_image": {"width": 1200, "height": 627},
    },
    "wordmark": "GETEDUCATED",
}


@dataclass
class ImageResult:
    path: str
    url: str
    alt_text: str
    width: int
    height: int
    format: str


class ImagePipeline:
    """Generates featured images and maps them to their public media URL."""

    def __init__(self, media_base_url: str, output_dir="output/images", brand_config_path=None):
        self.media_base_url = media_base_url.rstrip("/")
        self.output_dir = output_dir
        self.brand = self._load_brand_config(brand_config_path)
        os.makedirs(self.output_dir, exist_ok=True)

    def _load_brand_config(self, path) -> dict:
        if path and os.path.exists(path):
            with open(path) as f:
                return {**DEFAULT_BRAND, **(yaml.safe_load(f) or {})}
        return DEFAULT_BRAND

    def _hex_to_rgb(self, hex_color: str) -> tuple:
        hex_color = hex_color.lstrip("#")
        return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))

    def _get_font(self, size: int, bold: bool = False):
        """Try to load a TTF font from common system locations."""
        if bold:
            font_names = ["DejaVuSans-Bold.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf"]
        else:
            font_names = ["DejaVuSans.ttf", "Arial.ttf", "LiberationSans-Regular.ttf"]

        font_dirs = []
        if platform.system() == "Darwin":
            font_dirs.extend(["/System/Library/Fonts", "/Library/Fonts"])
        elif platform.system() == "Linux":
            font_dirs.extend([
                "/usr/share/fonts/truetype/dejavu",
                "/usr/share/fonts/truetype/liberation",
                "/usr/share/fonts/dejavu-sans-fonts",
                "/usr/share/fonts",
            ])

        for font_dir in font_dirs:
            for name in font_names:
                try:
                    return ImageFont.truetype(os.path.join(font_dir, name), size)
                except OSError:
                    continue
        for name in font_names:
            try:
                return ImageFont.truetype(name, size)
            except OSError:
                continue

        log.warning(f"No TrueType font found, using Pillow default (size={size}, bold={bold})")
        return ImageFont.load_default(size=size)

    def _draw_wrapped_text(self, draw, text, position, font, fill, max_width):
        """Draw text with word wrapping."""
        x, y = position
        lines = []
        current_line = ""
        for word in text.split():
            test_line = f"{current_line} {word}".strip()
            bbox = draw.textbbox((0, 0), test_line, font=font)
            if bbox[2] - bbox[0] <= max_width:
                current_line = test_line
            else:
                if current_line:
                    lines.append(current_line)
                current_line = word
        if current_line:
            lines.append(current_line)

        line_height = font.size + 10 if hasattr(font, "size") else 50
        for line in lines:
            draw.text((x, y), line, fill=fill, font=font)
            y += line_height

    def generate_featured_image(self, title: str, subtitle: str = "") -> ImageResult:
        """Render the title on a branded background and save it as WebP."""
        colors = self.brand["colors"]
        dims = self.brand["dimensions"]["featured_image"]
        w, h = dims["width"], dims["height"]

        background = self._hex_to_rgb(colors["secondary"])
        accent = self._hex_to_rgb(colors["primary"])
        white = self._hex_to_rgb(colors.get("text_light", "#ffffff"))

        img = Image.new("RGB", (w, h), background)
        draw = ImageDraw.Draw(img)
        draw.rectangle([(0, 0), (w, 8)], fill=accent)
        draw.rectangle([(0, h - 8), (w, h)], fill=accent)

        font_title = self._get_font(56, bold=True)
        self._draw_wrapped_text(draw, title, (60, h // 2 - 100), font_title, white, max_width=w - 120)
        if subtitle:
            draw.text((60, h - 120), subtitle, fill=accent, font=self._get_font(28))
        draw.text((w - 40, h - 40), self.brand.get("wordmark", ""), fill=accent,
                  font=self._get_font(22, bold=True), anchor="rb")

        filename = f"featured-{slugify(title, max_length=60) or 'article'}.webp"
        filepath = os.path.join(self.output_dir, filename)
        img.save(filepath, "WEBP", quality=85, method=6)
        log.info(f"Featured image written: {filepath}")

        return ImageResult(
            path=filepath,
            url=f"{self.media_base_url}/{filename}",
            alt_text=title[:125],
            width=img.width,
            height=img.height,
            format="webp",
        )
