"""Font resolution for text overlays.

Fonts are looked up per use case: a cached download of the preferred
families first, then a download attempt, then the fonts that ship with most
Linux images. A missing font is never fatal; drawtext falls back to its
default font.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from reelrender.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FontSource:
    name: str
    url: str
    weight: int


GOOGLE_FONTS: dict[str, FontSource] = {
    source.name: source
    for source in (
        FontSource(
            "BebasNeue-Regular",
            "https://github.com/googlefonts/bebas-neue/raw/main/fonts/BebasNeue-Regular.ttf",
            400,
        ),
        FontSource(
            "Oswald-SemiBold",
            "https://github.com/googlefonts/OswaldFont/raw/main/fonts/ttf/Oswald-SemiBold.ttf",
            600,
        ),
        FontSource(
            "Oswald-Bold",
            "https://github.com/googlefonts/OswaldFont/raw/main/fonts/ttf/Oswald-Bold.ttf",
            700,
        ),
        FontSource(
            "BarlowCondensed-SemiBold",
            "https://github.com/jpt/barlow/raw/main/fonts/ttf/BarlowCondensed-SemiBold.ttf",
            600,
        ),
        FontSource(
            "BarlowCondensed-Bold",
            "https://github.com/jpt/barlow/raw/main/fonts/ttf/BarlowCondensed-Bold.ttf",
            700,
        ),
        FontSource(
            "RobotoCondensed-Bold",
            "https://github.com/googlefonts/roboto/raw/main/src/hinted/RobotoCondensed-Bold.ttf",
            700,
        ),
        FontSource(
            "Anton-Regular",
            "https://github.com/googlefonts/AntonFont/raw/main/fonts/Anton-Regular.ttf",
            400,
        ),
    )
}

FONT_PREFERENCES: dict[str, list[str]] = {
    "title": ["BebasNeue-Regular", "Anton-Regular", "Oswald-Bold"],
    "feature": ["Oswald-SemiBold", "BarlowCondensed-SemiBold", "RobotoCondensed-Bold"],
    "price": ["BarlowCondensed-Bold", "Oswald-Bold", "RobotoCondensed-Bold"],
    "cta": ["Anton-Regular", "BebasNeue-Regular", "Oswald-Bold"],
    "general": ["RobotoCondensed-Bold", "Oswald-SemiBold", "BarlowCondensed-SemiBold"],
}

SYSTEM_FONTS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
]


class FontResolver:
    """Resolves a font file path for a text use case."""

    def __init__(
        self,
        font_dir: Optional[str] = None,
        download_enabled: Optional[bool] = None,
        client: Optional[httpx.Client] = None,
        system_fonts: Optional[list[str]] = None,
    ):
        settings = get_settings()
        self.font_dir = Path(font_dir or settings.font_dir)
        self.download_enabled = (
            settings.font_download_enabled if download_enabled is None else download_enabled
        )
        self.client = client
        self.timeout_s = settings.fetch_timeout_s
        self.system_fonts = SYSTEM_FONTS if system_fonts is None else system_fonts
        self._resolved: dict[str, Optional[str]] = {}
        self._failed_downloads: set[str] = set()

    def resolve(self, use_case: str) -> Optional[str]:
        """
        Get the best available font for a use case.

        Args:
            use_case: title, feature, price, cta or general (unknown -> general)

        Returns:
            Path to a font file, or None when no font is available
        """
        if use_case in self._resolved:
            return self._resolved[use_case]

        preferred = FONT_PREFERENCES.get(use_case, FONT_PREFERENCES["general"])
        path = self._resolve_preferred(preferred) or self._resolve_system()
        if path is None:
            logger.warning("[FONTS] No fonts available!")

        self._resolved[use_case] = path
        return path

    def _resolve_preferred(self, names: list[str]) -> Optional[str]:
        for name in names:
            local_path = self.font_dir / f"{name}.ttf"
            if local_path.is_file():
                return str(local_path)
            if self.download_enabled and self._download(GOOGLE_FONTS[name], local_path):
                return str(local_path)
        return None

    def _resolve_system(self) -> Optional[str]:
        for font in self.system_fonts:
            if Path(font).is_file():
                logger.info(f"[FONTS] Using system font: {font}")
                return font
        return None

    def _download(self, source: FontSource, dest: Path) -> bool:
        """Download a font file; failures are logged and remembered."""
        if source.name in self._failed_downloads:
            return False

        logger.info(f"[FONTS] Downloading font from {source.url}...")
        try:
            self.font_dir.mkdir(parents=True, exist_ok=True)
            if self.client is not None:
                response = self.client.get(source.url)
            else:
                response = httpx.get(source.url, timeout=self.timeout_s, follow_redirects=True)
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"[FONTS] Error downloading font {source.name}: {e}")
            self._failed_downloads.add(source.name)
            return False

        if not response.is_success or not response.content:
            logger.warning(
                f"[FONTS] Failed to download font {source.name}: {response.status_code}"
            )
            self._failed_downloads.add(source.name)
            return False

        try:
            dest.write_bytes(response.content)
        except OSError as e:
            logger.warning(f"[FONTS] Could not write font {dest}: {e}")
            self._failed_downloads.add(source.name)
            return False

        logger.info(f"[FONTS] Downloaded font to {dest}")
        return True

    def preload(self) -> None:
        """Download every known font that is not cached yet."""
        logger.info("[FONTS] Preloading fonts...")
        for name, source in GOOGLE_FONTS.items():
            local_path = self.font_dir / f"{name}.ttf"
            if local_path.is_file():
                logger.info(f"[FONTS] Font already cached: {name}")
                continue
            if self.download_enabled:
                self._download(source, local_path)
        logger.info("[FONTS] Font preload complete")
