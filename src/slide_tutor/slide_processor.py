"""
Slide Processor Module
--------------------
Handles reading PDF slide decks: page count, page text and page images.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from PIL import Image
from pdf2image import convert_from_bytes, convert_from_path
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

logger = logging.getLogger(__name__)

PdfSource = Union[str, Path, bytes, io.BytesIO]

# Zoom limits of the slide viewer
MIN_SCALE = 0.5
MAX_SCALE = 2.5
SCALE_STEP = 0.2
# Resolution of a page shown at 100%, in CSS pixels per inch
SCREEN_DPI = 96
# Resolution used when the page is stretched to the column width
FIT_WIDTH_DPI = 150


class SlideProcessor:
    """Handles the processing of PDF slide decks."""

    @staticmethod
    def read_bytes(file) -> bytes:
        """
        Return the raw bytes of a PDF given as a path, bytes or upload.

        Parameters
        ----------
        file : Union[str, Path, bytes, io.BytesIO]
            The PDF to read. Streamlit uploads expose ``getvalue()``.

        Returns
        -------
        bytes
            The PDF content.
        """
        if isinstance(file, (str, Path)):
            return Path(file).read_bytes()
        if isinstance(file, bytes):
            return file
        if hasattr(file, 'getvalue'):
            return file.getvalue()
        if hasattr(file, 'read'):
            return file.read()
        raise ValueError(f"Unsupported PDF source: {type(file).__name__}")

    @staticmethod
    def _reader(file: PdfSource) -> PdfReader:
        try:
            return PdfReader(io.BytesIO(SlideProcessor.read_bytes(file)))
        except PdfReadError as e:
            raise ValueError(f"Failed to read PDF: {e}")

    @staticmethod
    def page_count(file: PdfSource) -> int:
        """
        Count the pages of a PDF.

        Raises
        ------
        ValueError
            If the file is not a readable PDF.
        """
        count = len(SlideProcessor._reader(file).pages)
        logger.info(f"PDF has {count} pages")
        return count

    @staticmethod
    def extract_text(file: PdfSource, page: int) -> str:
        """
        Extract the text of a single page.

        Parameters
        ----------
        file : PdfSource
            The PDF to read.
        page : int
            1-based page number.

        Returns
        -------
        str
            The page text, possibly empty for image-only slides.
        """
        reader = SlideProcessor._reader(file)
        if page < 1 or page > len(reader.pages):
            raise ValueError(f"Page {page} out of range (1-{len(reader.pages)})")
        return reader.pages[page - 1].extract_text() or ""

    @staticmethod
    def render_page(file: PdfSource, page: int, dpi: int = 150) -> Image.Image:
        """
        Render a single PDF page to an image.

        Parameters
        ----------
        file : PdfSource
            The PDF to render.
        page : int
            1-based page number.
        dpi : int
            Rendering resolution.

        Returns
        -------
        Image.Image
            The rendered page.

        Raises
        ------
        ValueError
            If the page cannot be rendered.
        """
        try:
            if isinstance(file, (str, Path)):
                images = convert_from_path(
                    file,
                    dpi=dpi,
                    fmt='png',
                    first_page=page,
                    last_page=page,
                    poppler_path=None  # Will use system-installed poppler
                )
            else:
                images = convert_from_bytes(
                    SlideProcessor.read_bytes(file),
                    dpi=dpi,
                    fmt='png',
                    first_page=page,
                    last_page=page,
                    poppler_path=None
                )
        except Exception as e:
            raise ValueError(f"Failed to process PDF page {page}: {e}")

        if not images:
            raise ValueError(f"Failed to process PDF page {page}: no image produced")
        return images[0]

    @staticmethod
    def image_to_bytes(image: Image.Image, format: str = 'PNG') -> bytes:
        """Convert a PIL Image to bytes."""
        img_byte_arr = io.BytesIO()
        image.save(img_byte_arr, format=format)
        return img_byte_arr.getvalue()


@dataclass
class ZoomState:
    """
    Zoom level of the slide viewer.

    In fit-to-width mode the page fills its column and ``scale`` is ignored.
    Zooming in or out leaves that mode and moves ``scale`` by ``SCALE_STEP``
    within ``MIN_SCALE``..``MAX_SCALE``.
    """

    scale: float = 1.0
    fit_width: bool = True

    def _set_scale(self, scale: float) -> None:
        self.scale = round(min(max(scale, MIN_SCALE), MAX_SCALE), 1)
        self.fit_width = False

    def zoom_in(self) -> None:
        self._set_scale(self.scale + SCALE_STEP)

    def zoom_out(self) -> None:
        self._set_scale(self.scale - SCALE_STEP)

    def reset(self) -> None:
        """Return to fit-to-width at 100%."""
        self.scale = 1.0
        self.fit_width = True

    @property
    def dpi(self) -> int:
        """Rendering resolution for the current zoom level."""
        if self.fit_width:
            return FIT_WIDTH_DPI
        return round(SCREEN_DPI * self.scale)

    @property
    def label(self) -> str:
        return "Fit width" if self.fit_width else f"{round(self.scale * 100)}%"
