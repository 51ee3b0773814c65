"""Text extraction from documents."""

import logging
import subprocess
from typing import Protocol

from .exceptions import ExtractionError

logger = logging.getLogger(__name__)

DEFAULT_PDFTOTEXT = "/usr/bin/pdftotext"


class TextExtractor(Protocol):
    """Anything able to turn a document into its page texts."""

    def extract(self, file_path: str) -> list[str]:
        """Return the text of each page of ``file_path``.

        Raises:
            ExtractionError: If the text cannot be extracted
        """
        ...


class PdfToTextExtractor:
    """Extracts PDF text by running the poppler ``pdftotext`` tool.

    Examples:
        >>> extractor = PdfToTextExtractor()
        >>> pages = extractor.extract("/home/user/inbox/statement.pdf")
    """

    def __init__(self, binary: str = DEFAULT_PDFTOTEXT, timeout: float = 120.0):
        """Initialize the extractor.

        Args:
            binary: Path of the pdftotext executable
            timeout: Seconds to wait for pdftotext before giving up
        """
        self.binary = binary
        self.timeout = timeout

    def extract(self, file_path: str) -> list[str]:
        """Extract the text of every page of a PDF.

        pdftotext separates pages with form feeds; the trailing empty chunk
        after the last form feed is dropped.

        Args:
            file_path: PDF to read

        Returns:
            List of page texts (at least one element)

        Raises:
            ExtractionError: If pdftotext cannot be run, fails or times out
        """
        try:
            result = subprocess.run(
                [self.binary, file_path, "-"],
                capture_output=True,
                check=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ExtractionError(f"{self.binary} not found") from e
        except OSError as e:
            raise ExtractionError(f"could not run {self.binary}: {e}") from e
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode("utf-8", errors="replace").strip()
            raise ExtractionError(
                f"{self.binary} exited with status {e.returncode}: {stderr}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ExtractionError(
                f"{self.binary} timed out after {self.timeout}s"
            ) from e

        text = result.stdout.decode("utf-8", errors="replace")
        pages = text.split("\f")
        if len(pages) > 1 and not pages[-1].strip():
            pages.pop()
        logger.debug(f"Extracted {len(pages)} page(s) from {file_path}")
        return pages
