"""
Embedded payload extraction.

Locates the JSON catalog payload embedded in the root HTML document.
"""

import json
from typing import Any, Protocol

from bs4 import BeautifulSoup

from trove_keeper.errors import ParseError


class Extractor(Protocol):
    """Turns root document bytes into the embedded payload."""

    def extract(self, document: bytes) -> dict[str, Any]: ...


class EmbeddedJsonExtractor:
    """Reads the JSON object stored as text of the element with a given id."""

    def __init__(self, element_id: str = "webpack-monthly-trove-data") -> None:
        self.element_id = element_id

    def extract(self, document: bytes) -> dict[str, Any]:
        """
        Extract the embedded payload.

        Args:
            document: Raw root document

        Returns:
            dict: Decoded JSON object

        Raises:
            ParseError: If the element is missing or does not hold a JSON object
        """
        try:
            html = document.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Root document is not UTF-8: {e}", original_error=e) from e

        soup = BeautifulSoup(html, "html.parser")
        element = soup.find(id=self.element_id)
        if element is None:
            raise ParseError(f"Embedded payload element '{self.element_id}' not found")

        try:
            payload = json.loads(element.get_text())
        except json.JSONDecodeError as e:
            raise ParseError(
                f"Embedded payload in '{self.element_id}' is not valid JSON: {e}",
                original_error=e,
            ) from e

        if not isinstance(payload, dict):
            raise ParseError(
                f"Embedded payload in '{self.element_id}' is not a JSON object"
            )
        return payload
