"""
Report validation for crowdsourced corruption reports
Everything here runs before a single write is issued.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from graftwatch.core.config import settings
from graftwatch.core.constants import CORRUPTION_TYPES
from graftwatch.core.exceptions import ReportValidationError
from graftwatch.crowdsource.models import Location

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of checking a report submission."""
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ReportValidationError(self.errors)


def encode_image(
    content: bytes,
    mime_type: str = "image/jpeg",
    max_bytes: Optional[int] = None
) -> str:
    """
    Turn raw image bytes into an inline data URL.

    Raises:
        ReportValidationError: if the image exceeds the size ceiling
    """
    limit = max_bytes if max_bytes is not None else settings.max_image_bytes
    if len(content) > limit:
        raise ReportValidationError([f"Image larger than {limit // 1000}KB"])
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def decoded_size(data_url: str) -> int:
    """Size in bytes of the payload behind a base64 data URL."""
    payload = data_url.split(",", 1)[1] if "," in data_url else data_url
    padding = len(payload) - len(payload.rstrip("="))
    return (len(payload) * 3) // 4 - padding


def is_valid_link(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ReportValidator:
    """
    Validates report submissions and admin edits.

    Checks, in the order the report form reports them:
    - description present
    - corruption type from the known set
    - at least one piece of evidence
    - location present and in range
    - every inline image within the size ceiling
    """

    def __init__(self, max_image_bytes: Optional[int] = None):
        self.max_image_bytes = max_image_bytes or settings.max_image_bytes

    def validate(
        self,
        description: Optional[str],
        corruption_type: Optional[str],
        location: Optional[Location],
        evidence_base64: Optional[List[str]] = None,
        evidence_links: Optional[List[str]] = None
    ) -> ValidationResult:
        result = ValidationResult()
        images = evidence_base64 or []
        links = evidence_links or []

        if not description or not description.strip():
            result.errors.append("Description is required")

        if not corruption_type:
            result.errors.append("Corruption type is required")
        elif corruption_type not in CORRUPTION_TYPES:
            result.errors.append(f"Unknown corruption type: {corruption_type}")

        if not images and not links:
            result.errors.append("At least one piece of evidence is required")

        if location is None:
            result.errors.append("Location is required")
        elif not (-90 <= location.lat <= 90 and -180 <= location.lng <= 180):
            result.errors.append("Location is out of range")

        result.errors.extend(self.check_evidence(images, links))

        if result.errors:
            logger.info(f"Report rejected before write: {result.errors}")
        return result

    def check_evidence(self, images: List[str], links: List[str]) -> List[str]:
        """Size and format checks shared by submission and admin edits."""
        errors = []
        for index, image in enumerate(images):
            if decoded_size(image) > self.max_image_bytes:
                errors.append(f"Image {index + 1} larger than {self.max_image_bytes // 1000}KB")
        for link in links:
            if not is_valid_link(link):
                errors.append(f"Invalid evidence link: {link}")
        return errors


def validate_report(
    description: Optional[str],
    corruption_type: Optional[str],
    location: Optional[Location],
    evidence_base64: Optional[List[str]] = None,
    evidence_links: Optional[List[str]] = None
) -> ValidationResult:
    """
    Convenience function to validate a report submission.

    Returns:
        ValidationResult listing every problem found
    """
    validator = ReportValidator()
    return validator.validate(
        description, corruption_type, location, evidence_base64, evidence_links
    )
