"""Field extraction strategies for sources that pack several fields into one string.

Feed entries usually encode "Title at Company - Location" as a single title. The
default strategy splits on delimiters and falls back to placeholder values, but it
also reports whether it had to fall back so callers can route the record for review
instead of trusting the placeholders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from listings.schemas.listings import DEFAULT_LOCATION, UNKNOWN_ORGANIZATION
from listings.sources.normalize import clean_text


@dataclass(slots=True)
class ExtractedFields:
    title: str
    organization_name: str
    location: str
    confident: bool
    defaulted: list[str] = field(default_factory=list)


class FieldExtractor(Protocol):
    def extract(self, raw_title: str) -> ExtractedFields: ...


class DelimiterFieldExtractor:
    """Split on the first organization delimiter, then on the last location delimiter."""

    def __init__(
        self,
        *,
        organization_delimiter: str = " at ",
        location_delimiter: str = " - ",
        default_organization: str = UNKNOWN_ORGANIZATION,
        default_location: str = DEFAULT_LOCATION,
    ) -> None:
        self.organization_delimiter = organization_delimiter
        self.location_delimiter = location_delimiter
        self.default_organization = default_organization
        self.default_location = default_location

    def extract(self, raw_title: str) -> ExtractedFields:
        text = clean_text(raw_title)
        title, separator, remainder = text.partition(self.organization_delimiter)
        if not separator:
            return self._build(text, "", "")

        organization, separator, location = remainder.rpartition(self.location_delimiter)
        if not separator:
            return self._build(title, remainder, "")
        return self._build(title, organization, location)

    def _build(self, title: str, organization: str, location: str) -> ExtractedFields:
        defaulted: list[str] = []
        title = title.strip()
        organization = organization.strip()
        location = location.strip()
        if not title:
            raise ValueError("cannot extract a title from an empty string")
        if not organization:
            organization = self.default_organization
            defaulted.append("organization_name")
        if not location:
            location = self.default_location
            defaulted.append("location")
        return ExtractedFields(
            title=title,
            organization_name=organization,
            location=location,
            confident=not defaulted,
            defaulted=defaulted,
        )
