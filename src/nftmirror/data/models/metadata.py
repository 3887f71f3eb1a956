"""Token metadata models (ERC-721 metadata JSON schema)."""

from pydantic import BaseModel, ConfigDict, Field


class MetadataAttribute(BaseModel):
    """Single trait entry of a metadata document."""

    model_config = ConfigDict(extra="allow")

    trait_type: str | None = None
    value: str | int | float | bool | None = None


class MetadataDocument(BaseModel):
    """Structured token metadata.

    Unknown keys are preserved so that marketplace-specific fields
    (animation_url, background_color, ...) survive the round trip to
    the store.
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = Field(default=None, description="Token name")
    description: str | None = Field(default=None, description="Token description")
    image: str | None = Field(default=None, description="Image URI")
    external_url: str | None = Field(default=None, description="External page URL")
    attributes: list[MetadataAttribute] = Field(default_factory=list)


class EnrichmentResult(BaseModel):
    """Outcome of one metadata enrichment attempt.

    `metadata_uri` is kept even when the document itself could not be
    fetched, so the URI can be retried out of band.
    """

    metadata_uri: str | None = None
    metadata: MetadataDocument | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.metadata is not None
