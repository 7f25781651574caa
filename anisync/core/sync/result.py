"""Result object returned by sync runs."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = ["SyncMatch", "SyncNoMatch", "SyncResult"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncMatch(_CamelModel):
    title: str
    mal_id: int | None = None
    library_id: str | None = None
    anime_id: int | None = None
    method: str
    confidence: float
    anomalies: list[str] = Field(default_factory=list)


class SyncNoMatch(_CamelModel):
    title: str
    library_id: str | None = None
    reason: str = "no match"


class SyncResult(_CamelModel):
    """Counters and itemized matches of one run."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    matches: list[SyncMatch] = Field(default_factory=list)
    no_matches: list[SyncNoMatch] = Field(default_factory=list)
    error_details: list[dict[str, str]] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        parts = [
            f"{self.processed} processed",
            f"{self.created} created",
            f"{self.updated} updated",
            f"{self.skipped} skipped",
            f"{self.errors} errors",
        ]
        if self.matches or self.no_matches:
            parts.append(f"{len(self.matches)} matched")
            parts.append(f"{len(self.no_matches)} unmatched")
        return ", ".join(parts)

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        data["summary"] = self.summary
        return data

    def add_error(self, item: str, message: str) -> None:
        self.errors += 1
        self.error_details.append({"item": item, "message": message})
