from pydantic import BaseModel, Field


class SyncError(BaseModel):
    path: str
    error: str


class SyncResult(BaseModel):
    synced: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    errors: list[SyncError] = Field(default_factory=list)
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def processed(self) -> int:
        return len(self.synced) + len(self.deleted)

    def merge(self, other: "SyncResult") -> None:
        self.synced.extend(other.synced)
        self.deleted.extend(other.deleted)
        self.errors.extend(other.errors)
        self.duration += other.duration
