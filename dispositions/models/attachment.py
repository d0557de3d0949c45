"""Attachment value object embedded in disposition report/attachment lists."""
from dataclasses import asdict, dataclass, field
from typing import Optional
import uuid


@dataclass(frozen=True)
class Attachment:
    """
    A file or link owned by exactly one Disposition.

    Stored as a JSON dict inside the owning row; never shared between rows.
    ``storage_path`` is empty for pure links.
    """
    name: str
    byte_size: int = 0
    mime_type: str = ""
    storage_path: str = ""
    url: Optional[str] = None
    is_link: bool = False
    id: str = field(default_factory=lambda: f"report_{uuid.uuid4().hex}")

    @property
    def has_blob(self) -> bool:
        return bool(self.storage_path) and not self.is_link

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Attachment":
        return cls(
            id=data["id"],
            name=data["name"],
            byte_size=data.get("byte_size", 0),
            mime_type=data.get("mime_type", ""),
            storage_path=data.get("storage_path", ""),
            url=data.get("url"),
            is_link=data.get("is_link", False),
        )
