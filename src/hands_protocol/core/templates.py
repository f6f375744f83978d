"""Template registry: markdown scaffolds plus per-template metadata."""

import logging
import re
from pathlib import Path

from hands_protocol.store.engine import read_json, write_json
from hands_protocol.store.models import TemplateMetadata

logger = logging.getLogger(__name__)

META_FILE = "template_meta.json"
_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


def _check_name(name: str) -> str:
    if not _NAME.match(name or ""):
        raise ValueError(f"Invalid template name: {name!r}")
    return name


class TemplateRegistry:
    def __init__(self, templates_dir: Path):
        self.templates_dir = Path(templates_dir)
        self.meta_file = self.templates_dir / META_FILE

    def _load_meta(self) -> dict:
        data = read_json(self.meta_file, default={})
        return data if isinstance(data, dict) else {}

    def get_metadata(self, name: str) -> TemplateMetadata:
        raw = self._load_meta().get(_check_name(name)) or {}
        score = raw.get("score")
        return TemplateMetadata(
            name=name,
            comment=str(raw.get("comment") or ""),
            score=float(score) if isinstance(score, (int, float)) else None,
            quarantined=bool(raw.get("quarantined", False)),
        )

    def list_templates(self) -> list[TemplateMetadata]:
        if not self.templates_dir.is_dir():
            return []
        names = sorted(p.stem for p in self.templates_dir.glob("*.md") if _NAME.match(p.stem))
        return [self.get_metadata(n) for n in names]

    def get_content(self, name: str) -> str | None:
        path = self.templates_dir / f"{_check_name(name)}.md"
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def quarantined_names(self) -> set[str]:
        return {name for name, raw in self._load_meta().items()
                if isinstance(raw, dict) and raw.get("quarantined")}

    def update_metadata(
        self,
        name: str,
        comment: str | None = None,
        score: float | None = None,
        quarantined: bool | None = None,
    ) -> TemplateMetadata:
        """Merge the given fields into the stored metadata for ``name``."""
        _check_name(name)
        meta = self._load_meta()
        entry = dict(meta.get(name) or {})
        if comment is not None:
            entry["comment"] = comment
        if score is not None:
            entry["score"] = score
        if quarantined is not None:
            entry["quarantined"] = quarantined
        meta[name] = entry
        self.templates_dir.mkdir(parents=True, exist_ok=True)
        write_json(self.meta_file, meta)
        if quarantined is not None:
            logger.info("Template %s quarantined=%s", name, quarantined)
        return self.get_metadata(name)
