"""Success envelope shared by every router."""
from typing import Any, Optional


def success(warnings: Optional[list[str]] = None, **body: Any) -> dict[str, Any]:
    out = {"ok": True, "success": True, **body}
    if warnings:
        out["warnings"] = warnings
    return out
