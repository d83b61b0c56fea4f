"""Org chart export - snapshot files of the company hierarchy.

The export is a YAML (or JSON) document shaped like:

```yaml
orgbook:
  version: "1.0"
  generated_at: "2026-01-17T10:30:00+00:00"
  source: "http://localhost:8000"
  search: ""

forest:
  - id: "12"
    name: "Acme Holdings"
    type: "Company"
    group: "Acme Group"
    legal_name: "Acme Holdings (Pvt) Ltd"
    children:
      - id: "14"
        name: "Acme Foods"
        type: "Division"
        children: []
```
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from orgbook.tree import EntityNode


EXPORT_VERSION = "1.0"


def node_to_dict(node: EntityNode) -> dict:
    """Convert a node and its subtree to plain data."""
    data: dict = {"id": node.key, "name": node.display_name}
    if node.kind is not None:
        data["type"] = node.kind.value
    if node.aggregator_name:
        data["group"] = node.aggregator_name

    legal_name = getattr(node.record, "legal_name", None)
    if legal_name:
        data["legal_name"] = legal_name
    category = getattr(node.record, "category", None)
    if category:
        data["category"] = category

    data["children"] = [node_to_dict(child) for child in node.children]
    return data


def forest_to_dict(
    forest: list[EntityNode],
    source: Optional[str] = None,
    search: str = "",
) -> dict:
    """Wrap a forest with export metadata."""
    return {
        "orgbook": {
            "version": EXPORT_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "source": source,
            "search": search,
        },
        "forest": [node_to_dict(node) for node in forest],
    }


def export_forest(
    forest: list[EntityNode],
    fmt: str = "yaml",
    output_path: Optional[Path] = None,
    source: Optional[str] = None,
    search: str = "",
) -> str:
    """Serialize a forest to YAML or JSON.

    Args:
        forest: Root nodes to export.
        fmt: "yaml" or "json".
        output_path: Optional path to write the document to.
        source: Backend URL recorded in the metadata.
        search: Search term the forest was filtered with.

    Returns:
        The serialized document.

    Raises:
        ValueError: If the format is unknown.
    """
    document = forest_to_dict(forest, source=source, search=search)

    if fmt == "yaml":
        content = yaml.safe_dump(
            document,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
            width=100,
        )
    elif fmt == "json":
        content = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    else:
        raise ValueError(f"Unknown export format: {fmt}")

    if output_path:
        output_path.write_text(content, encoding="utf-8")

    return content


def load_export(path: Path) -> dict:
    """Read an export file back; JSON is valid YAML so one loader serves both."""
    return yaml.safe_load(path.read_text(encoding="utf-8"))
