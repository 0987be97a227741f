"""Tests for the JSON schema export consumed by the approval surface."""

import json
from pathlib import Path

import pytest

from scripts.export_schemas import main


def test_export_writes_all_schemas(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that every exported schema is valid JSON describing its model."""
    monkeypatch.chdir(tmp_path)

    main()

    schemas_dir = tmp_path / "docs" / "schemas"
    change = json.loads((schemas_dir / "PendingChange.schema.json").read_text())
    content = json.loads((schemas_dir / "SectionContent.schema.json").read_text())
    audit = json.loads((schemas_dir / "AuditEvent.schema.json").read_text())

    assert {"notes", "status", "target_id"} <= set(change["properties"])
    assert content["discriminator"]["propertyName"] == "type"
    assert "text" in content["discriminator"]["mapping"]
    assert audit["title"] == "AuditEvent"
