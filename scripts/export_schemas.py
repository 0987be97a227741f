"""Export JSON schemas for PendingChange and the section content union."""

import json
from pathlib import Path

from backend.app.models import SECTION_CONTENT_ADAPTER, AuditEvent, PendingChange


def main() -> None:
    """Export schemas to docs/schemas/."""
    schemas_dir = Path("docs/schemas")
    schemas_dir.mkdir(parents=True, exist_ok=True)

    # Export PendingChange schema
    change_schema = PendingChange.model_json_schema()
    change_path = schemas_dir / "PendingChange.schema.json"
    with open(change_path, "w") as f:
        json.dump(change_schema, f, indent=2)
    print(f"Exported PendingChange schema to {change_path}")

    # Export section content union schema
    content_schema = SECTION_CONTENT_ADAPTER.json_schema()
    content_path = schemas_dir / "SectionContent.schema.json"
    with open(content_path, "w") as f:
        json.dump(content_schema, f, indent=2)
    print(f"Exported SectionContent schema to {content_path}")

    # Export AuditEvent schema
    audit_schema = AuditEvent.model_json_schema()
    audit_path = schemas_dir / "AuditEvent.schema.json"
    with open(audit_path, "w") as f:
        json.dump(audit_schema, f, indent=2)
    print(f"Exported AuditEvent schema to {audit_path}")


if __name__ == "__main__":
    main()
