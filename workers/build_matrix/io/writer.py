"""
Writer — serialize a run report to JSON.

The report lives outside the artifacts directory, which only ever holds
binaries and ``.failed`` markers.
"""
import json
from pathlib import Path

from build_matrix.io.schema import RunReport


def write_report(report: RunReport, path: Path) -> Path:
    """
    Write *report* to *path* as indented, key-sorted JSON.

    Creates parent directories as needed.  Returns the path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            report.model_dump(mode="json"),
            indent=2,
            sort_keys=True,
        )
        + "\n"
    )
    return path
