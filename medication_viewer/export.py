"""
Export of viewed medications to JSON or CSV
"""

import json
from pathlib import Path
from typing import List, Union
import pandas as pd
from loguru import logger

from .models import MedicationRecord
from .views import clean_medication_name


EXPORT_FORMATS = ("json", "csv")


def medications_frame(medications: List[MedicationRecord]) -> pd.DataFrame:
    """Flatten medications into one row per record"""
    rows = []
    for medication in medications:
        document = medication.to_document()
        document["display_name"] = clean_medication_name(medication.name)
        document["is_unmatched"] = medication.is_unmatched
        document["exemplar_count"] = len(medication.exemplars)
        document.pop("exemplars", None)
        rows.append(document)

    df = pd.json_normalize(rows, sep=".")
    for column in df.columns:
        if df[column].map(lambda v: isinstance(v, list)).any():
            df[column] = df[column].map(lambda v: ";".join(map(str, v)) if isinstance(v, list) else v)
    return df


def export_medications(medications: List[MedicationRecord], output_file: Union[str, Path],
                       format: str = "json") -> Path:
    """
    Write medications to a file

    Args:
        medications: Records to export, in display order
        output_file: Destination path
        format: 'json' for detail documents, 'csv' for flattened rows

    Returns:
        Path of the written file
    """
    output_path = Path(output_file)
    fmt = format.lower()

    if fmt == "json":
        with open(output_path, "w") as f:
            json.dump([m.to_document() for m in medications], f, indent=2, default=str)
    elif fmt == "csv":
        medications_frame(medications).to_csv(output_path, index=False)
    else:
        raise ValueError(f"Unsupported export format: {format}")

    logger.info(f"Exported {len(medications)} medications to {output_path}")
    return output_path
