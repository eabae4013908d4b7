from .csv_import import (
    parse_csv,
    convert_to_gedcom,
    import_csv_text,
    expected_columns,
)
from .json_io import (
    EventExport,
    IndividualExport,
    FamilyExport,
    TreeExport,
    export_json,
    import_json,
)

__all__ = [
    # CSV
    "parse_csv",
    "convert_to_gedcom",
    "import_csv_text",
    "expected_columns",
    # GEDCOM-JSON
    "EventExport",
    "IndividualExport",
    "FamilyExport",
    "TreeExport",
    "export_json",
    "import_json",
]
