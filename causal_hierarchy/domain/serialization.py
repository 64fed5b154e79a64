import json
from enum import Enum
from typing import Any

import numpy as np


class StrictForensicEncoder(json.JSONEncoder):
    """
    JSON Encoder that prioritizes Fidelity over Flexibility.

    RULES:
    1. Enums MUST use their .value.
    2. numpy scalars MUST become plain Python numbers.
    3. Sets -> Lists (sorted for determinism).
    4. Contracts serialize through their own to_dict().
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(list(obj))
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if hasattr(obj, "__dataclass_fields__"):
            from dataclasses import asdict
            return asdict(obj)

        return super().default(obj)


def canonical_dumps(obj: Any) -> str:
    """Byte-stable JSON: sorted keys, no whitespace. Used for every hash."""
    return json.dumps(
        obj, cls=StrictForensicEncoder, sort_keys=True, separators=(",", ":"),
        allow_nan=False,
    )


def pretty_dumps(obj: Any) -> str:
    return json.dumps(obj, cls=StrictForensicEncoder, sort_keys=True, indent=2)
