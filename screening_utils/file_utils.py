# screening_utils/file_utils.py
import json
import os
import logging
from typing import Any, Dict, List

import pandas as pd

logger = logging.getLogger(__name__)

def json_to_file(data: dict, filepath: str) -> bool:
    """Saves dictionary data to a JSON file."""
    try:
        os.makedirs(os.path.dirname(os.path.abspath(filepath)), exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        logger.info(f"Successfully saved JSON data to {filepath}")
        return True
    except Exception as e:
        logger.error(f"Error saving JSON to file {filepath}: {e}", exc_info=True)
        return False

def read_json(filepath: str) -> Any:
    with open(filepath, 'r', encoding='utf-8') as f:
        return json.load(f)

def read_records(filepath: str) -> List[Dict[str, Any]]:
    """Load permit records from a JSON array or a CSV file as plain dicts."""
    if filepath.lower().endswith('.csv'):
        df = pd.read_csv(filepath, dtype=str, keep_default_na=False)
        return df.to_dict(orient='records')
    data = read_json(filepath)
    if isinstance(data, dict):
        data = data.get('records', [])
    return [dict(r) for r in data]
