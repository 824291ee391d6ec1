"""
Analysis configuration.

Layer names match the names registered in layer_pipeline.layer_sources.
Attribute groups always map layer name -> label field, in display order.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from screening_utils.geo_utils import normalize_radius

DEFAULT_BUFFER_METERS = 500.0

RECORD_EASTING_FIELD = "Easting"
RECORD_NORTHING_FIELD = "Northing"
RECORD_STATUS_FIELD = "Application Determination"
RECORD_DATE_FIELD = "Determination Date"

# Sensitive receptor layer -> optional sub-label field ("Forest Reserve - <NAME>")
SENSITIVE_AREA_LAYERS: Dict[str, Optional[str]] = {
    "Aripo Savannas": None,
    "Caroni Swamp": None,
    "Forest Reserve": "NAME",
    "Matura National Park": None,
    "Nariva Swamp": None,
}

ATTRIBUTE_GROUPS: Dict[str, Dict[str, str]] = {
    "Municipality": {"Municipality": "NAME_1"},
    "Watershed": {"Trinidad Watersheds": "NAME", "Tobago Watersheds": "WATERSHED"},
    "Ecological Susceptibility": {"Ecological Susceptibility": "Class"},
    "Geological Susceptibility": {"Geological Susceptibility": "Class"},
    "Hydrogeology": {"Hydrogeology": "ATTRIB"},
    "Social Susceptibility": {"Social Susceptibility": "Class"},
    "TCPD Policy": {"Trinidad TCPD Policy": "Class_Name", "Tobago TCPD Policy": "Class_Name"},
}

DEM_LAYER_NAME = "DEM"


@dataclass
class RecordFilters:
    """Optional record filters applied after proximity matching."""
    status: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status_field: str = RECORD_STATUS_FIELD
    date_field: str = RECORD_DATE_FIELD

    def is_empty(self) -> bool:
        return not (self.status or self.start_date or self.end_date)


@dataclass
class AnalysisConfig:
    """Parameters of one analysis run."""
    record_radius_m: float = DEFAULT_BUFFER_METERS
    area_radius_m: float = DEFAULT_BUFFER_METERS
    filters: RecordFilters = field(default_factory=RecordFilters)
    sensitive_layers: Dict[str, Optional[str]] = field(default_factory=lambda: dict(SENSITIVE_AREA_LAYERS))
    attribute_groups: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {g: dict(m) for g, m in ATTRIBUTE_GROUPS.items()})
    easting_field: str = RECORD_EASTING_FIELD
    northing_field: str = RECORD_NORTHING_FIELD
    sampling_seed: Optional[int] = None

    def __post_init__(self):
        self.record_radius_m = normalize_radius(self.record_radius_m)
        self.area_radius_m = normalize_radius(self.area_radius_m)

    def required_layers(self):
        """All reference layer names this configuration reads, in configuration order."""
        names = list(self.sensitive_layers)
        for mapping in self.attribute_groups.values():
            names.extend(n for n in mapping if n not in names)
        return names
