"""
Layer source configurations for the siting screening engine.

Registers the reference layers used by the analysis and the elevation model.
Adding a layer is as simple as creating a LayerSource and registering it.
"""
from urllib.parse import quote

from .sources import LayerSource
from . import registry

GEOJSON_BASE_URL = "https://raw.githubusercontent.com/MGunnesslal/leaflet-geojson-layers/refs/heads/main/"
DEM_URL = "https://cdn.jsdelivr.net/gh/EMA-CEC/Elevation@main/dem_web.tif"
DEM_SOURCE_NAME = "DEM"


def _geojson_url(file_stem: str) -> str:
    return f"{GEOJSON_BASE_URL}{quote(file_stem)}.geojson"


def _layer(name: str, category: str, label_field=None, file_stem=None, metadata_id=None) -> LayerSource:
    return LayerSource(
        name=name,
        source_type='https',
        format='geojson',
        url=_geojson_url(file_stem or name),
        label_field=label_field,
        category=category,
        metadata_url=f"https://drive.google.com/file/d/{metadata_id}/view" if metadata_id else None,
    )


# Protected areas (sensitive receptors)
aripo_savannas = _layer("Aripo Savannas", "protected", metadata_id="1P3yIDzSHwJcM4Imvm5Am-5oOaHe_Ronu")
caroni_swamp = _layer("Caroni Swamp", "protected", metadata_id="1z37wlyEeJuXSk1N5sx1G3koweFpujHrs")
forest_reserve = _layer("Forest Reserve", "protected", label_field="NAME", file_stem="Forest Reserves",
                        metadata_id="1rhdQPFfdhvHpYQl8TN5RgJ16SQelMOP9")
matura_national_park = _layer("Matura National Park", "protected", metadata_id="1H0VDAgxH4CLgtIKQ2TD4QJ1a0UxrOMY0")
nariva_swamp = _layer("Nariva Swamp", "protected", metadata_id="13BDSAFU7Qs15-u2YivDFq1ROSgaJQrYS")

# Administrative and watershed boundaries
municipality = _layer("Municipality", "administrative", label_field="NAME_1",
                      metadata_id="19--aDF7Q2rsx0jRN7LfnKHNBEiHrx8A-")
tobago_watersheds = _layer("Tobago Watersheds", "watershed", label_field="WATERSHED",
                           metadata_id="1i7fmO0UjjJhJ0w5ufhCZVOXMN6NZNrxe")
trinidad_watersheds = _layer("Trinidad Watersheds", "watershed", label_field="NAME",
                             metadata_id="1l9dXsmtecxBD_abEpj1sM3wDVN6_O51L")

# Susceptibility surfaces
ecological_susceptibility = _layer("Ecological Susceptibility", "susceptibility", label_field="Class",
                                   metadata_id="1_H6wEto7ht44rur9SIng2W7d6CkRr9aq")
geological_susceptibility = _layer("Geological Susceptibility", "susceptibility", label_field="Class",
                                   metadata_id="1RLennVCE2-V34DZdDI_GqoWL0kV2H1eb")
hydrogeology = _layer("Hydrogeology", "susceptibility", label_field="ATTRIB",
                      metadata_id="1njCS4VEy0iaJYln1uh2s3TSa9I_xdlMd")
social_susceptibility = _layer("Social Susceptibility", "susceptibility", label_field="Class",
                               metadata_id="11B-UrWT-_jUHYe3_gDnLmIxLj5CDgSGx")

# Planning policy
tobago_tcpd_policy = _layer("Tobago TCPD Policy", "policy", label_field="Class_Name",
                            metadata_id="1Rr_DDeLBbDdRrlobAysHyw_fLNd5bTFb")
trinidad_tcpd_policy = _layer("Trinidad TCPD Policy", "policy", label_field="Class_Name",
                              metadata_id="1qXAAZb5-lUhmMo-WAvjQqOMkFlpyWymG")

# Elevation model
dem = LayerSource(
    name=DEM_SOURCE_NAME,
    source_type='https',
    format='geotiff',
    url=DEM_URL,
    description="Digital elevation model for Trinidad and Tobago",
)

ALL_SOURCES = [
    aripo_savannas, caroni_swamp, forest_reserve, matura_national_park, nariva_swamp,
    municipality, tobago_watersheds, trinidad_watersheds,
    ecological_susceptibility, geological_susceptibility, hydrogeology, social_susceptibility,
    tobago_tcpd_policy, trinidad_tcpd_policy,
    dem,
]


def register_all(target_registry=None) -> None:
    """Register every source with *target_registry* (the global REGISTRY by default)."""
    target_registry = target_registry or registry.REGISTRY
    for source in ALL_SOURCES:
        if target_registry.get(source.name) is None:
            target_registry.register(source)


register_all()
