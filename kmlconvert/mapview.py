"""Interactive map preview of a converted GeoJSON document."""

from __future__ import annotations

import html
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import folium
import geopandas as gpd
from branca.element import Element, MacroElement
from folium.map import FitBounds
from jinja2 import Template
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

OSM_TILES = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
OSM_ATTRIBUTION = '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'

INITIAL_CENTER = [0.0, 0.0]
INITIAL_ZOOM = 2
FIT_PADDING = (40, 40)
FIT_MAX_ZOOM = 16

FEATURE_STYLE = {
    "color": "#f97316",
    "weight": 4,
    "opacity": 0.8,
    "fillColor": "#fdba74",
    "fillOpacity": 0.4,
}

GEOMETRY_TYPES = {
    "Point",
    "MultiPoint",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
    "GeometryCollection",
}

Bounds = List[List[float]]


class ResizeInvalidator(MacroElement):
    """Re-measure the map whenever its container changes size."""

    _template = Template(
        """
        {% macro script(this, kwargs) %}
            (function(map) {
                if (typeof ResizeObserver === "undefined") { return; }
                new ResizeObserver(function() { map.invalidateSize(); }).observe(map.getContainer());
            })({{ this._parent.get_name() }});
        {% endmacro %}
        """
    )

    def __init__(self) -> None:
        super().__init__()
        self._name = "ResizeInvalidator"


def _features_of(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        logger.warning("Received data is not standard GeoJSON (top level is %s)", type(data).__name__)
        return []
    kind = data.get("type")
    if kind == "FeatureCollection":
        features = data.get("features")
        if not isinstance(features, list):
            logger.warning("FeatureCollection without a features list")
            return []
        return [f for f in features if isinstance(f, dict)]
    if kind == "Feature":
        return [data]
    if kind in GEOMETRY_TYPES:
        return [{"type": "Feature", "geometry": data, "properties": None}]
    logger.warning("Received data is not standard GeoJSON (type=%r)", kind)
    return []


def renderable_features(data: Any) -> List[Tuple[Dict[str, Any], BaseGeometry]]:
    """Pair each drawable feature with its shapely geometry.

    Features without a buildable, non-empty geometry are logged and left out.
    """
    pairs = []
    for index, feature in enumerate(_features_of(data)):
        try:
            geom = shape(feature.get("geometry"))
        except Exception as exc:
            logger.warning("Skipping feature %d: unusable geometry (%s)", index, exc)
            continue
        if geom.is_empty:
            logger.warning("Skipping feature %d: empty geometry", index)
            continue
        properties = feature.get("properties")
        normalized = {
            "type": "Feature",
            "geometry": feature["geometry"],
            "properties": properties if isinstance(properties, dict) else None,
        }
        pairs.append((normalized, geom))
    return pairs


def popup_html(properties: Optional[Dict[str, Any]]) -> str:
    parts = ['<div class="feature-popup">']
    if properties:
        if properties.get("name"):
            parts.append(f'<h4 style="font-weight:bold;border-bottom:1px solid #ddd;margin:0 0 4px 0">'
                         f"{html.escape(str(properties['name']))}</h4>")
        if properties.get("description"):
            parts.append(f'<p style="font-size:0.85rem">{html.escape(str(properties["description"]))}</p>')
        extras = "".join(
            f'<div style="font-size:10px;color:#6b7280"><strong>{html.escape(str(key))}:</strong> '
            f"{html.escape(str(value))}</div>"
            for key, value in properties.items()
            if key not in ("name", "description")
        )
        if extras:
            parts.append(f'<div style="margin-top:8px;border-top:1px solid #ddd;padding-top:4px">{extras}</div>')
    parts.append("</div>")
    return "".join(parts)


def combined_bounds(geometries: List[BaseGeometry]) -> Optional[Bounds]:
    """Leaflet-style ``[[south, west], [north, east]]`` or None when unusable."""
    if not geometries:
        return None
    minx = min(g.bounds[0] for g in geometries)
    miny = min(g.bounds[1] for g in geometries)
    maxx = max(g.bounds[2] for g in geometries)
    maxy = max(g.bounds[3] for g in geometries)
    if not all(math.isfinite(v) for v in (minx, miny, maxx, maxy)):
        return None
    return [[miny, minx], [maxy, maxx]]


def _detach(parent: Element, child: Optional[Element]) -> None:
    if child is not None:
        parent._children.pop(child.get_name(), None)


class MapSurface:
    """A long-lived folium map whose feature layer is swapped per document."""

    def __init__(self, *, tiles: str = OSM_TILES, attribution: str = OSM_ATTRIBUTION) -> None:
        self._tiles = tiles
        self._attribution = attribution
        self._map: Optional[folium.Map] = None
        self._layer: Optional[folium.FeatureGroup] = None
        self._fit: Optional[FitBounds] = None
        self._viewport: Optional[Bounds] = None
        self._feature_count = 0

    @property
    def map(self) -> Optional[folium.Map]:
        return self._map

    @property
    def feature_layer(self) -> Optional[folium.FeatureGroup]:
        return self._layer

    @property
    def viewport(self) -> Optional[Bounds]:
        return self._viewport

    @property
    def feature_count(self) -> int:
        return self._feature_count

    def _ensure_map(self) -> folium.Map:
        if self._map is None:
            m = folium.Map(location=INITIAL_CENTER, zoom_start=INITIAL_ZOOM, tiles=None, zoom_control=True)
            folium.TileLayer(tiles=self._tiles, attr=self._attribution, name="OpenStreetMap").add_to(m)
            ResizeInvalidator().add_to(m)
            self._map = m
        return self._map

    def update(self, document: str) -> bool:
        """Replace the feature layer with ``document``; False leaves the map as it was."""
        m = self._ensure_map()
        try:
            data = json.loads(document)
        except ValueError as exc:
            logger.error("Map rendering error: document is not JSON (%s)", exc)
            return False

        pairs = renderable_features(data)

        layer = folium.FeatureGroup(name="features")
        for feature, _geom in pairs:
            shape_layer = folium.GeoJson(feature, style_function=lambda _feature: dict(FEATURE_STYLE))
            folium.Popup(popup_html(feature["properties"]), max_width=320).add_to(shape_layer)
            shape_layer.add_to(layer)

        _detach(m, self._layer)
        layer.add_to(m)
        self._layer = layer
        self._feature_count = len(pairs)

        bounds = combined_bounds([geom for _feature, geom in pairs])
        if bounds is not None:
            _detach(m, self._fit)
            self._fit = FitBounds(bounds, padding=FIT_PADDING, max_zoom=FIT_MAX_ZOOM)
            self._fit.add_to(m)
            self._viewport = bounds
        return True


@dataclass
class LayerSummary:
    feature_count: int
    geometry_type: Optional[str] = None
    bbox: Optional[List[float]] = None
    table: Optional[Any] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "features": self.feature_count,
            "geometry_type": self.geometry_type,
            "crs": "EPSG:4326",
            "bbox": self.bbox,
        }


def layer_summary(document: str) -> LayerSummary:
    """Feature count, dominant geometry type, bbox and attribute table."""
    pairs = renderable_features(json.loads(document))
    if not pairs:
        return LayerSummary(feature_count=0)
    features = [dict(feature, properties=feature["properties"] or {}) for feature, _geom in pairs]
    try:
        gdf = gpd.GeoDataFrame.from_features(features, crs="EPSG:4326")
    except Exception as exc:
        logger.warning("Could not tabulate features: %s", exc)
        return LayerSummary(feature_count=len(pairs))
    return LayerSummary(
        feature_count=int(len(gdf)),
        geometry_type=str(gdf.geom_type.mode().iat[0]),
        bbox=[float(v) for v in gdf.total_bounds],
        table=gdf.drop(columns="geometry"),
    )
