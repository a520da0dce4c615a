# ============================================================================
# MODULE CONTEXT - DISPLAY BOUNDARY
# ============================================================================
# STATUS: Adapter - Map display of point collections
# PURPOSE: Reproject collections to lon/lat and render them as GeoJSON
# EXPORTS: MapDisplay, GeoJSONDisplay, DisplayTransformer, to_feature_collection,
#          to_trajectory_feature
# DEPENDENCIES: pyproj, models, util_logger
# PATTERNS: Protocol for the display sink, cached transformers
# ============================================================================

"""
Display Boundary

Maps are drawn in geographic longitude/latitude. A PointCollection carries
its own reference system (EPSG:2229 for the fires sample), so every render
goes through a pyproj Transformer from that system to the display system.

Two shapes are rendered:
- points: one GeoJSON Point feature per record, keyed by the record id
- trajectory: one LineString through the records ordered by timestamp
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pyproj import Transformer
from pyproj.exceptions import CRSError

from util_logger import ComponentType, LoggerFactory

from .models import PointCollection, PointRecord, SubsetFeatureCollection

logger = LoggerFactory.create_logger(ComponentType.ADAPTER, "Display")

DISPLAY_CRS = "EPSG:4326"
CRS84_URI = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"


class MapDisplay(Protocol):
    """Sink a subset session publishes to."""

    def show(self, collection: PointCollection) -> None:
        """Replace whatever is displayed with collection."""
        ...

    def show_error(self, message: str) -> None:
        """Flag the last refresh as failed without clearing the display."""
        ...


class DisplayTransformer:
    """Transformer cache: stored reference system -> display reference system."""

    def __init__(self, display_crs: str = DISPLAY_CRS):
        self.display_crs = display_crs
        self._transformer_cache: Dict[str, Transformer] = {}

    def get_transformer(self, reference_system: str) -> Transformer:
        """
        Raises:
            CRSError: If the EPSG code is unknown to PROJ
        """
        if reference_system not in self._transformer_cache:
            try:
                self._transformer_cache[reference_system] = Transformer.from_crs(
                    f"EPSG:{reference_system}", self.display_crs, always_xy=True
                )
                logger.debug(f"Created transformer EPSG:{reference_system} -> {self.display_crs}")
            except CRSError as e:
                logger.error(f"Failed to create transformer for EPSG:{reference_system}: {e}")
                raise
        return self._transformer_cache[reference_system]

    def transform(self, collection: PointCollection) -> List[Tuple[float, float]]:
        """Display coordinates of every record, in collection order."""
        if collection.is_empty:
            return []
        xs = [p.x for p in collection]
        ys = [p.y for p in collection]
        lons, lats = self.get_transformer(collection.reference_system).transform(xs, ys)
        return list(zip(lons, lats))


_default_transformer = DisplayTransformer()


def _timestamp_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _feature_collection(
    features: List[Dict[str, Any]],
    collection: PointCollection,
    display_crs: str
) -> SubsetFeatureCollection:
    return SubsetFeatureCollection(
        features=features,
        numberReturned=len(features),
        timeStamp=datetime.now(timezone.utc).isoformat(),
        crs=CRS84_URI if display_crs.upper() in ("EPSG:4326", "OGC:CRS84") else display_crs,
        storageCrs=f"http://www.opengis.net/def/crs/EPSG/0/{collection.reference_system}",
        diagnostics=[d.to_dict() for d in collection.diagnostics]
    )


def to_feature_collection(
    collection: PointCollection,
    transformer: Optional[DisplayTransformer] = None
) -> SubsetFeatureCollection:
    """
    One Point feature per record, reprojected to the display system.

    Feature properties are the record's extra columns plus id and time.
    """
    transformer = transformer or _default_transformer
    coords = transformer.transform(collection)

    features = []
    for record, (lon, lat) in zip(collection, coords):
        features.append({
            "type": "Feature",
            "id": record.id,
            "geometry": {"type": "Point", "coordinates": [lon, lat]},
            "properties": {
                **record.properties,
                "id": record.id,
                "time": _timestamp_str(record.timestamp)
            }
        })

    return _feature_collection(features, collection, transformer.display_crs)


def _trajectory_order(item: Tuple[int, PointRecord]):
    index, record = item
    # Untimed records keep row order after the timed ones
    if record.timestamp is None:
        return (1, 0.0, index)
    ts = record.timestamp
    key = ts.timestamp() if ts.tzinfo else ts.replace(tzinfo=timezone.utc).timestamp()
    return (0, key, index)


def to_trajectory_feature(
    collection: PointCollection,
    transformer: Optional[DisplayTransformer] = None
) -> SubsetFeatureCollection:
    """
    The collection as a single trajectory ordered by timestamp.

    Zero records give an empty FeatureCollection and a single record gives a
    Point, since a GeoJSON LineString needs two positions.
    """
    transformer = transformer or _default_transformer
    coords = transformer.transform(collection)
    ordered = sorted(
        zip(enumerate(collection), coords),
        key=lambda pair: _trajectory_order(pair[0])
    )

    features: List[Dict[str, Any]] = []
    if ordered:
        records = [record for (_, record), _ in ordered]
        positions = [[lon, lat] for _, (lon, lat) in ordered]
        if len(positions) == 1:
            geometry = {"type": "Point", "coordinates": positions[0]}
        else:
            geometry = {"type": "LineString", "coordinates": positions}
        bounds = collection.time_bounds()
        features.append({
            "type": "Feature",
            "geometry": geometry,
            "properties": {
                "point_ids": [r.id for r in records],
                "start_time": _timestamp_str(bounds[0]) if bounds else None,
                "end_time": _timestamp_str(bounds[1]) if bounds else None
            }
        })

    return _feature_collection(features, collection, transformer.display_crs)


class GeoJSONDisplay:
    """
    MapDisplay that keeps the latest rendered FeatureCollection.

    show() replaces the rendered layer wholesale. show_error() records the
    message and leaves the rendered layer untouched.
    """

    def __init__(self, as_trajectory: bool = False,
                 transformer: Optional[DisplayTransformer] = None):
        self.as_trajectory = as_trajectory
        self.transformer = transformer or DisplayTransformer()
        self.layer: Optional[SubsetFeatureCollection] = None
        self.error: Optional[str] = None

    def show(self, collection: PointCollection) -> None:
        if self.as_trajectory:
            self.layer = to_trajectory_feature(collection, self.transformer)
        else:
            self.layer = to_feature_collection(collection, self.transformer)
        self.error = None
        logger.info(f"Display updated with {len(collection)} points")

    def show_error(self, message: str) -> None:
        self.error = message
        logger.warning(f"Display refresh failed: {message}")

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = self.layer.model_dump(mode="json") if self.layer else {}
        if self.error:
            body["error"] = self.error
        return body
