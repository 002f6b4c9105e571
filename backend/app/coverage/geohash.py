"""Geohash bucketing of coordinates into fixed-size map cells."""

import pygeohash as pgh  # type: ignore

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
DEFAULT_PRECISION = 7  # ~153m x 153m at mid latitudes


def encode(lat: float, lon: float, precision: int = DEFAULT_PRECISION) -> str:
    """Encode a coordinate as a geohash of ``precision`` characters.

    Bits alternate between longitude and latitude, starting with longitude.
    A value strictly above the current midpoint sets the bit; a value equal
    to the midpoint stays in the lower half on both axes.
    """
    return pgh.encode(lat, lon, precision=precision)


def decode_bounds(geohash: str) -> tuple[float, float, float, float]:
    """Return the (south, west, north, east) rectangle covered by a geohash.

    Raises ValueError for characters outside the geohash alphabet.
    """
    invalid = set(geohash) - set(BASE32)
    if invalid:
        raise ValueError(f"Invalid geohash character: {sorted(invalid)[0]!r}")
    lat, lon, lat_err, lon_err = pgh.decode_exactly(geohash)
    return lat - lat_err, lon - lon_err, lat + lat_err, lon + lon_err
