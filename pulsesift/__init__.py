"""Preprocessing, subband dedispersion and boxcar filtering of radio filterbank data."""

__version__ = "0.1.0"

__all__ = [
    "units",
    "databuffer",
    "hough",
    "baseline",
    "patch",
    "preprocesslite",
    "subdedispersion",
    "boxcar",
]