"""Convert Overture Maps transportation data into Valhalla way/way-node binary files."""

__version__ = "0.1.0"
