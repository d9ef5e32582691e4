"""Test collection root: lets test modules import the package as `src.segmentgrad`."""
